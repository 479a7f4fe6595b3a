"""
변경 피드 리스너

사용자별로 잔고 행 변경과 트랜잭션 삽입을 구독하고, 이벤트가 오면 캐시를 갱신.

- 채널 2개: balances(user_id 일치), wallet_transactions INSERT(sender_id 또는 receiver_id 일치)
- 구독은 비동기 이터레이터(SubscriptionHandle)로 노출, unsubscribe()로 해제 (멱등)
- 갱신은 병합: 동시에 하나만 실행, 실행 중 들어온 트리거는 최대 1회의 후속 갱신으로 합침
"""

import asyncio
import logging
from typing import Any

from adapters.interfaces import IChangeChannel, IChangeFeed
from adapters.models import ChangeEvent
from core.constants import ChangeFeedTables
from core.errors import DataUnavailableError, WalletError
from core.types import ChangeKind
from wallet.cache import BalanceCache

logger = logging.getLogger(__name__)


class SubscriptionHandle:
    """사용자 1명에 대한 변경 피드 구독

    ChangeEvent를 순서대로 내보내는 비동기 이터레이터.
    unsubscribe() 후에는 남은 이벤트 없이 반복이 끝남.

    사용 예시:
    ```python
    handle = await listener.subscribe(user_id)
    async for change in handle:
        ...
    await handle.unsubscribe()
    ```
    """

    def __init__(self, user_id: str):
        self.user_id = user_id
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._channels: list[IChangeChannel] = []
        self._closed = False
        self._received = 0

    @property
    def is_active(self) -> bool:
        """구독 유지 중인지"""
        return not self._closed

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    @property
    def received_count(self) -> int:
        """수신한 이벤트 수"""
        return self._received

    def _attach(self, channel: IChangeChannel) -> None:
        self._channels.append(channel)

    async def _on_change(self, change: ChangeEvent) -> None:
        """채널 콜백 (내부용)"""
        if self._closed:
            return
        self._received += 1
        self._queue.put_nowait(change)

    async def unsubscribe(self) -> None:
        """두 채널 모두 해제 (멱등)"""
        if self._closed:
            return
        self._closed = True

        for channel in self._channels:
            try:
                await channel.close()
            except WalletError as e:
                logger.warning(
                    "채널 해제 실패",
                    extra={"user_id": self.user_id, "error": e.message},
                )

        # 대기 중인 이터레이터 깨우기
        self._queue.put_nowait(None)

        logger.debug("변경 피드 구독 해제", extra={"user_id": self.user_id})

    def __aiter__(self) -> "SubscriptionHandle":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        change = await self._queue.get()
        if change is None or self._closed:
            raise StopAsyncIteration
        return change

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SubscriptionHandle":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.unsubscribe()


class RefreshCoalescer:
    """캐시 갱신 병합기

    trigger()는 즉시 반환. 갱신이 실행 중이면 후속 갱신 1회만 예약.

    Args:
        cache: 잔고 캐시
        user_id: 대상 사용자
    """

    def __init__(self, cache: BalanceCache, user_id: str):
        self.cache = cache
        self.user_id = user_id
        self._task: asyncio.Task[None] | None = None
        self._pending = False
        self.refresh_count = 0

    @property
    def is_refreshing(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        """갱신 요청"""
        if self.is_refreshing:
            self._pending = True
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            self._pending = False
            try:
                # 이벤트를 유발한 커밋 이후에 시작된 조회여야 함
                await self.cache.refresh(self.user_id, force_new=True)
            except DataUnavailableError as e:
                logger.warning(
                    "변경 이벤트 갱신 실패",
                    extra={"user_id": self.user_id, "error": e.message},
                )
            self.refresh_count += 1
            if not self._pending:
                return

    async def wait_idle(self) -> None:
        """진행 중인 갱신(후속 포함) 완료 대기"""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """진행 중인 갱신 취소"""
        self._pending = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None


class ChangeFeedListener:
    """변경 피드 리스너

    Args:
        feed: 변경 피드
        cache: 잔고 캐시

    사용 예시:
    ```python
    listener = ChangeFeedListener(feed, cache)
    await listener.start(user_id)
    # ... 다른 사용자의 이체가 커밋되면 캐시가 자동 갱신 ...
    await listener.stop(user_id)
    ```
    """

    def __init__(self, feed: IChangeFeed, cache: BalanceCache):
        self.feed = feed
        self.cache = cache
        self._watchers: dict[str, tuple[SubscriptionHandle, asyncio.Task[None]]] = {}

    # -------------------------------------------------------------------------
    # 구독
    # -------------------------------------------------------------------------

    async def subscribe(self, user_id: str) -> SubscriptionHandle:
        """사용자 잔고/트랜잭션 변경 구독

        Raises:
            TransportError: 채널 구독 실패 (이미 연 채널은 해제)
        """
        handle = SubscriptionHandle(user_id)

        try:
            handle._attach(
                await self.feed.subscribe(
                    ChangeFeedTables.BALANCES,
                    ChangeKind.ALL,
                    [("user_id", user_id)],
                    handle._on_change,
                )
            )
            handle._attach(
                await self.feed.subscribe(
                    ChangeFeedTables.TRANSACTIONS,
                    ChangeKind.INSERT,
                    [("sender_id", user_id), ("receiver_id", user_id)],
                    handle._on_change,
                )
            )
        except WalletError:
            await handle.unsubscribe()
            raise

        logger.info("변경 피드 구독 시작", extra={"user_id": user_id})
        return handle

    async def run(self, handle: SubscriptionHandle) -> int:
        """구독 스트림을 소비하며 캐시 갱신 (구독 해제 시 반환)

        Returns:
            수행한 갱신 횟수
        """
        coalescer = RefreshCoalescer(self.cache, handle.user_id)
        try:
            async for change in handle:
                logger.debug(
                    "변경 이벤트 수신",
                    extra={
                        "user_id": handle.user_id,
                        "table": change.table,
                        "kind": change.kind.value,
                    },
                )
                coalescer.trigger()
            await coalescer.wait_idle()
        finally:
            await coalescer.close()
        return coalescer.refresh_count

    # -------------------------------------------------------------------------
    # 백그라운드 실행
    # -------------------------------------------------------------------------

    def is_watching(self, user_id: str) -> bool:
        return user_id in self._watchers

    async def start(self, user_id: str) -> SubscriptionHandle:
        """구독 + 백그라운드 run 시작 (이미 실행 중이면 기존 핸들 반환)"""
        existing = self._watchers.get(user_id)
        if existing is not None:
            return existing[0]

        handle = await self.subscribe(user_id)
        task = asyncio.create_task(self.run(handle))
        self._watchers[user_id] = (handle, task)
        return handle

    async def stop(self, user_id: str) -> None:
        """사용자 구독 종료"""
        watcher = self._watchers.pop(user_id, None)
        if watcher is None:
            return

        handle, task = watcher
        await handle.unsubscribe()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.info("변경 피드 구독 종료", extra={"user_id": user_id})

    async def stop_all(self) -> None:
        """모든 구독 종료"""
        for user_id in list(self._watchers):
            await self.stop(user_id)
