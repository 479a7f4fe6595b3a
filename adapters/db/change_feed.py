"""
프로세스 내 변경 피드

SQLite 백킹 스토어는 push 알림이 없으므로, 커밋 이후 스토어가 직접
변경 이벤트를 발행하고 구독자에게 전달한다.
IChangeFeed Protocol 준수.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from adapters.interfaces import ChangeCallback, RowFilter
from adapters.models import ChangeEvent
from core.types import ChangeKind

logger = logging.getLogger(__name__)


@dataclass
class _Subscription:
    """구독 1건"""

    sub_id: int
    table: str
    event: ChangeKind
    filters: tuple[RowFilter, ...]
    callback: ChangeCallback

    def matches(self, change: ChangeEvent) -> bool:
        """이벤트가 구독 조건에 맞는지 확인"""
        if change.table != self.table:
            return False
        if self.event != ChangeKind.ALL and change.kind != self.event:
            return False
        if not self.filters:
            return True
        return any(
            str(change.row.get(column)) == value
            for column, value in self.filters
        )


class InProcessChannel:
    """구독 채널 핸들 (IChangeChannel)"""

    def __init__(self, feed: "InProcessChangeFeed", sub_id: int):
        self._feed = feed
        self._sub_id = sub_id
        self._closed = False

    @property
    def is_closed(self) -> bool:
        """종료 여부"""
        return self._closed

    async def close(self) -> None:
        """구독 해제 (멱등)"""
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self._sub_id)


class InProcessChangeFeed:
    """프로세스 내 변경 피드

    사용 예시:
    ```python
    feed = InProcessChangeFeed()
    channel = await feed.subscribe(
        "balances", ChangeKind.ALL, [("user_id", "u-1")], on_change
    )
    await feed.publish(ChangeEvent("balances", ChangeKind.UPDATE, row))
    await channel.close()
    ```
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, _Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def subscription_count(self) -> int:
        """활성 구독 수"""
        return len(self._subscriptions)

    async def subscribe(
        self,
        table: str,
        event: ChangeKind,
        filters: Sequence[RowFilter],
        callback: ChangeCallback,
    ) -> InProcessChannel:
        """구독 시작"""
        sub_id = next(self._ids)
        self._subscriptions[sub_id] = _Subscription(
            sub_id=sub_id,
            table=table,
            event=event,
            filters=tuple(filters),
            callback=callback,
        )

        logger.debug(
            "변경 피드 구독",
            extra={"table": table, "event": event.value, "filters": list(filters)},
        )
        return InProcessChannel(self, sub_id)

    def _remove(self, sub_id: int) -> None:
        self._subscriptions.pop(sub_id, None)

    async def publish(self, change: ChangeEvent) -> int:
        """이벤트 발행

        Returns:
            콜백이 호출된 구독 수
        """
        delivered = 0

        # 콜백 중 구독 해제될 수 있으므로 스냅샷 순회
        for sub in list(self._subscriptions.values()):
            if not sub.matches(change):
                continue
            try:
                await sub.callback(change)
                delivered += 1
            except Exception as e:
                logger.error(
                    "변경 피드 콜백 에러",
                    extra={"table": change.table, "error": str(e)},
                )

        return delivered

    async def publish_row(
        self,
        table: str,
        kind: ChangeKind,
        row: dict[str, Any],
    ) -> int:
        """행 단위 발행 헬퍼"""
        return await self.publish(ChangeEvent(table=table, kind=kind, row=row))
