"""
Supabase Realtime 클라이언트

Phoenix 채널 프로토콜(JSON v1)로 postgres_changes 구독.
하나의 WebSocket 연결 위에 여러 채널(topic)을 다중화.
IChangeFeed Protocol 준수.

메시지 형식:
    {"topic": "realtime:...", "event": "phx_join", "payload": {...}, "ref": "1"}
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Sequence

import websockets
from websockets.exceptions import ConnectionClosed

from adapters.interfaces import ChangeCallback, RowFilter
from adapters.models import ChangeEvent
from core.errors import TransportError
from core.types import ChangeKind, ChannelState

logger = logging.getLogger(__name__)


# websockets.connect 호환 연결 함수 (테스트에서 교체)
Connector = Callable[..., Awaitable[Any]]


class RealtimeChannel:
    """postgres_changes 채널 1건 (IChangeChannel)

    filters 하나당 바인딩 하나를 등록하며, 어느 바인딩이든 맞으면 콜백 호출.
    """

    def __init__(
        self,
        client: "SupabaseRealtimeClient",
        topic: str,
        table: str,
        event: ChangeKind,
        filters: Sequence[RowFilter],
        callback: ChangeCallback,
    ):
        self._client = client
        self.topic = topic
        self.table = table
        self.event = event
        self.filters = tuple(filters)
        self.callback = callback
        self.state = ChannelState.DISCONNECTED

    def join_payload(self, access_token: str) -> dict[str, Any]:
        """phx_join 페이로드"""
        bindings = []
        for column, value in self.filters or ((None, None),):
            binding = {
                "event": self.event.value,
                "schema": "public",
                "table": self.table,
            }
            if column is not None:
                binding["filter"] = f"{column}=eq.{value}"
            bindings.append(binding)

        return {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": bindings,
            },
            "access_token": access_token,
        }

    async def join(self) -> None:
        self.state = ChannelState.CONNECTING
        await self._client.send(
            self.topic,
            "phx_join",
            self.join_payload(self._client.access_token or self._client.anon_key),
        )

    async def dispatch(self, data: dict[str, Any]) -> None:
        """postgres_changes 데이터 → ChangeEvent 콜백"""
        try:
            kind = ChangeKind(data.get("type", ""))
        except ValueError:
            logger.warning("알 수 없는 변경 종류", extra={"type": data.get("type")})
            return

        row = data.get("record") or data.get("old_record") or {}
        change = ChangeEvent(table=data.get("table", self.table), kind=kind, row=row)

        try:
            await self.callback(change)
        except Exception as e:
            logger.error(
                "Realtime 콜백 에러",
                extra={"topic": self.topic, "error": str(e)},
            )

    async def close(self) -> None:
        """채널 종료 (멱등)"""
        if self.state == ChannelState.CLOSED:
            return

        self.state = ChannelState.CLOSED
        await self._client.leave(self)


class SupabaseRealtimeClient:
    """Supabase Realtime 클라이언트

    Args:
        realtime_url: wss://{project}/realtime/v1/websocket
        anon_key: anon API 키
        access_token: 사용자 JWT (RLS 적용 시)
        connector: WebSocket 연결 함수 (기본 websockets.connect)
    """

    HEARTBEAT_INTERVAL = 25  # Phoenix heartbeat 간격 (초)
    RECONNECT_MIN_DELAY = 1
    RECONNECT_MAX_DELAY = 30
    PING_INTERVAL = 30
    PING_TIMEOUT = 10

    def __init__(
        self,
        realtime_url: str,
        anon_key: str,
        access_token: str | None = None,
        connector: Connector | None = None,
    ):
        self.realtime_url = realtime_url
        self.anon_key = anon_key
        self.access_token = access_token
        self._connector = connector or websockets.connect

        self._ws: Any = None
        self._refs = itertools.count(1)
        self._topics = itertools.count(1)
        self._channels: dict[str, RealtimeChannel] = {}

        self._receive_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._should_reconnect = False
        self._connect_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def _url(self) -> str:
        return f"{self.realtime_url}?apikey={self.anon_key}&vsn=1.0.0"

    async def connect(self) -> None:
        """WebSocket 연결 (이미 연결되어 있으면 무시)"""
        async with self._connect_lock:
            if self._ws is not None:
                return

            self._should_reconnect = True
            try:
                self._ws = await self._connector(
                    self._url(),
                    ping_interval=self.PING_INTERVAL,
                    ping_timeout=self.PING_TIMEOUT,
                )
            except (OSError, websockets.WebSocketException) as e:
                logger.error("Realtime 연결 실패", extra={"error": str(e)})
                raise TransportError(f"realtime connect failed: {e}") from e

            logger.info("Realtime 연결 성공", extra={"url": self.realtime_url})

            self._receive_task = asyncio.create_task(self._receive_loop())
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def close(self) -> None:
        """모든 채널과 연결 종료"""
        self._should_reconnect = False

        for channel in list(self._channels.values()):
            channel.state = ChannelState.CLOSED
        self._channels.clear()

        await self._disconnect()

    async def _disconnect(self) -> None:
        for task in (self._heartbeat_task, self._receive_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._heartbeat_task = None
        self._receive_task = None

        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, websockets.WebSocketException) as e:
                logger.debug("WebSocket 종료 에러", extra={"error": str(e)})
            self._ws = None
            logger.info("Realtime 연결 종료")

    # -------------------------------------------------------------------------
    # IChangeFeed
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        table: str,
        event: ChangeKind,
        filters: Sequence[RowFilter],
        callback: ChangeCallback,
    ) -> RealtimeChannel:
        """채널 생성 + join"""
        await self.connect()

        topic = f"realtime:{table}-{next(self._topics)}"
        channel = RealtimeChannel(self, topic, table, event, filters, callback)
        self._channels[topic] = channel
        await channel.join()

        logger.debug(
            "Realtime 채널 구독",
            extra={"topic": topic, "filters": list(filters)},
        )
        return channel

    async def leave(self, channel: RealtimeChannel) -> None:
        """채널 탈퇴 (연결이 살아있을 때만 phx_leave 전송)"""
        self._channels.pop(channel.topic, None)
        if self._ws is None:
            return

        try:
            await self.send(channel.topic, "phx_leave", {})
        except TransportError as e:
            logger.warning(
                "phx_leave 전송 실패",
                extra={"topic": channel.topic, "error": str(e)},
            )

    # -------------------------------------------------------------------------
    # 송수신
    # -------------------------------------------------------------------------

    async def send(self, topic: str, event: str, payload: dict[str, Any]) -> str:
        """Phoenix 메시지 전송

        Returns:
            메시지 ref
        """
        if self._ws is None:
            raise TransportError("realtime not connected")

        ref = str(next(self._refs))
        message = {"topic": topic, "event": event, "payload": payload, "ref": ref}
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise TransportError(f"realtime send failed: {e}") from e
        return ref

    async def handle_message(self, data: dict[str, Any]) -> None:
        """수신 메시지 라우팅"""
        channel = self._channels.get(data.get("topic", ""))
        if channel is None:
            return

        event = data.get("event")
        payload = data.get("payload") or {}

        if event == "postgres_changes":
            await channel.dispatch(payload.get("data") or {})
        elif event == "phx_reply" and channel.state == ChannelState.CONNECTING:
            if payload.get("status") == "ok":
                channel.state = ChannelState.SUBSCRIBED
                logger.info("Realtime 채널 구독 완료", extra={"topic": channel.topic})
            else:
                channel.state = ChannelState.DISCONNECTED
                logger.error(
                    "Realtime 채널 join 거부",
                    extra={"topic": channel.topic, "response": payload.get("response")},
                )
        elif event in ("phx_error", "phx_close"):
            channel.state = ChannelState.DISCONNECTED
            logger.warning("Realtime 채널 끊김", extra={"topic": channel.topic, "event": event})

    async def _receive_loop(self) -> None:
        if self._ws is None:
            return

        try:
            async for message in self._ws:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError as e:
                    logger.warning(
                        "메시지 파싱 실패",
                        extra={"error": str(e), "message": str(message)[:100]},
                    )
                    continue
                await self.handle_message(data)
        except ConnectionClosed as e:
            logger.warning(
                "Realtime 연결 끊김",
                extra={"code": e.code, "reason": e.reason},
            )
            await self._handle_disconnect()

    async def _heartbeat_loop(self) -> None:
        while self._ws is not None:
            await asyncio.sleep(self.HEARTBEAT_INTERVAL)
            try:
                await self.send("phoenix", "heartbeat", {})
            except TransportError as e:
                logger.warning("heartbeat 실패", extra={"error": str(e)})
                return

    async def _handle_disconnect(self) -> None:
        """연결 끊김 처리 (채널 재가입 포함)"""
        heartbeat = self._heartbeat_task
        self._heartbeat_task = None
        if heartbeat is not None:
            heartbeat.cancel()
        self._receive_task = None
        self._ws = None

        for channel in self._channels.values():
            channel.state = ChannelState.DISCONNECTED

        if not self._should_reconnect:
            return

        await self._reconnect_with_backoff()

    async def _reconnect_with_backoff(self) -> None:
        """지수 백오프로 재연결 후 채널 재가입"""
        delay = self.RECONNECT_MIN_DELAY

        while self._should_reconnect:
            try:
                logger.info("Realtime 재연결 시도", extra={"delay": delay})
                await self.connect()
                for channel in list(self._channels.values()):
                    await channel.join()
                return
            except TransportError as e:
                logger.warning(
                    "재연결 실패",
                    extra={"error": str(e), "next_delay": delay},
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.RECONNECT_MAX_DELAY)

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SupabaseRealtimeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
