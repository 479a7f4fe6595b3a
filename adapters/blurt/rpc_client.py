"""
Blurt JSON-RPC 클라이언트

condenser_api 조회와 계정 히스토리 기반 정산 조회.
ISettlementSource Protocol 준수.

히스토리 항목 형식:
    [index, {"trx_id": "...", "op": ["transfer", {"from", "to", "amount": "50.000 BLURT", "memo"}]}]
"""

import asyncio
import itertools
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from adapters.models import Settlement
from core.constants import BlurtEndpoints, Defaults
from core.errors import TransportError

logger = logging.getLogger(__name__)


def parse_asset(value: str) -> tuple[Decimal, str]:
    """'50.000 BLURT' → (Decimal('50.000'), 'BLURT')

    Raises:
        ValueError: 형식 불일치
    """
    try:
        amount, symbol = value.strip().split(" ", 1)
        return Decimal(amount), symbol
    except (AttributeError, ValueError, InvalidOperation) as e:
        raise ValueError(f"Invalid asset string: {value!r}") from e


class BlurtRpcClient:
    """Blurt JSON-RPC 클라이언트

    Args:
        rpc_url: RPC 노드 URL
        timeout: 요청 타임아웃 (초)
        max_retries: 최대 재시도 횟수 (타임아웃/연결 오류)
        history_limit: 정산 조회 시 스캔할 최근 히스토리 항목 수
        transport: httpx 전송 계층 (테스트용)
    """

    def __init__(
        self,
        rpc_url: str = BlurtEndpoints.RPC_URL,
        timeout: float = Defaults.HTTP_TIMEOUT_SEC,
        max_retries: int = 3,
        history_limit: int = 500,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.history_limit = history_limit
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, params: list[Any]) -> Any:
        """JSON-RPC 호출

        Raises:
            TransportError: HTTP 에러, RPC 에러 응답, 재시도 소진
        """
        client = await self._get_client()
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        for attempt in range(self.max_retries):
            try:
                response = await client.post(self.rpc_url, json=body)
            except httpx.TimeoutException:
                logger.warning(
                    "RPC timeout",
                    extra={"method": method, "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 * (attempt + 1))
                    continue
                raise TransportError(f"{method} timed out")
            except httpx.RequestError as e:
                logger.error(
                    "RPC request error",
                    extra={"method": method, "error": str(e), "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 * (attempt + 1))
                    continue
                raise TransportError(f"{method} failed: {e}") from e

            if response.status_code >= 400:
                raise TransportError(
                    f"{method} HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            data = response.json()
            if data.get("error"):
                message = data["error"].get("message", "RPC error")
                raise TransportError(f"{method}: {message}")
            return data.get("result")

        raise TransportError(f"{method}: all retries failed")

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get_account(self, name: str) -> dict[str, Any] | None:
        """계정 조회 (없으면 None)"""
        result = await self.call("condenser_api.get_accounts", [[name]])
        return result[0] if result else None

    async def get_account_history(
        self,
        account: str,
        start: int = -1,
        limit: int = 100,
    ) -> list[Any]:
        """계정 히스토리 조회 (최근 limit건)"""
        return await self.call(
            "condenser_api.get_account_history",
            [account, start, limit],
        ) or []

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        """destination 수신 이체 중 memo 일치 항목 조회

        금액/목적지 검증은 호출자(confirm 프로시저) 책임.
        """
        history = await self.get_account_history(destination, -1, self.history_limit)

        # 최신 항목부터
        for entry in reversed(history):
            _, item = entry
            op_name, op = item.get("op", [None, {}])
            if op_name != "transfer" or op.get("memo") != memo:
                continue

            try:
                amount, symbol = parse_asset(op.get("amount", ""))
            except ValueError as e:
                logger.warning("이체 금액 파싱 실패", extra={"error": str(e)})
                continue
            if symbol != BlurtEndpoints.ASSET_SYMBOL:
                continue

            logger.info(
                "정산 발견",
                extra={"memo": memo, "trx_id": item.get("trx_id")},
            )
            return Settlement(
                memo=memo,
                amount=amount,
                destination=op.get("to", ""),
                network_tx_id=item.get("trx_id", ""),
                source="blurt",
            )

        return None
