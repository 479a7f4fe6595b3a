"""
Blurt 이체 브로드캐스터

서명과 네트워크 제출은 외부 서명 서비스가 담당하고,
여기서는 서명 서비스 HTTP API 호출만 수행.
ILedgerBroadcaster Protocol 준수.

서명키는 로그에 남기지 않음.
"""

import logging
from decimal import Decimal

import httpx

from core.constants import Defaults
from core.errors import BroadcastRejectedError, TransportError
from core.utils.credentials import mask_secret
from core.utils.formatting import format_amount

logger = logging.getLogger(__name__)


class SignerBroadcaster:
    """서명 서비스 기반 브로드캐스터

    재시도하지 않음 (브로드캐스트는 비가역이며 의도당 1회만 수행).

    Args:
        signer_url: 서명 서비스 베이스 URL
        timeout: 요청 타임아웃 (초)
        transport: httpx 전송 계층 (테스트용)
    """

    def __init__(
        self,
        signer_url: str,
        timeout: float = Defaults.HTTP_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.signer_url = signer_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

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

    async def broadcast_transfer(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        memo: str,
        signing_secret: str,
    ) -> str:
        """서명된 이체 브로드캐스트

        Returns:
            네트워크 트랜잭션 ID

        Raises:
            BroadcastRejectedError: 서명 서비스가 제출 전 거부 (4xx)
            TransportError: 결과 불명 (타임아웃, 5xx, 연결 오류)
        """
        client = await self._get_client()

        logger.info(
            "이체 브로드캐스트 요청",
            extra={
                "from": from_account,
                "to": to_account,
                "amount": str(amount),
                "memo": memo,
                "key": mask_secret(signing_secret),
            },
        )

        try:
            response = await client.post(
                f"{self.signer_url}/transfer",
                json={
                    "from": from_account,
                    "to": to_account,
                    "amount": format_amount(amount),
                    "memo": memo,
                    "key": signing_secret,
                },
            )
        except httpx.RequestError as e:
            logger.error(
                "브로드캐스트 요청 실패",
                extra={"memo": memo, "error": type(e).__name__},
            )
            raise TransportError(f"broadcast failed: {type(e).__name__}") from e

        if 400 <= response.status_code < 500:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise BroadcastRejectedError(message)

        if response.status_code >= 500:
            raise TransportError(
                f"signer HTTP {response.status_code}",
                status_code=response.status_code,
            )

        tx_id = response.json().get("tx_id")
        if not tx_id:
            raise TransportError("signer response missing tx_id")

        logger.info("이체 브로드캐스트 완료", extra={"memo": memo, "tx_id": tx_id})
        return str(tx_id)
