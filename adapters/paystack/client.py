"""
Paystack 결제 게이트웨이 클라이언트

결제 초기화(redirect URL 발급)와 reference 기반 결제 검증.
IPaymentGateway, ISettlementSource Protocol 준수.

금액은 게이트웨이 통화의 보조 단위(1/100)로 전송.
"""

import logging
from decimal import Decimal

import httpx

from adapters.models import PaymentInit, Settlement
from core.constants import Defaults, PaystackEndpoints
from core.errors import TransportError
from core.fees import quantize_amount

logger = logging.getLogger(__name__)


# 보조 단위 환산 (kobo/pesewa/cent)
SUBUNIT_FACTOR = Decimal("100")


class PaystackClient:
    """Paystack REST 클라이언트

    Args:
        secret_key: Paystack 시크릿 키
        base_url: API 베이스 URL
        callback_url: 결제 완료 후 리다이렉트 URL
        timeout: 요청 타임아웃 (초)
        transport: httpx 전송 계층 (테스트용)
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = PaystackEndpoints.BASE_URL,
        callback_url: str | None = None,
        timeout: float = Defaults.HTTP_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.callback_url = callback_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        client = await self._get_client()
        try:
            response = await client.request(method, f"{self.base_url}{path}", json=json)
        except httpx.RequestError as e:
            logger.error("Paystack request error", extra={"path": path, "error": str(e)})
            raise TransportError(f"paystack {path} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or not data.get("status"):
            message = data.get("message") or response.text
            raise TransportError(
                f"paystack {path}: {message}",
                status_code=response.status_code,
            )
        return data.get("data") or {}

    async def initialize_payment(
        self,
        amount: Decimal,
        contact: str,
        reference: str,
    ) -> PaymentInit:
        """결제 초기화

        Args:
            amount: 결제 금액
            contact: 사용자 이메일
            reference: 상관관계 ID (입금 memo)
        """
        body = {
            "email": contact,
            "amount": int(quantize_amount(amount) * SUBUNIT_FACTOR),
            "reference": reference,
        }
        if self.callback_url:
            body["callback_url"] = self.callback_url

        data = await self._request("POST", "/transaction/initialize", json=body)

        logger.info("Paystack 결제 초기화", extra={"reference": reference})
        return PaymentInit(
            redirect_url=data["authorization_url"],
            correlation_id=data.get("reference", reference),
        )

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        """reference(memo)로 결제 검증

        결제 완료(success) 상태일 때만 Settlement 반환.
        """
        try:
            data = await self._request("GET", f"/transaction/verify/{memo}")
        except TransportError as e:
            # 존재하지 않는 reference는 아직 결제 전
            if e.status_code == 404:
                return None
            raise

        if data.get("status") != "success":
            return None

        return Settlement(
            memo=memo,
            amount=quantize_amount(Decimal(str(data["amount"])) / SUBUNIT_FACTOR),
            destination=Defaults.GATEWAY_ACCOUNT,
            network_tx_id=str(data.get("id", memo)),
            source="paystack",
        )
