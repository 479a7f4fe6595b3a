"""
Mock 결제 게이트웨이

테스트용 Mock Paystack.
IPaymentGateway, ISettlementSource Protocol 준수.
"""

from dataclasses import dataclass
from decimal import Decimal

from adapters.models import PaymentInit, Settlement
from core.constants import Defaults
from core.errors import TransportError
from core.fees import quantize_amount


@dataclass
class PaymentRecord:
    """결제 초기화 기록"""

    amount: Decimal
    contact: str
    reference: str


class MockPaymentGateway:
    """Mock 결제 게이트웨이

    Args:
        should_fail: True면 모든 초기화 실패 (에러 시나리오 테스트용)
    """

    def __init__(self, should_fail: bool = False):
        self.should_fail = should_fail
        self.payments: list[PaymentRecord] = []
        self._completed: dict[str, Decimal] = {}

    def complete_payment(self, reference: str, amount: Decimal | None = None) -> None:
        """사용자가 결제를 완료한 상황 (금액 생략 시 요청 금액)"""
        if amount is None:
            amount = next(p.amount for p in self.payments if p.reference == reference)
        self._completed[reference] = quantize_amount(amount)

    async def initialize_payment(
        self,
        amount: Decimal,
        contact: str,
        reference: str,
    ) -> PaymentInit:
        if self.should_fail:
            raise TransportError("gateway unavailable", status_code=503)

        self.payments.append(PaymentRecord(amount=amount, contact=contact, reference=reference))
        return PaymentInit(
            redirect_url=f"https://paystack.com/pay/blurtok-{reference}",
            correlation_id=reference,
        )

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        amount = self._completed.get(memo)
        if amount is None:
            return None
        return Settlement(
            memo=memo,
            amount=amount,
            destination=Defaults.GATEWAY_ACCOUNT,
            network_tx_id=f"mock-pay-{memo}",
            source="paystack",
        )
