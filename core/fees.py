"""
플랫폼 수수료 계산

순수 함수. 부수효과 없음.
fee = round(amount * rate, 3), net_amount = amount - fee
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from core.constants import Amounts, FeeRates, ProcedureReasons
from core.errors import ValidationError
from core.types import FeeContext


# 컨텍스트별 수수료율 (불변)
FEE_SCHEDULE: dict[FeeContext, Decimal] = {
    FeeContext.REWARD: FeeRates.REWARD,
    FeeContext.PEER_TRANSFER: FeeRates.PEER_TRANSFER,
    FeeContext.DEPOSIT: FeeRates.DEPOSIT,
    FeeContext.BLOCKCHAIN_TRANSFER: FeeRates.BLOCKCHAIN_TRANSFER,
}


@dataclass(frozen=True)
class FeeBreakdown:
    """수수료 분해 결과

    Attributes:
        fee: 플랫폼 수수료
        net_amount: 수취인 실수령액
    """

    fee: Decimal
    net_amount: Decimal


def quantize_amount(amount: Decimal | int | str) -> Decimal:
    """최소 단위(0.001)로 반올림"""
    return Decimal(str(amount)).quantize(Amounts.MINIMAL_UNIT, rounding=ROUND_HALF_UP)


def get_fee_rate(context: FeeContext | str) -> Decimal:
    """컨텍스트에 해당하는 수수료율 반환

    Raises:
        ValueError: 알 수 없는 컨텍스트
    """
    return FEE_SCHEDULE[FeeContext(context)]


def calculate_fee(
    amount: Decimal,
    schedule: FeeContext | str | Decimal = FeeContext.PEER_TRANSFER,
) -> FeeBreakdown:
    """수수료 계산

    amount > 0 은 호출자 책임 (여기서 재검증하지 않음).

    Args:
        amount: 총 이체 금액
        schedule: 수수료 컨텍스트 또는 직접 지정한 수수료율

    Returns:
        FeeBreakdown (fee + net_amount == amount)

    Example:
        >>> calculate_fee(Decimal("10"), FeeContext.PEER_TRANSFER)
        FeeBreakdown(fee=Decimal('0.250'), net_amount=Decimal('9.750'))
    """
    rate = schedule if isinstance(schedule, Decimal) else get_fee_rate(schedule)

    gross = Decimal(str(amount))
    fee = quantize_amount(gross * rate)
    return FeeBreakdown(fee=fee, net_amount=gross - fee)


def parse_amount(amount: Decimal | int | str) -> Decimal:
    """사용자 입력 금액 → 최소 단위 Decimal

    Raises:
        ValidationError: 숫자가 아니거나 0 이하
    """
    try:
        value = quantize_amount(amount)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {amount}") from e

    if not value.is_finite() or value <= 0:
        raise ValidationError(ProcedureReasons.INVALID_AMOUNT)
    return value
