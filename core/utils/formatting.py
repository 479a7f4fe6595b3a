"""
표시용 포맷 유틸리티

금액 문자열과 트랜잭션 설명 생성.
"""

from decimal import Decimal

from core.constants import BlurtEndpoints
from core.fees import quantize_amount
from core.types import TransactionType


def format_amount(amount: Decimal | int | str | None) -> str:
    """금액을 '0.000 BLURT' 형식으로 변환

    Example:
        >>> format_amount(Decimal("1.5"))
        '1.500 BLURT'
        >>> format_amount(None)
        '0.000 BLURT'
    """
    if amount is None:
        amount = Decimal("0")
    return f"{quantize_amount(amount)} {BlurtEndpoints.ASSET_SYMBOL}"


def describe_transaction(
    tx_type: TransactionType | str,
    is_sent: bool,
    counterparty_handle: str | None,
    stored_description: str | None = None,
) -> str:
    """트랜잭션 설명 문자열 생성

    Args:
        tx_type: 트랜잭션 유형
        is_sent: 현재 사용자가 송신자인지
        counterparty_handle: 상대방 핸들 (없으면 'unknown')
        stored_description: DB에 저장된 설명 (기타 유형에서 사용)
    """
    other = counterparty_handle or "unknown"

    try:
        kind = TransactionType(tx_type)
    except ValueError:
        kind = None

    if kind == TransactionType.TRANSFER:
        return f"Transfer to @{other}" if is_sent else f"Transfer from @{other}"
    if kind == TransactionType.DEPOSIT:
        return "Wallet deposit"
    if kind == TransactionType.WITHDRAWAL:
        return "Withdrawal request"
    if kind == TransactionType.REWARD:
        return "Reward sent to creator" if is_sent else "Reward received from viewer"

    return stored_description or "Transaction"
