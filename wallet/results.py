"""
코어 연산 결과 타입

공개 연산은 예외를 던지지 않고 OperationResult를 반환.
호출자는 success 플래그로 분기한다.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, TypeVar

from core.errors import ErrorCode, WalletError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """연산 결과

    Attributes:
        success: 성공 여부
        value: 성공 시 결과 값
        error: 실패 사유 (백킹 스토어 거부 사유는 그대로)
        code: 에러 코드
        retryable: 재시도 가능 여부
    """

    success: bool
    value: T | None = None
    error: str | None = None
    code: ErrorCode | None = None
    retryable: bool = False

    @classmethod
    def ok(cls, value: T) -> "OperationResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: WalletError) -> "OperationResult[T]":
        """WalletError → 실패 결과"""
        return cls(
            success=False,
            error=error.message,
            code=error.code,
            retryable=error.retryable,
        )

    @classmethod
    def rejected(
        cls,
        reason: str,
        code: ErrorCode = ErrorCode.REJECTED,
        retryable: bool = False,
    ) -> "OperationResult[T]":
        """백킹 스토어 거부 사유 그대로 전달"""
        return cls(success=False, error=reason, code=code, retryable=retryable)

    @classmethod
    def unexpected(cls, operation: str, error: Exception) -> "OperationResult[T]":
        """예상하지 못한 예외 (경계 밖으로 전파하지 않음)"""
        logger.exception(
            f"Unexpected error in {operation}",
            extra={"error": str(error)},
        )
        return cls(
            success=False,
            error=f"{operation} failed",
            code=ErrorCode.REJECTED,
        )


@dataclass(frozen=True)
class TransferResult:
    """이체 결과

    Attributes:
        transaction_id: 트랜잭션 ID
        amount: 총 금액
        fee: 수수료
        net_amount: 실수령액
        receiver_id: 수신자 사용자 ID (내부 이체)
        memo: 상관관계 토큰
        network_tx_id: 네트워크 트랜잭션 ID (외부 이체)
    """

    transaction_id: str
    amount: Decimal
    fee: Decimal
    net_amount: Decimal
    receiver_id: str | None = None
    memo: str | None = None
    network_tx_id: str | None = None


@dataclass(frozen=True)
class DepositInstructions:
    """사용자가 외부 지갑에서 보낼 이체 정보"""

    target_account: str
    memo: str
    amount: Decimal


@dataclass(frozen=True)
class DepositHandle:
    """입금 의도 핸들

    Attributes:
        transaction_id: pending 입금 트랜잭션 ID
        memo: 상관관계 토큰
        amount: 요청 금액
        instructions: 원장 직접 입금 안내 (원장 경로)
        redirect_url: 결제 페이지 (게이트웨이 경로)
        correlation_id: 게이트웨이 상관관계 ID (게이트웨이 경로)
    """

    transaction_id: str
    memo: str
    amount: Decimal
    instructions: DepositInstructions | None = None
    redirect_url: str | None = None
    correlation_id: str | None = None


@dataclass(frozen=True)
class ConfirmResult:
    """입금 확정 결과

    Attributes:
        transaction_id: 입금 트랜잭션 ID
        new_balance: 확정 후 사용 가능 잔고
        already_settled: 이전 호출에서 이미 확정됨
    """

    transaction_id: str
    new_balance: Decimal | None
    already_settled: bool = False
