"""
어댑터 공통 데이터 모델

백킹 스토어/사용자 디렉토리/외부 네트워크 응답을 표준화한 도메인 모델.
모든 금액은 Decimal 타입 사용.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from core.types import ChangeKind, PaymentMethod, TransactionStatus, TransactionType


def _to_decimal(value: Any) -> Decimal:
    """DB/JSON 값 → Decimal (None은 0)"""
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _to_datetime(value: Any) -> datetime | None:
    """ISO 문자열 → datetime"""
    if value is None or isinstance(value, datetime):
        return value
    # PostgREST는 'Z' 접미사를 사용할 수 있음
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Account:
    """계좌 잔고 (백킹 스토어 소유, BalanceCache가 사본 보관)

    Attributes:
        user_id: 사용자 ID
        ledger_account_id: 외부 원장 계정 ID (없으면 이체 수신 불가)
        available_balance: 사용 가능 잔고
        reward_balance: 리워드 잔고
    """

    user_id: str
    ledger_account_id: str | None
    available_balance: Decimal
    reward_balance: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        """총 잔고 (사용 가능 + 리워드, 저장하지 않고 파생)"""
        return self.available_balance + self.reward_balance

    @property
    def has_ledger_row(self) -> bool:
        """원장 계정 프로비저닝 여부"""
        return bool(self.ledger_account_id)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Account":
        """DB/PostgREST 행에서 생성"""
        return cls(
            user_id=str(row["user_id"]),
            ledger_account_id=row.get("account_id") or None,
            available_balance=_to_decimal(row.get("available_balance")),
            reward_balance=_to_decimal(row.get("reward_balance")),
        )


@dataclass(frozen=True)
class Transaction:
    """지갑 트랜잭션

    확정(confirmed) 이후 불변. pending 행은 status만 전이 가능.

    Attributes:
        id: 트랜잭션 ID
        sender_id: 송신자 사용자 ID
        receiver_id: 수신자 사용자 ID (블록체인 이체는 None)
        amount: 총 금액
        fee: 수수료
        type: 트랜잭션 유형
        status: 상태
        memo: 상관관계 토큰
        created_at: 생성 시각
        description: 설명
        metadata: 부가 정보 (목적지 계정, 네트워크 tx id 등)
        payment_method: 자금 이동 경로
        sender_handle: 송신자 핸들 (조인 결과, 선택)
        receiver_handle: 수신자 핸들 (조인 결과, 선택)
    """

    id: str
    sender_id: str
    receiver_id: str | None
    amount: Decimal
    fee: Decimal
    type: TransactionType
    status: TransactionStatus
    memo: str
    created_at: datetime | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    payment_method: PaymentMethod | None = None
    sender_handle: str | None = None
    receiver_handle: str | None = None

    @property
    def is_pending(self) -> bool:
        """pending 여부"""
        return self.status == TransactionStatus.PENDING

    @property
    def net_amount(self) -> Decimal:
        """실수령액 (amount - fee)"""
        return self.amount - self.fee

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Transaction":
        """DB/PostgREST 행에서 생성"""
        metadata = row.get("metadata") or {}
        payment_method = row.get("payment_method")
        sender = row.get("sender") or {}
        receiver = row.get("receiver") or {}

        return cls(
            id=str(row["id"]),
            sender_id=str(row["sender_id"]),
            receiver_id=str(row["receiver_id"]) if row.get("receiver_id") else None,
            amount=_to_decimal(row.get("amount")),
            fee=_to_decimal(row.get("fee")),
            type=TransactionType(row["type"]),
            status=TransactionStatus(row["status"]),
            memo=row.get("memo") or "",
            created_at=_to_datetime(row.get("created_at")),
            description=row.get("description"),
            metadata=dict(metadata),
            payment_method=PaymentMethod(payment_method) if payment_method else None,
            sender_handle=row.get("sender_handle") or sender.get("username"),
            receiver_handle=row.get("receiver_handle") or receiver.get("username"),
        )


@dataclass(frozen=True)
class Identity:
    """사용자 식별 정보 (사용자 디렉토리 소유)

    Attributes:
        account_id: 플랫폼 사용자 ID
        handle: 사용자 핸들 (username)
        display_name: 표시 이름
        avatar_ref: 아바타 URL
    """

    account_id: str
    handle: str
    display_name: str
    avatar_ref: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Identity":
        """DB/PostgREST 행에서 생성 (프로필 없으면 핸들을 표시 이름으로)"""
        handle = row["username"]
        return cls(
            account_id=str(row["id"]),
            handle=handle,
            display_name=row.get("display_name") or handle,
            avatar_ref=row.get("avatar_url"),
        )


@dataclass(frozen=True)
class Settlement:
    """외부 네트워크/게이트웨이에서 관측된 정산

    Attributes:
        memo: 상관관계 토큰
        amount: 정산 금액
        destination: 수취 계정
        network_tx_id: 네트워크 트랜잭션 ID
        source: 정산 출처 (blurt / paystack)
    """

    memo: str
    amount: Decimal
    destination: str
    network_tx_id: str
    source: str = "blurt"


@dataclass(frozen=True)
class PaymentInit:
    """결제 게이트웨이 초기화 결과

    Attributes:
        redirect_url: 사용자를 보낼 결제 페이지
        correlation_id: 게이트웨이 상관관계 ID (reference)
    """

    redirect_url: str
    correlation_id: str


@dataclass(frozen=True)
class TransferOutcome:
    """transfer_funds 프로시저 결과

    success=False면 reason에 거부 사유 (그대로 전달)
    """

    success: bool
    transaction_id: str | None = None
    amount: Decimal | None = None
    fee: Decimal | None = None
    net_amount: Decimal | None = None
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TransferOutcome":
        """프로시저 JSON 응답에서 생성"""
        if not payload.get("success"):
            return cls(success=False, reason=payload.get("error") or "Transfer failed")

        return cls(
            success=True,
            transaction_id=str(payload["transaction_id"]),
            amount=_to_decimal(payload.get("amount")),
            fee=_to_decimal(payload.get("fee")),
            net_amount=_to_decimal(payload.get("net_amount")),
        )


@dataclass(frozen=True)
class ConfirmOutcome:
    """confirm_pending_deposit 프로시저 결과

    Attributes:
        success: 확정 여부
        new_balance: 확정 후 사용 가능 잔고
        reason: 실패 사유
        already_settled: 이전 호출에서 이미 확정됨 (재적립 없음)
    """

    success: bool
    new_balance: Decimal | None = None
    reason: str | None = None
    already_settled: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ConfirmOutcome":
        """프로시저 JSON 응답에서 생성"""
        if not payload.get("success"):
            return cls(
                success=False,
                reason=payload.get("error") or "Failed to confirm deposit",
            )

        return cls(
            success=True,
            new_balance=_to_decimal(payload.get("new_balance")),
            already_settled=bool(payload.get("already_settled", False)),
        )


@dataclass(frozen=True)
class ChangeEvent:
    """변경 피드 이벤트

    Attributes:
        table: 테이블 이름
        kind: 변경 종류
        row: 변경된 행 (DELETE는 이전 행)
    """

    table: str
    kind: ChangeKind
    row: dict[str, Any] = field(default_factory=dict)
