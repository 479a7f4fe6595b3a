"""
응답 스키마 (Pydantic)

Web API 응답 데이터 직렬화.
금액은 문자열(소수점 3자리)로 반환.
"""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from adapters.models import Identity, Transaction
from wallet.cache import LedgerEntry, WalletSnapshot
from wallet.results import OperationResult


def _jsonable(value: Any) -> Any:
    """dataclass/Decimal/Enum/datetime → JSON 호환 값"""
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class HealthResponse(BaseModel):
    """헬스 체크 응답"""

    status: str = Field(default="ok", description="서비스 상태")
    backend: str = Field(..., description="백킹 스토어 (sqlite/supabase)")
    version: str = Field(..., description="API 버전")


class OperationResponse(BaseModel):
    """코어 연산 결과 (HTTP 200 + success 플래그)"""

    success: bool
    value: Any = None
    error: str | None = None
    code: str | None = None
    retryable: bool = False

    @classmethod
    def from_result(cls, result: OperationResult[Any]) -> "OperationResponse":
        return cls(
            success=result.success,
            value=_jsonable(result.value),
            error=result.error,
            code=result.code.value if result.code is not None else None,
            retryable=result.retryable,
        )


class IdentityResponse(BaseModel):
    """사용자 응답"""

    account_id: str
    handle: str
    display_name: str
    avatar_url: str | None = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(
            account_id=identity.account_id,
            handle=identity.handle,
            display_name=identity.display_name,
            avatar_url=identity.avatar_ref,
        )


class TransactionResponse(BaseModel):
    """트랜잭션 응답"""

    id: str
    type: str
    status: str
    amount: str = Field(..., description="총 금액")
    fee: str = Field(..., description="수수료")
    memo: str
    description: str | None = None
    payment_method: str | None = None
    is_sent: bool | None = Field(default=None, description="현재 사용자가 송신자인지")
    counterparty: str | None = Field(default=None, description="상대방 핸들")
    created_at: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_transaction(cls, tx: Transaction) -> "TransactionResponse":
        return cls(
            id=tx.id,
            type=tx.type.value,
            status=tx.status.value,
            amount=str(tx.amount),
            fee=str(tx.fee),
            memo=tx.memo,
            description=tx.description,
            payment_method=tx.payment_method.value if tx.payment_method else None,
            created_at=tx.created_at.isoformat() if tx.created_at else None,
            metadata=_jsonable(tx.metadata),
        )

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "TransactionResponse":
        response = cls.from_transaction(entry.transaction)
        response.description = entry.description
        response.is_sent = entry.is_sent
        response.counterparty = entry.counterparty_handle
        return response


class TransactionListResponse(BaseModel):
    """트랜잭션 목록 응답"""

    transactions: list[TransactionResponse]
    total: int


class WalletResponse(BaseModel):
    """지갑 스냅샷 응답"""

    user_id: str
    handle: str
    ledger_account_id: str | None = None
    available_balance: str
    reward_balance: str
    total: str
    loading: bool = False
    error: str | None = None
    sending_transfer: bool = False
    refreshed_at: str | None = None

    @classmethod
    def from_snapshot(
        cls,
        snapshot: WalletSnapshot,
        handle: str,
        sending_transfer: bool = False,
    ) -> "WalletResponse":
        return cls(
            user_id=snapshot.user_id,
            handle=handle,
            ledger_account_id=snapshot.account.ledger_account_id if snapshot.account else None,
            available_balance=str(snapshot.available_balance),
            reward_balance=str(snapshot.reward_balance),
            total=str(snapshot.total),
            loading=snapshot.loading,
            error=snapshot.error,
            sending_transfer=sending_transfer,
            refreshed_at=snapshot.refreshed_at.isoformat() if snapshot.refreshed_at else None,
        )


class UserSearchResponse(BaseModel):
    """사용자 검색 응답"""

    users: list[IdentityResponse]
    total: int
