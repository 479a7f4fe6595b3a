"""
Supabase 백킹 스토어 / 사용자 디렉토리

PostgREST 테이블 조회와 transfer_funds / confirm_pending_deposit RPC 호출.
IBackingStore, IUserDirectory Protocol 준수.
권한 있는 로직은 DB 함수가 수행하며 여기서는 호출과 응답 변환만 담당.
"""

import logging
from decimal import Decimal
from typing import Any

from adapters.models import (
    Account,
    ConfirmOutcome,
    Identity,
    Transaction,
    TransferOutcome,
)
from adapters.supabase.rest_client import SupabaseRestClient
from core.constants import Limits
from core.errors import TransportError, ValidationError
from core.types import TransactionStatus, TransactionType

logger = logging.getLogger(__name__)


# 송수신자 핸들 조인 (외래키 이름으로 구분)
_TX_SELECT = (
    "*,"
    "sender:users!wallet_transactions_sender_id_fkey(username),"
    "receiver:users!wallet_transactions_receiver_id_fkey(username)"
)

_IDENTITY_SELECT = "id,username,profiles(display_name,avatar_url)"
_IDENTITY_SELECT_INNER = "id,username,profiles!inner(display_name,avatar_url)"

# PostgREST unique_violation
_UNIQUE_VIOLATION_STATUS = 409


def _flatten_identity(row: dict[str, Any]) -> Identity:
    """임베드된 profiles를 평탄화하여 Identity 생성"""
    profile = row.get("profiles") or {}
    if isinstance(profile, list):
        profile = profile[0] if profile else {}

    return Identity.from_row({
        "id": row["id"],
        "username": row["username"],
        "display_name": profile.get("display_name"),
        "avatar_url": profile.get("avatar_url"),
    })


def _to_json_value(value: Any) -> Any:
    """Decimal/Enum → JSON 직렬화 가능 값"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (TransactionType, TransactionStatus)):
        return value.value
    return getattr(value, "value", value)


class SupabaseBackingStore:
    """Supabase 백킹 스토어

    Args:
        client: SupabaseRestClient
    """

    def __init__(self, client: SupabaseRestClient):
        self.client = client

    async def get_user_by_handle(self, handle: str) -> Identity | None:
        rows = await self.client.select(
            "users",
            {"select": _IDENTITY_SELECT, "username": f"eq.{handle}", "limit": "1"},
        )
        return _flatten_identity(rows[0]) if rows else None

    async def get_account(self, user_id: str) -> Account | None:
        rows = await self.client.select(
            "balances",
            {"select": "*", "user_id": f"eq.{user_id}", "limit": "1"},
        )
        return Account.from_row(rows[0]) if rows else None

    async def get_recent_transactions(
        self,
        user_id: str,
        limit: int = Limits.RECENT_TRANSACTIONS,
    ) -> list[Transaction]:
        rows = await self.client.select(
            "wallet_transactions",
            {
                "select": _TX_SELECT,
                "or": f"(sender_id.eq.{user_id},receiver_id.eq.{user_id})",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        return [Transaction.from_row(row) for row in rows]

    async def get_pending_deposits(self, user_id: str) -> list[Transaction]:
        rows = await self.client.select(
            "wallet_transactions",
            {
                "select": "*",
                "sender_id": f"eq.{user_id}",
                "type": f"eq.{TransactionType.DEPOSIT.value}",
                "status": f"eq.{TransactionStatus.PENDING.value}",
                "order": "created_at.desc",
            },
        )
        return [Transaction.from_row(row) for row in rows]

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        rows = await self.client.select(
            "wallet_transactions",
            {"select": _TX_SELECT, "id": f"eq.{transaction_id}", "limit": "1"},
        )
        return Transaction.from_row(rows[0]) if rows else None

    async def insert_transaction(self, values: dict[str, Any]) -> Transaction:
        """트랜잭션 행 삽입

        Raises:
            ValidationError: 동일 memo의 pending 입금이 이미 있음 (unique 위반)
        """
        payload = {key: _to_json_value(value) for key, value in values.items()}
        payload.setdefault("fee", "0")
        payload.setdefault("status", TransactionStatus.PENDING.value)

        try:
            row = await self.client.insert("wallet_transactions", payload)
        except TransportError as e:
            if e.status_code == _UNIQUE_VIOLATION_STATUS:
                raise ValidationError(f"Duplicate pending memo: {values['memo']}") from e
            raise

        logger.info(
            f"Transaction recorded: {row['id']}",
            extra={"type": payload["type"]},
        )
        return Transaction.from_row(row)

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction | None:
        """pending 행의 상태 전이 (metadata 병합)"""
        current = await self.get_transaction(transaction_id)
        if current is None or not current.is_pending:
            return None

        merged = dict(current.metadata)
        merged.update(metadata or {})

        rows = await self.client.update(
            "wallet_transactions",
            {"id": f"eq.{transaction_id}", "status": f"eq.{TransactionStatus.PENDING.value}"},
            {"status": status.value, "metadata": merged},
        )
        return Transaction.from_row(rows[0]) if rows else None

    async def transfer_funds(
        self,
        sender_handle: str,
        receiver_handle: str,
        amount: Decimal,
        memo: str,
        description: str,
        request_key: str | None = None,
    ) -> TransferOutcome:
        params = {
            "sender_username": sender_handle,
            "receiver_username": receiver_handle,
            "transfer_amount": str(amount),
            "transfer_memo": memo,
            "transfer_description": description,
        }
        if request_key is not None:
            params["transfer_request_key"] = request_key

        payload = await self.client.rpc("transfer_funds", params)
        return TransferOutcome.from_payload(payload or {})

    async def confirm_pending_deposit(self, transaction_id: str) -> ConfirmOutcome:
        # 금액은 DB 함수가 정산 내역과 대조
        payload = await self.client.rpc(
            "confirm_pending_deposit",
            {"transaction_id": transaction_id, "confirm_amount": 0},
        )
        return ConfirmOutcome.from_payload(payload or {})


class SupabaseUserDirectory:
    """Supabase 사용자 디렉토리 (users + profiles 임베드)

    Args:
        client: SupabaseRestClient
    """

    def __init__(self, client: SupabaseRestClient):
        self.client = client

    async def _first(self, select: str, filters: dict[str, str]) -> Identity | None:
        params = {"select": select, "order": "username.asc", "limit": "1"}
        params.update(filters)
        rows = await self.client.select("users", params)
        return _flatten_identity(rows[0]) if rows else None

    async def find_by_handle(self, handle: str) -> Identity | None:
        return await self._first(_IDENTITY_SELECT, {"username": f"eq.{handle}"})

    async def find_by_display_name(self, display_name: str) -> Identity | None:
        return await self._first(
            _IDENTITY_SELECT_INNER,
            {"profiles.display_name": f"eq.{display_name}"},
        )

    async def find_by_partial_display_name(self, fragment: str) -> Identity | None:
        return await self._first(
            _IDENTITY_SELECT_INNER,
            {"profiles.display_name": f"ilike.*{fragment}*"},
        )

    async def find_by_partial_handle(self, fragment: str) -> Identity | None:
        return await self._first(_IDENTITY_SELECT, {"username": f"ilike.*{fragment}*"})

    async def search_prefix(self, prefix: str, limit: int) -> list[Identity]:
        """핸들 접두사 결과 + 표시 이름 접두사 결과 (중복 제거는 호출자)"""
        by_handle = await self.client.select(
            "users",
            {
                "select": _IDENTITY_SELECT,
                "username": f"ilike.{prefix}*",
                "order": "username.asc",
                "limit": str(limit),
            },
        )
        by_display_name = await self.client.select(
            "users",
            {
                "select": _IDENTITY_SELECT_INNER,
                "profiles.display_name": f"ilike.{prefix}*",
                "order": "username.asc",
                "limit": str(limit),
            },
        )
        return [_flatten_identity(row) for row in by_handle + by_display_name]
