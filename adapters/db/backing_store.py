"""
SQLite 백킹 스토어

balances / wallet_transactions / settlements 테이블 CRUD와
권한 있는 프로시저(transfer_funds, confirm_pending_deposit) 구현.
IBackingStore, ISettlementSource Protocol 준수.

프로시저는 BEGIN IMMEDIATE 단일 트랜잭션으로 실행되므로 부분 적용 불가.
커밋 이후 변경 피드로 balances/wallet_transactions 변경 이벤트 발행.
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator

import aiosqlite

from adapters.db.change_feed import InProcessChangeFeed
from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import ISettlementSource
from adapters.models import (
    Account,
    ConfirmOutcome,
    Identity,
    Settlement,
    Transaction,
    TransferOutcome,
)
from core.constants import ChangeFeedTables, Limits, ProcedureReasons
from core.errors import TransportError, ValidationError
from core.fees import calculate_fee, quantize_amount
from core.types import (
    ChangeKind,
    FeeContext,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)


# 트랜잭션 조회 공통 SELECT (송수신자 핸들 조인)
_TX_SELECT = """
    SELECT t.*, s.username AS sender_handle, r.username AS receiver_handle
    FROM wallet_transactions t
    LEFT JOIN users s ON s.id = t.sender_id
    LEFT JOIN users r ON r.id = t.receiver_id
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _tx_from_row(row: dict[str, Any]) -> Transaction:
    """DB 행 → Transaction (metadata_json 파싱)"""
    row = dict(row)
    row["metadata"] = json.loads(row.pop("metadata_json", None) or "{}")
    return Transaction.from_row(row)


class SQLiteBackingStore:
    """SQLite 백킹 스토어

    Args:
        db: 연결된 SQLiteAdapter
        change_feed: 변경 이벤트 발행 대상 (선택)
        settlement_source: 외부 정산 조회 (None이면 settlements 테이블 사용)
        fee_context: 내부 이체 수수료 컨텍스트
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        change_feed: InProcessChangeFeed | None = None,
        settlement_source: ISettlementSource | None = None,
        fee_context: FeeContext = FeeContext.PEER_TRANSFER,
    ):
        self.db = db
        self.change_feed = change_feed
        self.settlement_source: ISettlementSource = settlement_source or self
        self.fee_context = fee_context

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        """SQLite 에러 → TransportError 변환 (IntegrityError 제외)"""
        try:
            yield
        except aiosqlite.IntegrityError:
            raise
        except aiosqlite.Error as e:
            logger.error(
                f"SQLite 작업 실패: {operation}",
                extra={"error": str(e)},
            )
            raise TransportError(f"{operation} failed: {e}") from e

    # =========================================================================
    # 사용자/계좌 프로비저닝
    # =========================================================================

    async def create_user(
        self,
        handle: str,
        display_name: str | None = None,
        avatar_url: str | None = None,
        email: str | None = None,
    ) -> Identity:
        """사용자 + 프로필 생성"""
        user_id = f"u-{uuid.uuid4().hex[:12]}"

        async with self._guard("create_user"):
            async with self.db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO users (id, username, email) VALUES (?, ?, ?)",
                    (user_id, handle, email),
                )
                await conn.execute(
                    """
                    INSERT INTO profiles (user_id, display_name, avatar_url)
                    VALUES (?, ?, ?)
                    """,
                    (user_id, display_name or handle, avatar_url),
                )

        logger.info(f"User created: {handle}", extra={"user_id": user_id})

        return Identity(
            account_id=user_id,
            handle=handle,
            display_name=display_name or handle,
            avatar_ref=avatar_url,
        )

    async def provision_account(
        self,
        user_id: str,
        ledger_account_id: str,
        available_balance: Decimal = Decimal("0"),
        reward_balance: Decimal = Decimal("0"),
    ) -> Account:
        """원장 행(balances) 생성"""
        async with self._guard("provision_account"):
            async with self.db.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO balances (
                        user_id, account_id, available_balance, reward_balance, updated_at
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        ledger_account_id,
                        str(quantize_amount(available_balance)),
                        str(quantize_amount(reward_balance)),
                        _now(),
                    ),
                )

        account = await self.get_account(user_id)
        assert account is not None
        await self._publish_balance(account, ChangeKind.INSERT)
        return account

    # =========================================================================
    # 조회
    # =========================================================================

    async def get_user_by_handle(self, handle: str) -> Identity | None:
        """핸들로 사용자 조회 (정확히 일치)"""
        async with self._guard("get_user_by_handle"):
            row = await self.db.fetchone(
                """
                SELECT u.id, u.username, p.display_name, p.avatar_url
                FROM users u LEFT JOIN profiles p ON p.user_id = u.id
                WHERE u.username = ?
                """,
                (handle,),
            )
        return Identity.from_row(row) if row else None

    async def get_account(self, user_id: str) -> Account | None:
        """계좌 잔고 조회"""
        async with self._guard("get_account"):
            row = await self.db.fetchone(
                "SELECT * FROM balances WHERE user_id = ?",
                (user_id,),
            )
        return Account.from_row(row) if row else None

    async def get_recent_transactions(
        self,
        user_id: str,
        limit: int = Limits.RECENT_TRANSACTIONS,
    ) -> list[Transaction]:
        """송신자 또는 수신자인 최근 트랜잭션 (최신순)"""
        async with self._guard("get_recent_transactions"):
            rows = await self.db.fetchall(
                _TX_SELECT
                + """
                WHERE t.sender_id = ? OR t.receiver_id = ?
                ORDER BY t.created_at DESC, t.rowid DESC
                LIMIT ?
                """,
                (user_id, user_id, limit),
            )
        return [_tx_from_row(row) for row in rows]

    async def get_pending_deposits(self, user_id: str) -> list[Transaction]:
        """pending 입금 목록 (최신순)"""
        async with self._guard("get_pending_deposits"):
            rows = await self.db.fetchall(
                _TX_SELECT
                + """
                WHERE t.sender_id = ? AND t.type = ? AND t.status = ?
                ORDER BY t.created_at DESC, t.rowid DESC
                """,
                (
                    user_id,
                    TransactionType.DEPOSIT.value,
                    TransactionStatus.PENDING.value,
                ),
            )
        return [_tx_from_row(row) for row in rows]

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        """트랜잭션 단건 조회"""
        async with self._guard("get_transaction"):
            row = await self.db.fetchone(
                _TX_SELECT + " WHERE t.id = ?",
                (transaction_id,),
            )
        return _tx_from_row(row) if row else None

    # =========================================================================
    # 기록
    # =========================================================================

    async def insert_transaction(self, values: dict[str, Any]) -> Transaction:
        """트랜잭션 행 삽입

        Raises:
            ValidationError: 같은 계정에 동일 memo의 pending 입금이 이미 있음
        """
        transaction_id = f"tx-{uuid.uuid4().hex[:16]}"
        now = _now()
        payment_method = values.get("payment_method")

        try:
            async with self._guard("insert_transaction"):
                async with self.db.transaction() as conn:
                    await conn.execute(
                        """
                        INSERT INTO wallet_transactions (
                            id, sender_id, receiver_id, amount, fee,
                            type, status, memo, payment_method, description,
                            metadata_json, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            transaction_id,
                            values["sender_id"],
                            values.get("receiver_id"),
                            str(quantize_amount(values["amount"])),
                            str(quantize_amount(values.get("fee", Decimal("0")))),
                            TransactionType(values["type"]).value,
                            TransactionStatus(
                                values.get("status", TransactionStatus.PENDING)
                            ).value,
                            values["memo"],
                            PaymentMethod(payment_method).value if payment_method else None,
                            values.get("description"),
                            json.dumps(values.get("metadata") or {}),
                            now,
                            now,
                        ),
                    )
        except aiosqlite.IntegrityError as e:
            raise ValidationError(f"Duplicate pending memo: {values['memo']}") from e

        tx = await self.get_transaction(transaction_id)
        assert tx is not None

        logger.info(
            f"Transaction recorded: {transaction_id}",
            extra={"type": tx.type.value, "status": tx.status.value},
        )
        await self._publish_transaction(tx, ChangeKind.INSERT)
        return tx

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction | None:
        """pending 행의 상태 전이 (metadata는 병합)"""
        async with self._guard("update_transaction_status"):
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    "SELECT status, metadata_json FROM wallet_transactions WHERE id = ?",
                    (transaction_id,),
                )
                row = await cursor.fetchone()
                if row is None or row["status"] != TransactionStatus.PENDING.value:
                    return None

                merged = json.loads(row["metadata_json"] or "{}")
                merged.update(metadata or {})
                now = _now()

                await conn.execute(
                    """
                    UPDATE wallet_transactions
                    SET status = ?, metadata_json = ?, updated_at = ?,
                        confirmed_at = CASE WHEN ? = 'confirmed' THEN ? ELSE confirmed_at END
                    WHERE id = ? AND status = 'pending'
                    """,
                    (status.value, json.dumps(merged), now, status.value, now, transaction_id),
                )

        tx = await self.get_transaction(transaction_id)
        if tx is not None:
            await self._publish_transaction(tx, ChangeKind.UPDATE)
        return tx

    # =========================================================================
    # 프로시저: transfer_funds
    # =========================================================================

    async def transfer_funds(
        self,
        sender_handle: str,
        receiver_handle: str,
        amount: Decimal,
        memo: str,
        description: str,
        request_key: str | None = None,
    ) -> TransferOutcome:
        """내부 이체 (권한 있는 단일 트랜잭션)

        잔고를 서버 측에서 재검증하고 수수료를 적용.
        memo는 자유 텍스트이므로 중복 판단에 쓰지 않음.
        request_key가 같은 기존 이체가 있으면 수신자/금액이 같을 때만 기존 결과 반환,
        다르면 거부.
        """
        amount = quantize_amount(amount)
        if amount <= 0:
            return TransferOutcome(success=False, reason=ProcedureReasons.INVALID_AMOUNT)

        breakdown = calculate_fee(amount, self.fee_context)
        transaction_id = f"tx-{uuid.uuid4().hex[:16]}"
        now = _now()

        async with self._guard("transfer_funds"):
            async with self.db.transaction() as conn:
                sender = await self._fetch_user(conn, sender_handle)
                if sender is None:
                    return TransferOutcome(success=False, reason=ProcedureReasons.SENDER_NOT_FOUND)

                receiver = await self._fetch_user(conn, receiver_handle)
                if receiver is None:
                    return TransferOutcome(success=False, reason=ProcedureReasons.RECEIVER_NOT_FOUND)

                if sender["id"] == receiver["id"]:
                    return TransferOutcome(success=False, reason=ProcedureReasons.SELF_TRANSFER)

                if request_key is not None:
                    cursor = await conn.execute(
                        """
                        SELECT * FROM wallet_transactions
                        WHERE sender_id = ? AND request_key = ? AND type = ?
                        """,
                        (sender["id"], request_key, TransactionType.TRANSFER.value),
                    )
                    existing = await cursor.fetchone()
                    if existing is not None:
                        return self._replayed_transfer(
                            existing, receiver["id"], amount, request_key
                        )

                sender_balance = await self._fetch_balance(conn, sender["id"])
                if sender_balance is None:
                    return TransferOutcome(success=False, reason=ProcedureReasons.SENDER_NOT_FOUND)

                receiver_balance = await self._fetch_balance(conn, receiver["id"])
                if receiver_balance is None:
                    return TransferOutcome(
                        success=False, reason=ProcedureReasons.RECEIVER_NOT_PROVISIONED
                    )

                sender_available = Decimal(sender_balance["available_balance"])
                if sender_available < amount:
                    return TransferOutcome(
                        success=False, reason=ProcedureReasons.INSUFFICIENT_FUNDS
                    )

                receiver_available = Decimal(receiver_balance["available_balance"])

                await conn.execute(
                    "UPDATE balances SET available_balance = ?, updated_at = ? WHERE user_id = ?",
                    (str(sender_available - amount), now, sender["id"]),
                )
                await conn.execute(
                    "UPDATE balances SET available_balance = ?, updated_at = ? WHERE user_id = ?",
                    (str(receiver_available + breakdown.net_amount), now, receiver["id"]),
                )
                await conn.execute(
                    """
                    INSERT INTO wallet_transactions (
                        id, sender_id, receiver_id, amount, fee,
                        type, status, memo, payment_method, description,
                        metadata_json, request_key, created_at, updated_at, confirmed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        transaction_id,
                        sender["id"],
                        receiver["id"],
                        str(amount),
                        str(breakdown.fee),
                        TransactionType.TRANSFER.value,
                        TransactionStatus.CONFIRMED.value,
                        memo,
                        PaymentMethod.INTERNAL.value,
                        description,
                        json.dumps({"net_amount": str(breakdown.net_amount)}),
                        request_key,
                        now,
                        now,
                        now,
                    ),
                )

        logger.info(
            f"Transfer committed: {transaction_id}",
            extra={
                "sender": sender_handle,
                "receiver": receiver_handle,
                "amount": str(amount),
                "fee": str(breakdown.fee),
            },
        )

        await self._publish_after_commit(
            [sender["id"], receiver["id"]],
            transaction_id,
        )

        return TransferOutcome(
            success=True,
            transaction_id=transaction_id,
            amount=amount,
            fee=breakdown.fee,
            net_amount=breakdown.net_amount,
        )

    # =========================================================================
    # 프로시저: confirm_pending_deposit
    # =========================================================================

    async def confirm_pending_deposit(self, transaction_id: str) -> ConfirmOutcome:
        """입금 확정 (정산 조회 후 단일 트랜잭션으로 적립)

        - 이미 확정: 재적립 없이 현재 잔고 반환 (already_settled)
        - 정산 없음: not yet settled
        - 금액/목적지 불일치: settlement mismatch (행은 failed로 전이, 잔고 불변)
        """
        tx = await self.get_transaction(transaction_id)
        if tx is None:
            return ConfirmOutcome(success=False, reason=ProcedureReasons.TRANSACTION_NOT_FOUND)

        if tx.type != TransactionType.DEPOSIT:
            return ConfirmOutcome(success=False, reason=ProcedureReasons.NOT_A_DEPOSIT)

        if tx.status == TransactionStatus.CONFIRMED:
            return await self._settled_outcome(tx.sender_id)

        if tx.status == TransactionStatus.FAILED:
            reason = tx.metadata.get("failure_reason") or ProcedureReasons.DEPOSIT_FAILED
            return ConfirmOutcome(success=False, reason=reason)

        destination = str(tx.metadata.get("target_account", ""))

        # 외부 조회는 쓰기 잠금 밖에서 수행
        settlement = await self.settlement_source.find_settlement(tx.memo, destination)
        if settlement is None:
            return ConfirmOutcome(success=False, reason=ProcedureReasons.NOT_YET_SETTLED)

        if settlement.amount != tx.amount or settlement.destination != destination:
            logger.warning(
                f"Settlement mismatch: {transaction_id}",
                extra={
                    "expected_amount": str(tx.amount),
                    "settled_amount": str(settlement.amount),
                    "expected_destination": destination,
                    "settled_destination": settlement.destination,
                },
            )
            await self.update_transaction_status(
                transaction_id,
                TransactionStatus.FAILED,
                {
                    "failure_reason": ProcedureReasons.SETTLEMENT_MISMATCH,
                    "network_tx_id": settlement.network_tx_id,
                },
            )
            return ConfirmOutcome(success=False, reason=ProcedureReasons.SETTLEMENT_MISMATCH)

        now = _now()

        async with self._guard("confirm_pending_deposit"):
            async with self.db.transaction() as conn:
                # 동시 확정 경합: 트랜잭션 안에서 상태 재확인
                cursor = await conn.execute(
                    "SELECT status, metadata_json FROM wallet_transactions WHERE id = ?",
                    (transaction_id,),
                )
                row = await cursor.fetchone()
                if row["status"] != TransactionStatus.PENDING.value:
                    already = True
                else:
                    already = False
                    balance = await self._fetch_balance(conn, tx.sender_id)
                    if balance is None:
                        return ConfirmOutcome(
                            success=False, reason=ProcedureReasons.RECEIVER_NOT_PROVISIONED
                        )

                    new_available = Decimal(balance["available_balance"]) + tx.amount
                    metadata = json.loads(row["metadata_json"] or "{}")
                    metadata["network_tx_id"] = settlement.network_tx_id
                    metadata["settlement_source"] = settlement.source

                    await conn.execute(
                        "UPDATE balances SET available_balance = ?, updated_at = ? WHERE user_id = ?",
                        (str(new_available), now, tx.sender_id),
                    )
                    await conn.execute(
                        """
                        UPDATE wallet_transactions
                        SET status = ?, metadata_json = ?, updated_at = ?, confirmed_at = ?
                        WHERE id = ? AND status = 'pending'
                        """,
                        (
                            TransactionStatus.CONFIRMED.value,
                            json.dumps(metadata),
                            now,
                            now,
                            transaction_id,
                        ),
                    )

        if already:
            return await self._settled_outcome(tx.sender_id)

        logger.info(
            f"Deposit confirmed: {transaction_id}",
            extra={"amount": str(tx.amount), "network_tx_id": settlement.network_tx_id},
        )
        await self._publish_after_commit([tx.sender_id], transaction_id, ChangeKind.UPDATE)

        account = await self.get_account(tx.sender_id)
        return ConfirmOutcome(
            success=True,
            new_balance=account.available_balance if account else None,
        )

    async def _settled_outcome(self, user_id: str) -> ConfirmOutcome:
        """이미 확정된 입금의 결과 (재적립 없음)"""
        account = await self.get_account(user_id)
        return ConfirmOutcome(
            success=True,
            new_balance=account.available_balance if account else None,
            already_settled=True,
        )

    # =========================================================================
    # 정산 기록/조회 (ISettlementSource)
    # =========================================================================

    async def record_settlement(self, settlement: Settlement) -> bool:
        """관측된 정산 기록 (network_tx_id 기준 중복 무시)

        Returns:
            새로 기록되었으면 True
        """
        async with self._guard("record_settlement"):
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT OR IGNORE INTO settlements (
                        memo, amount, destination, network_tx_id, source
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        settlement.memo,
                        str(quantize_amount(settlement.amount)),
                        settlement.destination,
                        settlement.network_tx_id,
                        settlement.source,
                    ),
                )
                inserted = cursor.rowcount > 0

        if inserted:
            logger.info(
                "Settlement observed",
                extra={"memo": settlement.memo, "network_tx_id": settlement.network_tx_id},
            )
        return inserted

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        """memo로 정산 조회 (목적지 우선, 없으면 memo 일치 첫 행)"""
        async with self._guard("find_settlement"):
            row = await self.db.fetchone(
                """
                SELECT * FROM settlements WHERE memo = ?
                ORDER BY (destination = ?) DESC, id ASC
                LIMIT 1
                """,
                (memo, destination),
            )
        if row is None:
            return None

        return Settlement(
            memo=row["memo"],
            amount=Decimal(row["amount"]),
            destination=row["destination"],
            network_tx_id=row["network_tx_id"],
            source=row["source"],
        )

    # =========================================================================
    # 헬퍼
    # =========================================================================

    @staticmethod
    def _replayed_transfer(
        existing: Any,
        receiver_id: str,
        amount: Decimal,
        request_key: str,
    ) -> TransferOutcome:
        """같은 request_key의 이체 재요청 처리"""
        amount_prev = Decimal(existing["amount"])
        if existing["receiver_id"] != receiver_id or amount_prev != amount:
            logger.warning(
                f"Request key reused with different terms: {existing['id']}",
                extra={"request_key": request_key},
            )
            return TransferOutcome(success=False, reason=ProcedureReasons.REQUEST_KEY_CONFLICT)

        logger.info(
            f"Transfer replay ignored: {existing['id']}",
            extra={"request_key": request_key},
        )
        fee_prev = Decimal(existing["fee"])
        return TransferOutcome(
            success=True,
            transaction_id=existing["id"],
            amount=amount_prev,
            fee=fee_prev,
            net_amount=amount_prev - fee_prev,
        )

    @staticmethod
    async def _fetch_user(conn: aiosqlite.Connection, handle: str) -> Any:
        cursor = await conn.execute("SELECT id FROM users WHERE username = ?", (handle,))
        return await cursor.fetchone()

    @staticmethod
    async def _fetch_balance(conn: aiosqlite.Connection, user_id: str) -> Any:
        cursor = await conn.execute("SELECT * FROM balances WHERE user_id = ?", (user_id,))
        return await cursor.fetchone()

    async def _publish_balance(self, account: Account, kind: ChangeKind) -> None:
        if self.change_feed is None:
            return
        await self.change_feed.publish_row(
            ChangeFeedTables.BALANCES,
            kind,
            {
                "user_id": account.user_id,
                "account_id": account.ledger_account_id,
                "available_balance": str(account.available_balance),
                "reward_balance": str(account.reward_balance),
            },
        )

    async def _publish_transaction(self, tx: Transaction, kind: ChangeKind) -> None:
        if self.change_feed is None:
            return
        await self.change_feed.publish_row(
            ChangeFeedTables.TRANSACTIONS,
            kind,
            {
                "id": tx.id,
                "sender_id": tx.sender_id,
                "receiver_id": tx.receiver_id,
                "type": tx.type.value,
                "status": tx.status.value,
                "amount": str(tx.amount),
            },
        )

    async def _publish_after_commit(
        self,
        user_ids: list[str],
        transaction_id: str,
        tx_kind: ChangeKind = ChangeKind.INSERT,
    ) -> None:
        """프로시저 커밋 이후 변경 이벤트 발행"""
        if self.change_feed is None:
            return

        for user_id in user_ids:
            account = await self.get_account(user_id)
            if account is not None:
                await self._publish_balance(account, ChangeKind.UPDATE)

        tx = await self.get_transaction(transaction_id)
        if tx is not None:
            await self._publish_transaction(tx, tx_kind)
