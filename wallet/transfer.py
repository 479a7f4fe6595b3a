"""
이체 코디네이터

내부(플랫폼 원장) 이체와 외부(분산 원장) 이체 오케스트레이션.

- 사전 조건은 순서대로 검사하고 첫 실패에서 중단
- 클라이언트 잔고 검사는 fast-fail일 뿐, 권한 있는 검사는 백킹 스토어 프로시저가 수행
- 외부 이체는 브로드캐스트 전에 pending 행을 기록하고, 의도(memo)당 1회만 브로드캐스트
"""

import logging
from decimal import Decimal

from adapters.interfaces import IBackingStore, ILedgerBroadcaster
from core.constants import ProcedureReasons
from core.errors import (
    BroadcastRejectedError,
    DataUnavailableError,
    ErrorCode,
    InsufficientFundsError,
    InvalidCredentialFormat,
    NotAuthenticatedError,
    NotFoundError,
    TransportError,
    ValidationError,
    WalletError,
)
from core.fees import calculate_fee, parse_amount
from core.types import FeeContext, PaymentMethod, TransactionStatus, TransactionType
from core.utils.credentials import is_valid_signing_secret
from core.utils.memo import make_blockchain_transfer_memo, make_transfer_memo
from wallet.cache import BalanceCache, WalletSnapshot
from wallet.resolver import UserResolver
from wallet.results import OperationResult, TransferResult
from wallet.session import WalletSession, is_authenticated

logger = logging.getLogger(__name__)


# 프로시저 거부 사유 → 에러 코드
_REASON_CODES: dict[str, ErrorCode] = {
    ProcedureReasons.INSUFFICIENT_FUNDS: ErrorCode.INSUFFICIENT_FUNDS,
    ProcedureReasons.SENDER_NOT_FOUND: ErrorCode.NOT_FOUND,
    ProcedureReasons.RECEIVER_NOT_FOUND: ErrorCode.NOT_FOUND,
    ProcedureReasons.RECEIVER_NOT_PROVISIONED: ErrorCode.NOT_FOUND,
    ProcedureReasons.SELF_TRANSFER: ErrorCode.VALIDATION,
    ProcedureReasons.INVALID_AMOUNT: ErrorCode.VALIDATION,
    ProcedureReasons.REQUEST_KEY_CONFLICT: ErrorCode.VALIDATION,
}


class TransferCoordinator:
    """이체 코디네이터

    Args:
        store: 백킹 스토어
        resolver: 사용자 식별자 해석기
        cache: 잔고 캐시
        broadcaster: 외부 원장 브로드캐스터 (없으면 외부 이체 불가)
    """

    def __init__(
        self,
        store: IBackingStore,
        resolver: UserResolver,
        cache: BalanceCache,
        broadcaster: ILedgerBroadcaster | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self.cache = cache
        self.broadcaster = broadcaster

        # 브로드캐스트했거나 결과 불명인 memo (프로세스 내, 거부된 memo는 제거)
        # 외부 이체 1건당 문자열 1개씩 프로세스 수명 동안 유지
        self._broadcast_memos: set[str] = set()
        self._in_progress = 0

    @property
    def sending_transfer(self) -> bool:
        """이체 진행 중 여부 (호출자가 재요청 비활성화에 사용)"""
        return self._in_progress > 0

    def was_broadcast(self, memo: str) -> bool:
        return memo in self._broadcast_memos

    # =========================================================================
    # 내부 이체
    # =========================================================================

    async def transfer_internal(
        self,
        session: WalletSession | None,
        receiver_identifier: str,
        amount: Decimal | int | str,
        memo: str | None = None,
        description: str | None = None,
        request_key: str | None = None,
    ) -> OperationResult[TransferResult]:
        """플랫폼 내부 이체

        사전 조건 (순서대로): 인증 → 금액 > 0 → 금액 <= 캐시 잔고
        → 수신자 해석(정확 일치) + 원장 행 존재 → 본인 아님

        memo는 자유 텍스트. 재요청 중복 적용 방지는 request_key로만 판단.
        """
        self._in_progress += 1
        try:
            return await self._transfer_internal(
                session, receiver_identifier, amount, memo, description, request_key
            )
        except WalletError as e:
            logger.info(
                "내부 이체 거부",
                extra={"code": e.code.value, "reason": e.message},
            )
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("transfer_internal", e)
        finally:
            self._in_progress -= 1

    async def _transfer_internal(
        self,
        session: WalletSession | None,
        receiver_identifier: str,
        amount: Decimal | int | str,
        memo: str | None,
        description: str | None,
        request_key: str | None,
    ) -> OperationResult[TransferResult]:
        if not is_authenticated(session):
            raise NotAuthenticatedError("Not authenticated")
        assert session is not None

        value = parse_amount(amount)

        snapshot = await self._current_snapshot(session.user_id)
        if value > snapshot.available_balance:
            raise InsufficientFundsError(ProcedureReasons.INSUFFICIENT_FUNDS)

        receiver = await self.resolver.resolve(receiver_identifier, exact_only=True)
        if receiver is None:
            raise NotFoundError(f"User not found: {receiver_identifier}")

        receiver_account = await self.store.get_account(receiver.account_id)
        if receiver_account is None or not receiver_account.has_ledger_row:
            raise NotFoundError(ProcedureReasons.RECEIVER_NOT_PROVISIONED)

        if receiver.account_id == session.user_id:
            raise ValidationError(ProcedureReasons.SELF_TRANSFER)

        memo = memo or make_transfer_memo()
        description = description or f"Transfer to @{receiver.handle}"

        outcome = await self.store.transfer_funds(
            session.handle,
            receiver.handle,
            value,
            memo,
            description,
            request_key=request_key,
        )

        if not outcome.success:
            reason = outcome.reason or "Transfer failed"
            logger.warning(
                "이체 프로시저 거부",
                extra={"sender": session.handle, "receiver": receiver.handle, "reason": reason},
            )
            return OperationResult.rejected(
                reason,
                code=_REASON_CODES.get(reason, ErrorCode.REJECTED),
            )

        logger.info(
            f"Internal transfer completed: {outcome.transaction_id}",
            extra={
                "sender": session.handle,
                "receiver": receiver.handle,
                "amount": str(outcome.amount),
                "fee": str(outcome.fee),
            },
        )

        await self._refresh_after_commit(session.user_id)

        assert outcome.transaction_id is not None
        fee = outcome.fee if outcome.fee is not None else Decimal("0")
        gross = outcome.amount if outcome.amount is not None else value
        return OperationResult.ok(
            TransferResult(
                transaction_id=outcome.transaction_id,
                amount=gross,
                fee=fee,
                net_amount=outcome.net_amount if outcome.net_amount is not None else gross - fee,
                receiver_id=receiver.account_id,
                memo=memo,
            )
        )

    # =========================================================================
    # 외부 이체
    # =========================================================================

    async def transfer_external(
        self,
        session: WalletSession | None,
        destination: str,
        amount: Decimal | int | str,
        signing_secret: str,
        memo: str | None = None,
    ) -> OperationResult[TransferResult]:
        """분산 원장 계정으로 직접 이체

        사전 조건 (순서대로): 인증 → 서명키 형식 → 금액 > 0 → 금액 <= 캐시 잔고
        → 목적지가 본인 계정 아님
        """
        self._in_progress += 1
        try:
            return await self._transfer_external(
                session, destination, amount, signing_secret, memo
            )
        except WalletError as e:
            logger.info(
                "외부 이체 거부",
                extra={"code": e.code.value, "reason": e.message},
            )
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("transfer_external", e)
        finally:
            self._in_progress -= 1

    async def _transfer_external(
        self,
        session: WalletSession | None,
        destination: str,
        amount: Decimal | int | str,
        signing_secret: str,
        memo: str | None,
    ) -> OperationResult[TransferResult]:
        if not is_authenticated(session):
            raise NotAuthenticatedError("Not authenticated")
        assert session is not None

        if not is_valid_signing_secret(signing_secret):
            raise InvalidCredentialFormat("Invalid private key format")

        value = parse_amount(amount)

        snapshot = await self._current_snapshot(session.user_id)
        if value > snapshot.available_balance:
            raise InsufficientFundsError(ProcedureReasons.INSUFFICIENT_FUNDS)

        target = (destination or "").strip().lstrip("@")
        if not target:
            raise ValidationError("Destination account is required")

        own_account = session.ledger_account_id or (
            snapshot.account.ledger_account_id if snapshot.account else None
        )
        if not own_account:
            raise NotFoundError("Sender has no ledger account")
        if target == own_account:
            raise ValidationError("Cannot transfer to your own account")

        if self.broadcaster is None:
            raise DataUnavailableError("Ledger broadcaster is not configured")

        memo = memo or make_blockchain_transfer_memo()
        if memo in self._broadcast_memos:
            raise ValidationError(f"Transfer already broadcast: {memo}")

        breakdown = calculate_fee(value, FeeContext.BLOCKCHAIN_TRANSFER)

        # 브로드캐스트 전에 의도 기록 (중단 시에도 흔적 보존)
        tx = await self.store.insert_transaction({
            "sender_id": session.user_id,
            "receiver_id": None,
            "amount": value,
            "fee": breakdown.fee,
            "memo": memo,
            "type": TransactionType.BLOCKCHAIN_TRANSFER,
            "status": TransactionStatus.PENDING,
            "payment_method": PaymentMethod.BLOCKCHAIN,
            "description": f"Blockchain transfer to @{target}",
            "metadata": {
                "destination_account": target,
                "transaction_type": "direct_blurt_transfer",
                "memo": memo,
            },
        })

        self._broadcast_memos.add(memo)

        try:
            network_tx_id = await self.broadcaster.broadcast_transfer(
                own_account,
                target,
                value,
                memo,
                signing_secret,
            )
        except BroadcastRejectedError as e:
            logger.warning(
                f"Broadcast rejected: {tx.id}",
                extra={"memo": memo, "reason": e.message},
            )
            await self.store.update_transaction_status(
                tx.id,
                TransactionStatus.FAILED,
                {"failure_reason": e.message},
            )
            self._broadcast_memos.discard(memo)
            await self._refresh_after_commit(session.user_id)
            return OperationResult.fail(e)
        except TransportError as e:
            # 결과 불명: pending 행은 외부 대사 대상으로 남김, 재시도 금지
            logger.error(
                f"Broadcast outcome unknown: {tx.id}",
                extra={"memo": memo, "error": e.message},
            )
            return OperationResult.rejected(
                f"Broadcast outcome unknown, transaction {tx.id} left pending",
                code=ErrorCode.DATA_UNAVAILABLE,
                retryable=False,
            )

        # 브로드캐스트는 되돌릴 수 없으므로 이후 기록 실패는 결과에 반영하지 않음
        await self._record_network_tx_id(tx.id, network_tx_id)

        logger.info(
            f"External transfer broadcast: {tx.id}",
            extra={
                "destination": target,
                "amount": str(value),
                "network_tx_id": network_tx_id,
            },
        )

        await self._refresh_after_commit(session.user_id)

        return OperationResult.ok(
            TransferResult(
                transaction_id=tx.id,
                amount=value,
                fee=breakdown.fee,
                net_amount=breakdown.net_amount,
                memo=memo,
                network_tx_id=network_tx_id,
            )
        )

    # =========================================================================
    # 헬퍼
    # =========================================================================

    async def _current_snapshot(self, user_id: str) -> WalletSnapshot:
        """캐시 스냅샷 (조회 전이면 1회 로드)"""
        snapshot = self.cache.snapshot(user_id)
        if not snapshot.is_loaded:
            snapshot = await self.cache.refresh(user_id)
        return snapshot

    async def _record_network_tx_id(self, transaction_id: str, network_tx_id: str) -> None:
        try:
            await self.store.update_transaction_status(
                transaction_id,
                TransactionStatus.PENDING,
                {"network_tx_id": network_tx_id},
            )
        except Exception:
            logger.exception(
                f"Failed to record network tx id: {transaction_id}",
                extra={"network_tx_id": network_tx_id},
            )

    async def _refresh_after_commit(self, user_id: str) -> None:
        """자금 이동 후 캐시 갱신 (실패해도 결과에는 영향 없음)"""
        try:
            await self.cache.refresh(user_id, force_new=True)
        except DataUnavailableError as e:
            logger.warning(
                "이체 후 캐시 갱신 실패",
                extra={"user_id": user_id, "error": e.message},
            )
