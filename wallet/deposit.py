"""
입금 대사 (pending → confirmed)

두 가지 입금 경로:
- 게이트웨이(Paystack): pending 행 기록 후 결제 페이지 URL 발급
- 원장 직접 입금(Blurt): 전역 유일 memo 발급, 사용자가 treasury로 memo를 붙여 이체

확정은 항상 백킹 스토어의 confirm_pending_deposit 프로시저 폴링으로만 수행.
이미 확정된 입금을 다시 확정해도 재적립 없이 확정 상태만 반환.
"""

import logging
from decimal import Decimal

from adapters.interfaces import IBackingStore, IPaymentGateway
from adapters.models import Transaction
from core.constants import Defaults, ProcedureReasons
from core.errors import (
    DataUnavailableError,
    ErrorCode,
    InvalidCredentialFormat,
    NotAuthenticatedError,
    NotFoundError,
    ValidationError,
    WalletError,
)
from core.fees import parse_amount
from core.types import PaymentMethod, TransactionStatus, TransactionType
from core.utils.credentials import is_valid_signing_secret
from core.utils.memo import make_gateway_deposit_memo, make_ledger_deposit_memo
from wallet.cache import BalanceCache
from wallet.results import ConfirmResult, DepositHandle, DepositInstructions, OperationResult
from wallet.session import WalletSession, is_authenticated

logger = logging.getLogger(__name__)


# 확정 프로시저 거부 사유 → (에러 코드, 재시도 가능)
_CONFIRM_REASONS: dict[str, tuple[ErrorCode, bool]] = {
    ProcedureReasons.NOT_YET_SETTLED: (ErrorCode.SETTLEMENT_NOT_YET_CONFIRMED, True),
    ProcedureReasons.SETTLEMENT_MISMATCH: (ErrorCode.SETTLEMENT_MISMATCH, False),
    ProcedureReasons.TRANSACTION_NOT_FOUND: (ErrorCode.NOT_FOUND, False),
    ProcedureReasons.NOT_A_DEPOSIT: (ErrorCode.VALIDATION, False),
}


class DepositReconciler:
    """입금 대사기

    Args:
        store: 백킹 스토어
        cache: 잔고 캐시
        gateway: 결제 게이트웨이 (없으면 게이트웨이 입금 불가)
        treasury_account: 원장 직접 입금 수취 계정
    """

    def __init__(
        self,
        store: IBackingStore,
        cache: BalanceCache,
        gateway: IPaymentGateway | None = None,
        treasury_account: str = Defaults.TREASURY_ACCOUNT,
    ):
        self.store = store
        self.cache = cache
        self.gateway = gateway
        self.treasury_account = treasury_account

    # =========================================================================
    # 게이트웨이 입금
    # =========================================================================

    async def initiate_fiat_deposit(
        self,
        session: WalletSession | None,
        amount: Decimal | int | str,
        contact_ref: str | None = None,
    ) -> OperationResult[DepositHandle]:
        """게이트웨이 입금 시작 (잔고 적립 없음)"""
        try:
            return await self._initiate_fiat_deposit(session, amount, contact_ref)
        except WalletError as e:
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("initiate_fiat_deposit", e)

    async def _initiate_fiat_deposit(
        self,
        session: WalletSession | None,
        amount: Decimal | int | str,
        contact_ref: str | None,
    ) -> OperationResult[DepositHandle]:
        if not is_authenticated(session):
            raise NotAuthenticatedError("Not authenticated")
        assert session is not None

        value = parse_amount(amount)

        contact = contact_ref or session.contact
        if not contact:
            raise ValidationError("Email is required for Paystack payment")

        if self.gateway is None:
            raise DataUnavailableError("Payment gateway is not configured")

        memo = make_gateway_deposit_memo()
        tx = await self.store.insert_transaction({
            "sender_id": session.user_id,
            "receiver_id": session.user_id,
            "amount": value,
            "fee": Decimal("0"),
            "memo": memo,
            "type": TransactionType.DEPOSIT,
            "status": TransactionStatus.PENDING,
            "payment_method": PaymentMethod.PAYSTACK,
            "description": f"Paystack deposit of {value} BLURT",
            "metadata": {
                "user_email": contact,
                "payment_gateway": "paystack",
                "target_account": Defaults.GATEWAY_ACCOUNT,
            },
        })

        try:
            payment = await self.gateway.initialize_payment(value, contact, memo)
        except WalletError as e:
            logger.warning(
                f"Payment initialization failed: {tx.id}",
                extra={"memo": memo, "error": e.message},
            )
            await self.store.update_transaction_status(
                tx.id,
                TransactionStatus.FAILED,
                {"failure_reason": e.message},
            )
            await self._refresh_quietly(session.user_id)
            return OperationResult.fail(e)

        await self.store.update_transaction_status(
            tx.id,
            TransactionStatus.PENDING,
            {"correlation_id": payment.correlation_id},
        )

        logger.info(
            f"Fiat deposit initiated: {tx.id}",
            extra={"amount": str(value), "memo": memo},
        )

        await self._refresh_quietly(session.user_id)

        return OperationResult.ok(
            DepositHandle(
                transaction_id=tx.id,
                memo=memo,
                amount=value,
                redirect_url=payment.redirect_url,
                correlation_id=payment.correlation_id,
            )
        )

    # =========================================================================
    # 원장 직접 입금
    # =========================================================================

    async def initiate_ledger_deposit(
        self,
        session: WalletSession | None,
        amount: Decimal | int | str,
        signing_secret: str,
    ) -> OperationResult[DepositHandle]:
        """원장 직접 입금 의도 기록 + 이체 안내 반환"""
        try:
            return await self._initiate_ledger_deposit(session, amount, signing_secret)
        except WalletError as e:
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("initiate_ledger_deposit", e)

    async def _initiate_ledger_deposit(
        self,
        session: WalletSession | None,
        amount: Decimal | int | str,
        signing_secret: str,
    ) -> OperationResult[DepositHandle]:
        if not is_authenticated(session):
            raise NotAuthenticatedError("Not authenticated")
        assert session is not None

        value = parse_amount(amount)

        if not is_valid_signing_secret(signing_secret):
            raise InvalidCredentialFormat("Invalid private key format")

        memo = make_ledger_deposit_memo()
        metadata = {
            "memo": memo,
            "target_account": self.treasury_account,
            "transaction_type": "blurt_direct",
        }
        if session.ledger_account_id:
            metadata["source_account"] = session.ledger_account_id

        tx = await self.store.insert_transaction({
            "sender_id": session.user_id,
            "receiver_id": session.user_id,
            "amount": value,
            "fee": Decimal("0"),
            "memo": memo,
            "type": TransactionType.DEPOSIT,
            "status": TransactionStatus.PENDING,
            "payment_method": PaymentMethod.BLURT_WALLET,
            "description": f"Blurt wallet deposit of {value} BLURT",
            "metadata": metadata,
        })

        logger.info(
            f"Ledger deposit initiated: {tx.id}",
            extra={"amount": str(value), "memo": memo},
        )

        await self._refresh_quietly(session.user_id)

        return OperationResult.ok(
            DepositHandle(
                transaction_id=tx.id,
                memo=memo,
                amount=value,
                instructions=DepositInstructions(
                    target_account=self.treasury_account,
                    memo=memo,
                    amount=value,
                ),
            )
        )

    # =========================================================================
    # 확정
    # =========================================================================

    async def confirm_deposit(
        self,
        transaction_id: str,
        session: WalletSession | None = None,
    ) -> OperationResult[ConfirmResult]:
        """입금 확정 폴링 (반복 호출 안전)

        Args:
            transaction_id: pending 입금 트랜잭션 ID
            session: 주어지면 본인 입금인지 확인
        """
        try:
            return await self._confirm_deposit(transaction_id, session)
        except WalletError as e:
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("confirm_deposit", e)

    async def _confirm_deposit(
        self,
        transaction_id: str,
        session: WalletSession | None,
    ) -> OperationResult[ConfirmResult]:
        if not transaction_id:
            raise ValidationError("Transaction ID is required")

        owner_id = session.user_id if session is not None else None
        if session is not None:
            tx = await self.store.get_transaction(transaction_id)
            if tx is None or tx.sender_id != session.user_id:
                raise NotFoundError(ProcedureReasons.TRANSACTION_NOT_FOUND)

        outcome = await self.store.confirm_pending_deposit(transaction_id)

        if not outcome.success:
            reason = outcome.reason or "Failed to confirm deposit"
            code, retryable = _CONFIRM_REASONS.get(reason, (ErrorCode.REJECTED, False))
            logger.info(
                "입금 확정 보류",
                extra={"transaction_id": transaction_id, "reason": reason},
            )
            if owner_id is not None and code == ErrorCode.SETTLEMENT_MISMATCH:
                await self._refresh_quietly(owner_id)
            return OperationResult.rejected(reason, code=code, retryable=retryable)

        if owner_id is None:
            tx = await self.store.get_transaction(transaction_id)
            owner_id = tx.sender_id if tx is not None else None

        if owner_id is not None:
            await self._refresh_quietly(owner_id)

        if not outcome.already_settled:
            logger.info(
                f"Deposit confirmed: {transaction_id}",
                extra={"new_balance": str(outcome.new_balance)},
            )

        return OperationResult.ok(
            ConfirmResult(
                transaction_id=transaction_id,
                new_balance=outcome.new_balance,
                already_settled=outcome.already_settled,
            )
        )

    # =========================================================================
    # 조회
    # =========================================================================

    def pending_deposits(self, user_id: str) -> tuple[Transaction, ...]:
        """캐시된 pending 입금 목록 (최신순)"""
        return self.cache.snapshot(user_id).pending_deposits

    async def _refresh_quietly(self, user_id: str) -> None:
        try:
            await self.cache.refresh(user_id, force_new=True)
        except DataUnavailableError as e:
            logger.warning(
                "입금 후 캐시 갱신 실패",
                extra={"user_id": user_id, "error": e.message},
            )
