"""
지갑 서비스 (외부 노출 인터페이스)

리졸버, 캐시, 이체 코디네이터, 입금 대사기, 변경 피드 리스너를 묶어
호출자(화면/HTTP)에게 하나의 진입점으로 제공.
세션은 매 호출마다 명시적으로 전달.
"""

import logging
from decimal import Decimal
from typing import Any

from adapters.interfaces import (
    IBackingStore,
    IChangeFeed,
    ILedgerBroadcaster,
    IPaymentGateway,
    IUserDirectory,
)
from adapters.models import Identity, Transaction
from core.constants import Defaults, Limits
from core.errors import NotFoundError, WalletError
from wallet.cache import BalanceCache, LedgerEntry, WalletSnapshot
from wallet.deposit import DepositReconciler
from wallet.listener import ChangeFeedListener, SubscriptionHandle
from wallet.resolver import UserResolver, with_avatar
from wallet.results import ConfirmResult, DepositHandle, OperationResult, TransferResult
from wallet.session import WalletSession
from wallet.transfer import TransferCoordinator

logger = logging.getLogger(__name__)


class WalletService:
    """지갑 서비스

    Args:
        store: 백킹 스토어
        directory: 사용자 디렉토리
        feed: 변경 피드 (없으면 watch 불가)
        broadcaster: 외부 원장 브로드캐스터
        gateway: 결제 게이트웨이
        treasury_account: 원장 직접 입금 수취 계정
        recent_limit: 캐시할 최근 트랜잭션 개수
        resources: 종료 시 close()할 객체 목록

    사용 예시:
    ```python
    service = WalletService(store, directory, feed, broadcaster=network)
    session = await service.session_for("alice")
    await service.refresh(session.user_id)
    result = await service.transfer_internal(session, "bob", "10")
    ```
    """

    def __init__(
        self,
        store: IBackingStore,
        directory: IUserDirectory,
        feed: IChangeFeed | None = None,
        broadcaster: ILedgerBroadcaster | None = None,
        gateway: IPaymentGateway | None = None,
        treasury_account: str = Defaults.TREASURY_ACCOUNT,
        recent_limit: int = Limits.RECENT_TRANSACTIONS,
        resources: list[Any] | None = None,
    ):
        self.store = store
        self.directory = directory

        self.resolver = UserResolver(directory)
        self.cache = BalanceCache(store, recent_limit=recent_limit)
        self.transfers = TransferCoordinator(store, self.resolver, self.cache, broadcaster)
        self.deposits = DepositReconciler(
            store,
            self.cache,
            gateway=gateway,
            treasury_account=treasury_account,
        )
        self.listener = ChangeFeedListener(feed, self.cache) if feed is not None else None

        self._resources = list(resources or [])

    # -------------------------------------------------------------------------
    # 세션
    # -------------------------------------------------------------------------

    async def session_for(self, handle: str, contact: str | None = None) -> WalletSession:
        """핸들로 세션 컨텍스트 생성

        Raises:
            NotFoundError: 사용자 없음
        """
        query = handle.strip().lstrip("@") if handle else ""
        identity = await self.store.get_user_by_handle(query) if query else None
        if identity is None:
            raise NotFoundError(f"User not found: {handle}")

        account = await self.store.get_account(identity.account_id)
        return WalletSession(
            user_id=identity.account_id,
            handle=identity.handle,
            ledger_account_id=account.ledger_account_id if account else None,
            contact=contact,
        )

    # -------------------------------------------------------------------------
    # 상태 조회 (캐시)
    # -------------------------------------------------------------------------

    @property
    def sending_transfer(self) -> bool:
        """이체 진행 중 여부"""
        return self.transfers.sending_transfer

    def snapshot(self, user_id: str) -> WalletSnapshot:
        return self.cache.snapshot(user_id)

    def balance(self, user_id: str) -> tuple[Decimal, Decimal, Decimal]:
        """(available, reward, total)"""
        snapshot = self.cache.snapshot(user_id)
        return snapshot.available_balance, snapshot.reward_balance, snapshot.total

    def transactions(self, user_id: str) -> tuple[LedgerEntry, ...]:
        return self.cache.snapshot(user_id).transactions

    def pending_deposits(self, user_id: str) -> tuple[Transaction, ...]:
        return self.deposits.pending_deposits(user_id)

    def is_loading(self, user_id: str) -> bool:
        return self.cache.is_loading(user_id)

    def last_error(self, user_id: str) -> str | None:
        return self.cache.last_error(user_id)

    async def refresh(self, user_id: str) -> OperationResult[WalletSnapshot]:
        """잔고/트랜잭션 갱신"""
        try:
            return OperationResult.ok(await self.cache.refresh(user_id))
        except WalletError as e:
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("refresh", e)

    # -------------------------------------------------------------------------
    # 사용자 검색
    # -------------------------------------------------------------------------

    async def search_users(
        self,
        prefix: str,
        session: WalletSession | None = None,
    ) -> OperationResult[list[Identity]]:
        """사용자 접두사 검색 (본인 제외)"""
        exclude = session.user_id if session is not None else None
        try:
            return OperationResult.ok(await self.resolver.search(prefix, exclude))
        except WalletError as e:
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("search_users", e)

    async def resolve_user(self, identifier: str) -> OperationResult[Identity]:
        """표시용 식별자 해석 (부분 일치 포함)"""
        try:
            identity = await self.resolver.resolve(identifier)
        except WalletError as e:
            return OperationResult.fail(e)
        except Exception as e:
            return OperationResult.unexpected("resolve_user", e)

        if identity is None:
            return OperationResult.fail(NotFoundError(f"User not found: {identifier}"))
        return OperationResult.ok(with_avatar(identity))

    # -------------------------------------------------------------------------
    # 자금 이동
    # -------------------------------------------------------------------------

    async def transfer_internal(
        self,
        session: WalletSession | None,
        receiver_identifier: str,
        amount: Decimal | int | str,
        memo: str | None = None,
        description: str | None = None,
        request_key: str | None = None,
    ) -> OperationResult[TransferResult]:
        return await self.transfers.transfer_internal(
            session, receiver_identifier, amount, memo, description, request_key
        )

    async def transfer_external(
        self,
        session: WalletSession | None,
        destination: str,
        amount: Decimal | int | str,
        signing_secret: str,
        memo: str | None = None,
    ) -> OperationResult[TransferResult]:
        return await self.transfers.transfer_external(
            session, destination, amount, signing_secret, memo
        )

    async def initiate_fiat_deposit(
        self,
        session: WalletSession | None,
        amount: Decimal | int | str,
        contact_ref: str | None = None,
    ) -> OperationResult[DepositHandle]:
        return await self.deposits.initiate_fiat_deposit(session, amount, contact_ref)

    async def initiate_ledger_deposit(
        self,
        session: WalletSession | None,
        amount: Decimal | int | str,
        signing_secret: str,
    ) -> OperationResult[DepositHandle]:
        return await self.deposits.initiate_ledger_deposit(session, amount, signing_secret)

    async def confirm_deposit(
        self,
        transaction_id: str,
        session: WalletSession | None = None,
    ) -> OperationResult[ConfirmResult]:
        return await self.deposits.confirm_deposit(transaction_id, session)

    # -------------------------------------------------------------------------
    # 변경 피드
    # -------------------------------------------------------------------------

    async def watch(self, user_id: str) -> SubscriptionHandle | None:
        """변경 피드 구독 시작 (피드가 없으면 None)"""
        if self.listener is None:
            logger.debug("변경 피드 없음, watch 생략", extra={"user_id": user_id})
            return None
        return await self.listener.start(user_id)

    async def unwatch(self, user_id: str) -> None:
        if self.listener is not None:
            await self.listener.stop(user_id)

    # -------------------------------------------------------------------------
    # 종료
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """구독 해제 및 리소스 정리"""
        if self.listener is not None:
            await self.listener.stop_all()

        for resource in reversed(self._resources):
            try:
                await resource.close()
            except Exception as e:
                logger.warning(
                    "리소스 정리 실패",
                    extra={"resource": type(resource).__name__, "error": str(e)},
                )
        self._resources.clear()

    async def __aenter__(self) -> "WalletService":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
