"""
wallet/service.py 테스트

세션 생성, 캐시 조회 위임, 검색/해석 결과, watch, 종료 테스트
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.change_feed import InProcessChangeFeed
from adapters.db.user_directory import SQLiteUserDirectory
from adapters.mock.ledger_network import MockLedgerNetwork
from adapters.mock.payment_gateway import MockPaymentGateway
from adapters.models import Identity
from core.errors import ErrorCode, NotFoundError, TransportError
from wallet.service import WalletService

VALID_SECRET = "5K" + "a" * 49


@pytest_asyncio.fixture
async def service(
    store: SQLiteBackingStore,
    directory: SQLiteUserDirectory,
    feed: InProcessChangeFeed,
    network: MockLedgerNetwork,
    gateway: MockPaymentGateway,
) -> WalletService:
    wallet = WalletService(
        store,
        directory,
        feed=feed,
        broadcaster=network,
        gateway=gateway,
    )
    yield wallet
    await wallet.close()


class TestSession:
    """session_for 테스트"""

    @pytest.mark.asyncio
    async def test_session_for_handle(self, service: WalletService, alice: Identity) -> None:
        session = await service.session_for("@alice", contact="alice@example.com")

        assert session.user_id == alice.account_id
        assert session.handle == "alice"
        assert session.ledger_account_id == "alice"
        assert session.is_authenticated

    @pytest.mark.asyncio
    async def test_session_without_ledger_row(self, service: WalletService, carol: Identity) -> None:
        session = await service.session_for("carol")

        assert session.ledger_account_id is None

    @pytest.mark.asyncio
    async def test_unknown_handle(self, service: WalletService) -> None:
        with pytest.raises(NotFoundError):
            await service.session_for("nobody")


class TestQueries:
    """캐시 조회 위임 테스트"""

    @pytest.mark.asyncio
    async def test_refresh_and_balance(self, service: WalletService, alice: Identity) -> None:
        assert service.balance(alice.account_id) == (Decimal("0"), Decimal("0"), Decimal("0"))

        result = await service.refresh(alice.account_id)

        assert result.success
        assert service.balance(alice.account_id) == (
            Decimal("100"),
            Decimal("0"),
            Decimal("100"),
        )
        assert service.transactions(alice.account_id) == ()
        assert service.pending_deposits(alice.account_id) == ()
        assert not service.is_loading(alice.account_id)
        assert service.last_error(alice.account_id) is None

    @pytest.mark.asyncio
    async def test_refresh_failure_is_result(self, directory: SQLiteUserDirectory) -> None:
        store = AsyncMock()
        store.get_account.side_effect = TransportError("offline")
        wallet = WalletService(store, directory)

        result = await wallet.refresh("u-1")

        assert not result.success
        assert result.code == ErrorCode.DATA_UNAVAILABLE
        assert result.retryable
        assert wallet.last_error("u-1") == "offline"


class TestUsers:
    """사용자 검색/해석 테스트"""

    @pytest.mark.asyncio
    async def test_search_excludes_self(
        self,
        service: WalletService,
        alice: Identity,
        store: SQLiteBackingStore,
    ) -> None:
        await store.create_user("alina", "Alina Cho")
        session = await service.session_for("alice")

        result = await service.search_users("ali", session)

        assert result.success
        assert [i.handle for i in result.value] == ["alina"]

    @pytest.mark.asyncio
    async def test_search_short_prefix(self, service: WalletService, alice: Identity) -> None:
        result = await service.search_users("a")

        assert result.success
        assert result.value == []

    @pytest.mark.asyncio
    async def test_resolve_user_partial(self, service: WalletService, bob: Identity) -> None:
        """표시용 해석은 부분 일치 허용"""
        result = await service.resolve_user("Lee")

        assert result.success
        assert result.value.account_id == bob.account_id
        assert result.value.avatar_ref

    @pytest.mark.asyncio
    async def test_resolve_user_not_found(self, service: WalletService) -> None:
        result = await service.resolve_user("ghost")

        assert result.code == ErrorCode.NOT_FOUND


class TestMoneyMovement:
    """자금 이동 위임 테스트"""

    @pytest.mark.asyncio
    async def test_transfer_and_deposit_flow(
        self,
        service: WalletService,
        network: MockLedgerNetwork,
        alice: Identity,
        bob: Identity,
    ) -> None:
        session = await service.session_for("alice", contact="alice@example.com")

        transfer = await service.transfer_internal(session, "bob", "10")
        assert transfer.success, transfer.error
        assert service.balance(alice.account_id)[0] == Decimal("90")

        deposit = await service.initiate_ledger_deposit(session, "5", VALID_SECRET)
        assert deposit.success, deposit.error
        assert len(service.pending_deposits(alice.account_id)) == 1

        network.settle(deposit.value.memo, Decimal("5"), "blurtok.treasury")
        confirmed = await service.confirm_deposit(deposit.value.transaction_id, session)

        assert confirmed.value.new_balance == Decimal("95")
        assert service.balance(alice.account_id)[0] == Decimal("95")

        external = await service.transfer_external(session, "outside", "1", VALID_SECRET)
        assert external.success, external.error
        assert not service.sending_transfer

    @pytest.mark.asyncio
    async def test_fiat_deposit(self, service: WalletService, alice: Identity) -> None:
        session = await service.session_for("alice")

        result = await service.initiate_fiat_deposit(session, "20", "pay@example.com")

        assert result.success
        assert result.value.redirect_url


class TestWatch:
    """변경 피드 구독 테스트"""

    @pytest.mark.asyncio
    async def test_watch_updates_receiver(
        self,
        service: WalletService,
        alice: Identity,
        bob: Identity,
    ) -> None:
        await service.refresh(bob.account_id)
        handle = await service.watch(bob.account_id)
        assert handle is not None

        session = await service.session_for("alice")
        await service.transfer_internal(session, "bob", "4")

        for _ in range(200):
            if service.balance(bob.account_id)[0] == Decimal("53.900"):
                break
            await asyncio.sleep(0.01)

        assert service.balance(bob.account_id)[0] == Decimal("53.900")

        await service.unwatch(bob.account_id)
        assert not handle.is_active

    @pytest.mark.asyncio
    async def test_watch_without_feed(
        self,
        store: SQLiteBackingStore,
        directory: SQLiteUserDirectory,
    ) -> None:
        wallet = WalletService(store, directory)

        assert await wallet.watch("u-1") is None
        await wallet.unwatch("u-1")


class TestClose:
    """종료 테스트"""

    @pytest.mark.asyncio
    async def test_close_releases_resources_in_reverse(
        self,
        store: SQLiteBackingStore,
        directory: SQLiteUserDirectory,
    ) -> None:
        order: list[str] = []

        class Resource:
            def __init__(self, name: str):
                self.name = name

            async def close(self) -> None:
                order.append(self.name)

        class Broken:
            async def close(self) -> None:
                raise RuntimeError("already closed")

        wallet = WalletService(
            store,
            directory,
            resources=[Resource("db"), Broken(), Resource("http")],
        )

        async with wallet:
            pass

        assert order == ["http", "db"]
