"""
Protocol 인터페이스 테스트

각 구현체가 Protocol을 준수하는지 확인.
"""

from pathlib import Path

import pytest

from adapters.blurt.broadcaster import SignerBroadcaster
from adapters.blurt.rpc_client import BlurtRpcClient
from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.change_feed import InProcessChangeFeed
from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.db.user_directory import SQLiteUserDirectory
from adapters.interfaces import (
    IBackingStore,
    IChangeFeed,
    ILedgerBroadcaster,
    IPaymentGateway,
    ISettlementSource,
    IUserDirectory,
)
from adapters.mock.ledger_network import MockLedgerNetwork
from adapters.mock.payment_gateway import MockPaymentGateway
from adapters.paystack.client import PaystackClient
from adapters.settlement import MemoRoutedSettlementSource
from adapters.supabase.realtime_client import SupabaseRealtimeClient
from adapters.supabase.rest_client import SupabaseRestClient
from adapters.supabase.store import SupabaseBackingStore, SupabaseUserDirectory


@pytest.fixture
def rest_client() -> SupabaseRestClient:
    return SupabaseRestClient("https://demo.supabase.co/rest/v1", "anon")


class TestBackingStoreProtocol:
    """IBackingStore 구현 확인"""

    def test_sqlite_store(self, tmp_path: Path) -> None:
        store = SQLiteBackingStore(SQLiteAdapter(tmp_path / "w.db"))

        assert isinstance(store, IBackingStore)
        # 로컬 정산 테이블도 정산 출처로 사용 가능
        assert isinstance(store, ISettlementSource)

    def test_supabase_store(self, rest_client: SupabaseRestClient) -> None:
        assert isinstance(SupabaseBackingStore(rest_client), IBackingStore)

    def test_protocol_has_procedures(self) -> None:
        for method in ("transfer_funds", "confirm_pending_deposit", "insert_transaction"):
            assert hasattr(IBackingStore, method)


class TestUserDirectoryProtocol:
    """IUserDirectory 구현 확인"""

    def test_sqlite_directory(self, tmp_path: Path) -> None:
        assert isinstance(SQLiteUserDirectory(SQLiteAdapter(tmp_path / "w.db")), IUserDirectory)

    def test_supabase_directory(self, rest_client: SupabaseRestClient) -> None:
        assert isinstance(SupabaseUserDirectory(rest_client), IUserDirectory)


class TestChangeFeedProtocol:
    """IChangeFeed 구현 확인"""

    def test_in_process(self) -> None:
        assert isinstance(InProcessChangeFeed(), IChangeFeed)

    def test_realtime(self) -> None:
        client = SupabaseRealtimeClient("wss://demo.supabase.co/realtime/v1/websocket", "anon")

        assert isinstance(client, IChangeFeed)


class TestNetworkProtocols:
    """브로드캐스터/정산 출처/결제 게이트웨이 구현 확인"""

    def test_signer_broadcaster(self) -> None:
        assert isinstance(SignerBroadcaster("http://signer.local"), ILedgerBroadcaster)

    def test_rpc_client(self) -> None:
        assert isinstance(BlurtRpcClient(), ISettlementSource)

    def test_paystack(self) -> None:
        client = PaystackClient("sk_test")

        assert isinstance(client, IPaymentGateway)
        assert isinstance(client, ISettlementSource)

    def test_router(self) -> None:
        assert isinstance(MemoRoutedSettlementSource({}), ISettlementSource)

    def test_mocks(self) -> None:
        network = MockLedgerNetwork()
        gateway = MockPaymentGateway()

        assert isinstance(network, ILedgerBroadcaster)
        assert isinstance(network, ISettlementSource)
        assert isinstance(gateway, IPaymentGateway)
        assert isinstance(gateway, ISettlementSource)
