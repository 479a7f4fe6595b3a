"""
wallet/transfer.py 테스트

내부 이체 사전 조건 순서, 프로시저 거부 사유 전달,
외부 이체 브로드캐스트 결과별 행 상태 테스트
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.user_directory import SQLiteUserDirectory
from adapters.mock.ledger_network import MockLedgerNetwork
from adapters.models import Identity, TransferOutcome
from core.errors import ErrorCode, TransportError
from core.types import TransactionStatus, TransactionType
from wallet.cache import BalanceCache
from wallet.resolver import UserResolver
from wallet.session import WalletSession
from wallet.transfer import TransferCoordinator

VALID_SECRET = "5K" + "a" * 49


@pytest.fixture
def coordinator(
    store: SQLiteBackingStore,
    directory: SQLiteUserDirectory,
    network: MockLedgerNetwork,
) -> TransferCoordinator:
    return TransferCoordinator(
        store,
        UserResolver(directory),
        BalanceCache(store),
        broadcaster=network,
    )


class TestTransferInternal:
    """내부 이체 테스트"""

    @pytest.mark.asyncio
    async def test_success(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """10 BLURT 이체: 수수료 0.25, 수신 9.75, 송신자 캐시 갱신"""
        result = await coordinator.transfer_internal(alice_session, "@bob", "10")

        assert result.success, result.error
        assert result.value.fee == Decimal("0.250")
        assert result.value.net_amount == Decimal("9.750")
        assert result.value.receiver_id == bob.account_id
        assert result.value.memo.startswith("TRANSFER_")

        bob_account = await store.get_account(bob.account_id)
        assert bob_account.available_balance == Decimal("59.750")

        snapshot = coordinator.cache.snapshot(alice_session.user_id)
        assert snapshot.available_balance == Decimal("90.000")
        assert snapshot.transactions[0].is_sent
        assert snapshot.transactions[0].transaction.description == "Transfer to @bob"
        assert not coordinator.sending_transfer

    @pytest.mark.asyncio
    async def test_not_authenticated(self, coordinator: TransferCoordinator) -> None:
        result = await coordinator.transfer_internal(None, "bob", "10")

        assert not result.success
        assert result.code == ErrorCode.NOT_AUTHENTICATED

    @pytest.mark.asyncio
    async def test_invalid_amount(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
    ) -> None:
        result = await coordinator.transfer_internal(alice_session, "bob", "-5")

        assert result.code == ErrorCode.VALIDATION

    @pytest.mark.asyncio
    async def test_insufficient_funds_fails_fast(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """캐시 잔고 부족이면 프로시저를 호출하지 않음"""
        await coordinator.cache.refresh(alice_session.user_id)

        with patch.object(store, "transfer_funds", new=AsyncMock()) as transfer_funds:
            result = await coordinator.transfer_internal(alice_session, "bob", "100.001")

        assert result.code == ErrorCode.INSUFFICIENT_FUNDS
        assert result.error == "Insufficient balance"
        transfer_funds.assert_not_called()

    @pytest.mark.asyncio
    async def test_receiver_not_found(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
    ) -> None:
        result = await coordinator.transfer_internal(alice_session, "nobody", "1")

        assert result.code == ErrorCode.NOT_FOUND
        assert result.error == "User not found: nobody"

    @pytest.mark.asyncio
    async def test_partial_match_not_used(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """자금 이동은 부분 일치로 수신자를 고르지 않음"""
        result = await coordinator.transfer_internal(alice_session, "bo", "1")

        assert result.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_receiver_without_wallet(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
        carol: Identity,
    ) -> None:
        result = await coordinator.transfer_internal(alice_session, "carol", "1")

        assert result.code == ErrorCode.NOT_FOUND
        assert result.error == "Receiver has no wallet"

    @pytest.mark.asyncio
    async def test_self_transfer(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
    ) -> None:
        result = await coordinator.transfer_internal(alice_session, "alice", "1")

        assert result.code == ErrorCode.VALIDATION
        assert result.error == "Cannot transfer to yourself"

    @pytest.mark.asyncio
    async def test_reused_memo_transfers_again(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """같은 memo로 다른 금액 이체: 두 번째도 실제로 적용"""
        first = await coordinator.transfer_internal(alice_session, "bob", "10", memo="lunch")
        second = await coordinator.transfer_internal(alice_session, "bob", "30", memo="lunch")

        assert first.success and second.success
        assert second.value.transaction_id != first.value.transaction_id
        assert second.value.amount == Decimal("30.000")
        assert (await store.get_account(alice_session.user_id)).available_balance == Decimal("60.000")
        assert (await store.get_account(bob.account_id)).available_balance == Decimal("89.000")
        assert coordinator.cache.snapshot(alice_session.user_id).available_balance == Decimal("60.000")

    @pytest.mark.asyncio
    async def test_request_key_replay(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """같은 request_key 재요청은 한 번만 적용"""
        first = await coordinator.transfer_internal(
            alice_session, "bob", "10", request_key="req-1"
        )
        second = await coordinator.transfer_internal(
            alice_session, "bob", "10", request_key="req-1"
        )

        assert second.success
        assert second.value.transaction_id == first.value.transaction_id
        assert (await store.get_account(alice_session.user_id)).available_balance == Decimal("90.000")

    @pytest.mark.asyncio
    async def test_request_key_conflict(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """같은 request_key에 다른 금액: 성공으로 위장하지 않고 거부"""
        await coordinator.transfer_internal(alice_session, "bob", "10", request_key="req-1")

        result = await coordinator.transfer_internal(
            alice_session, "bob", "30", request_key="req-1"
        )

        assert not result.success
        assert result.code == ErrorCode.VALIDATION
        assert result.error == "Request key already used for a different transfer"
        assert (await store.get_account(bob.account_id)).available_balance == Decimal("59.750")

    @pytest.mark.asyncio
    async def test_procedure_rejection_passed_through(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """프로시저 거부 사유는 그대로 전달"""
        rejection = TransferOutcome(success=False, reason="Insufficient balance")

        with patch.object(store, "transfer_funds", new=AsyncMock(return_value=rejection)):
            result = await coordinator.transfer_internal(alice_session, "bob", "10")

        assert not result.success
        assert result.error == "Insufficient balance"
        assert result.code == ErrorCode.INSUFFICIENT_FUNDS

    @pytest.mark.asyncio
    async def test_unknown_rejection_reason(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        rejection = TransferOutcome(success=False, reason="daily limit exceeded")

        with patch.object(store, "transfer_funds", new=AsyncMock(return_value=rejection)):
            result = await coordinator.transfer_internal(alice_session, "bob", "10")

        assert result.error == "daily limit exceeded"
        assert result.code == ErrorCode.REJECTED

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_result(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        alice_session: WalletSession,
        bob: Identity,
    ) -> None:
        """예상 밖 예외도 결과 객체로 반환"""
        with patch.object(store, "transfer_funds", new=AsyncMock(side_effect=RuntimeError("db gone"))):
            result = await coordinator.transfer_internal(alice_session, "bob", "10")

        assert not result.success
        assert result.error == "transfer_internal failed"
        assert not coordinator.sending_transfer


class TestTransferExternal:
    """외부 이체 테스트"""

    @pytest.mark.asyncio
    async def test_success(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        network: MockLedgerNetwork,
        alice_session: WalletSession,
    ) -> None:
        result = await coordinator.transfer_external(
            alice_session, "@outside", "5", VALID_SECRET
        )

        assert result.success, result.error
        assert result.value.network_tx_id == network.broadcasts[0].tx_id
        assert result.value.fee == Decimal("0")

        record = network.broadcasts[0]
        assert (record.from_account, record.to_account) == ("alice", "outside")
        assert record.memo == result.value.memo
        assert coordinator.was_broadcast(record.memo)

        tx = await store.get_transaction(result.value.transaction_id)
        assert tx.type == TransactionType.BLOCKCHAIN_TRANSFER
        assert tx.status == TransactionStatus.PENDING
        assert tx.metadata["destination_account"] == "outside"
        assert tx.metadata["network_tx_id"] == record.tx_id

    @pytest.mark.asyncio
    async def test_invalid_secret_before_amount(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
    ) -> None:
        """서명키 형식 검사가 금액 검사보다 먼저"""
        result = await coordinator.transfer_external(alice_session, "outside", "-1", "bad")

        assert result.code == ErrorCode.INVALID_CREDENTIAL_FORMAT
        assert result.error == "Invalid private key format"

    @pytest.mark.asyncio
    async def test_empty_destination(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
    ) -> None:
        result = await coordinator.transfer_external(alice_session, " ", "1", VALID_SECRET)

        assert result.error == "Destination account is required"

    @pytest.mark.asyncio
    async def test_own_account(
        self,
        coordinator: TransferCoordinator,
        alice_session: WalletSession,
    ) -> None:
        result = await coordinator.transfer_external(alice_session, "alice", "1", VALID_SECRET)

        assert result.code == ErrorCode.VALIDATION
        assert result.error == "Cannot transfer to your own account"

    @pytest.mark.asyncio
    async def test_no_broadcaster(
        self,
        store: SQLiteBackingStore,
        directory: SQLiteUserDirectory,
        alice_session: WalletSession,
    ) -> None:
        coordinator = TransferCoordinator(store, UserResolver(directory), BalanceCache(store))

        result = await coordinator.transfer_external(alice_session, "outside", "1", VALID_SECRET)

        assert result.code == ErrorCode.DATA_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_rejected_marks_row_failed(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        network: MockLedgerNetwork,
        alice_session: WalletSession,
    ) -> None:
        """제출 전 거부: 행은 failed, 사유 기록"""
        network.set_reject_next("missing required active authority")

        result = await coordinator.transfer_external(alice_session, "outside", "5", VALID_SECRET)

        assert result.code == ErrorCode.REJECTED
        assert result.error == "missing required active authority"
        assert network.broadcasts == []

        transactions = await store.get_recent_transactions(alice_session.user_id, 5)
        assert transactions[0].status == TransactionStatus.FAILED
        assert transactions[0].metadata["failure_reason"] == "missing required active authority"

    @pytest.mark.asyncio
    async def test_bookkeeping_failure_after_broadcast(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        network: MockLedgerNetwork,
        alice_session: WalletSession,
    ) -> None:
        """브로드캐스트 후 기록 실패: 되돌릴 수 없으므로 성공 반환, 재시도 유도 안 함"""
        with patch.object(
            store,
            "update_transaction_status",
            new=AsyncMock(side_effect=TransportError("db down")),
        ):
            result = await coordinator.transfer_external(alice_session, "dave", "5", VALID_SECRET)

        assert result.success, result.error
        assert result.value.network_tx_id == "mock-trx-1"
        assert len(network.broadcasts) == 1
        assert coordinator.was_broadcast(result.value.memo)

        tx = await store.get_transaction(result.value.transaction_id)
        assert tx.status == TransactionStatus.PENDING

    @pytest.mark.asyncio
    async def test_rejected_memo_can_be_reused(
        self,
        coordinator: TransferCoordinator,
        network: MockLedgerNetwork,
        alice_session: WalletSession,
    ) -> None:
        """제출 전 거부된 memo는 보관하지 않음"""
        network.set_reject_next()

        rejected = await coordinator.transfer_external(
            alice_session, "outside", "5", VALID_SECRET, memo="BLOCKCHAIN_FIXED_2"
        )
        assert rejected.code == ErrorCode.REJECTED
        assert not coordinator.was_broadcast("BLOCKCHAIN_FIXED_2")

        retry = await coordinator.transfer_external(
            alice_session, "outside", "5", VALID_SECRET, memo="BLOCKCHAIN_FIXED_2"
        )
        assert retry.success, retry.error
        assert len(network.broadcasts) == 1

    @pytest.mark.asyncio
    async def test_transport_error_leaves_row_pending(
        self,
        coordinator: TransferCoordinator,
        store: SQLiteBackingStore,
        network: MockLedgerNetwork,
        alice_session: WalletSession,
    ) -> None:
        """결과 불명: pending 유지, 재시도 불가"""
        network.set_fail_next("connection reset")

        result = await coordinator.transfer_external(
            alice_session, "outside", "5", VALID_SECRET, memo="BLOCKCHAIN_FIXED_1"
        )

        assert result.code == ErrorCode.DATA_UNAVAILABLE
        assert result.retryable is False
        assert "left pending" in result.error

        transactions = await store.get_recent_transactions(alice_session.user_id, 5)
        assert transactions[0].status == TransactionStatus.PENDING

        # 같은 의도(memo)로 재브로드캐스트 불가
        retry = await coordinator.transfer_external(
            alice_session, "outside", "5", VALID_SECRET, memo="BLOCKCHAIN_FIXED_1"
        )
        assert retry.code == ErrorCode.VALIDATION
        assert network.broadcasts == []

    @pytest.mark.asyncio
    async def test_sender_without_ledger_account(
        self,
        coordinator: TransferCoordinator,
        carol: Identity,
    ) -> None:
        session = WalletSession(user_id=carol.account_id, handle="carol")

        result = await coordinator.transfer_external(session, "outside", "1", VALID_SECRET)

        # 원장 행이 없으면 잔고 0이라 잔고 검사에서 먼저 실패
        assert result.code == ErrorCode.INSUFFICIENT_FUNDS
