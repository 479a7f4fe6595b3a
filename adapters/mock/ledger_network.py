"""
Mock 원장 네트워크

테스트용 Mock 브로드캐스터 + 정산 인덱서.
ILedgerBroadcaster, ISettlementSource Protocol 준수.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from adapters.models import Settlement
from core.errors import BroadcastRejectedError, TransportError
from core.fees import quantize_amount


@dataclass
class BroadcastRecord:
    """브로드캐스트 기록"""

    from_account: str
    to_account: str
    amount: Decimal
    memo: str
    tx_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MockLedgerNetwork:
    """Mock 원장 네트워크

    브로드캐스트된 이체를 기록하고, 정산은 테스트가 직접 주입.

    사용 예시:
    ```python
    network = MockLedgerNetwork()

    tx_id = await network.broadcast_transfer("alice", "bob", Decimal("1"), "memo", key)
    assert network.broadcasts[0].tx_id == tx_id

    network.settle("BLURT_DEPOSIT_...", Decimal("50"), "blurtok.treasury")
    ```
    """

    def __init__(self) -> None:
        self.broadcasts: list[BroadcastRecord] = []
        self.settlements: list[Settlement] = []
        self.settlement_queries: list[str] = []
        self._ids = itertools.count(1)

        self._reject_next: str | None = None
        self._fail_next: str | None = None

    def set_reject_next(self, message: str = "missing required active authority") -> None:
        """다음 브로드캐스트를 제출 전 거부"""
        self._reject_next = message

    def set_fail_next(self, message: str = "connection reset") -> None:
        """다음 브로드캐스트를 결과 불명 실패로 처리"""
        self._fail_next = message

    def settle(
        self,
        memo: str,
        amount: Decimal,
        destination: str,
        network_tx_id: str | None = None,
    ) -> Settlement:
        """정산 주입 (외부 네트워크에서 이체가 확정된 상황)"""
        settlement = Settlement(
            memo=memo,
            amount=quantize_amount(amount),
            destination=destination,
            network_tx_id=network_tx_id or f"mock-trx-{next(self._ids)}",
            source="blurt",
        )
        self.settlements.append(settlement)
        return settlement

    async def broadcast_transfer(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        memo: str,
        signing_secret: str,
    ) -> str:
        if self._reject_next is not None:
            message, self._reject_next = self._reject_next, None
            raise BroadcastRejectedError(message)

        if self._fail_next is not None:
            message, self._fail_next = self._fail_next, None
            raise TransportError(message)

        tx_id = f"mock-trx-{next(self._ids)}"
        self.broadcasts.append(
            BroadcastRecord(
                from_account=from_account,
                to_account=to_account,
                amount=amount,
                memo=memo,
                tx_id=tx_id,
            )
        )
        return tx_id

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        self.settlement_queries.append(memo)
        for settlement in self.settlements:
            if settlement.memo == memo:
                return settlement
        return None
