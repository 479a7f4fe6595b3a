"""
어댑터 레이어

외부 서비스(백킹 스토어, 원장 네트워크, 결제 게이트웨이)와의 연동을 담당.
Protocol 기반 인터페이스로 Mock 교체 가능.
"""

from adapters.interfaces import (
    IBackingStore,
    IChangeChannel,
    IChangeFeed,
    ILedgerBroadcaster,
    IPaymentGateway,
    ISettlementSource,
    IUserDirectory,
)
from adapters.models import (
    Account,
    ChangeEvent,
    ConfirmOutcome,
    Identity,
    PaymentInit,
    Settlement,
    Transaction,
    TransferOutcome,
)

__all__ = [
    # Interfaces
    "IBackingStore",
    "IChangeChannel",
    "IChangeFeed",
    "ILedgerBroadcaster",
    "IPaymentGateway",
    "ISettlementSource",
    "IUserDirectory",
    # Models
    "Account",
    "ChangeEvent",
    "ConfirmOutcome",
    "Identity",
    "PaymentInit",
    "Settlement",
    "Transaction",
    "TransferOutcome",
]
