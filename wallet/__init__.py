"""
지갑 오케스트레이션 코어

잔고 캐시, 사용자 해석, 이체/입금 조율, 변경 피드 리스너.
"""

from wallet.cache import BalanceCache, LedgerEntry, WalletSnapshot
from wallet.deposit import DepositReconciler
from wallet.listener import ChangeFeedListener, RefreshCoalescer, SubscriptionHandle
from wallet.resolver import UserResolver
from wallet.results import (
    ConfirmResult,
    DepositHandle,
    DepositInstructions,
    OperationResult,
    TransferResult,
)
from wallet.service import WalletService
from wallet.session import WalletSession
from wallet.transfer import TransferCoordinator

__all__ = [
    "BalanceCache",
    "ChangeFeedListener",
    "ConfirmResult",
    "DepositHandle",
    "DepositInstructions",
    "DepositReconciler",
    "LedgerEntry",
    "OperationResult",
    "RefreshCoalescer",
    "SubscriptionHandle",
    "TransferCoordinator",
    "TransferResult",
    "UserResolver",
    "WalletService",
    "WalletSession",
    "WalletSnapshot",
]
