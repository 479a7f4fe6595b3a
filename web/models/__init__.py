"""
Web 모델 패키지

Pydantic 스키마 정의
"""

from web.models.requests import (
    ExternalTransferRequest,
    FiatDepositRequest,
    LedgerDepositRequest,
    TransferRequest,
)
from web.models.responses import (
    HealthResponse,
    IdentityResponse,
    OperationResponse,
    TransactionListResponse,
    TransactionResponse,
    UserSearchResponse,
    WalletResponse,
)

__all__ = [
    # Requests
    "ExternalTransferRequest",
    "FiatDepositRequest",
    "LedgerDepositRequest",
    "TransferRequest",
    # Responses
    "HealthResponse",
    "IdentityResponse",
    "OperationResponse",
    "TransactionListResponse",
    "TransactionResponse",
    "UserSearchResponse",
    "WalletResponse",
]
