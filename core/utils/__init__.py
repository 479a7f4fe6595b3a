"""
유틸리티 패키지

memo 생성, 서명키 형식 검사, 표시용 포맷 등 공통 유틸리티
"""

from core.utils.credentials import is_valid_signing_secret, mask_secret
from core.utils.formatting import describe_transaction, format_amount
from core.utils.memo import (
    make_blockchain_transfer_memo,
    make_gateway_deposit_memo,
    make_ledger_deposit_memo,
    make_transfer_memo,
    random_token,
)

__all__ = [
    "is_valid_signing_secret",
    "mask_secret",
    "describe_transaction",
    "format_amount",
    "make_blockchain_transfer_memo",
    "make_gateway_deposit_memo",
    "make_ledger_deposit_memo",
    "make_transfer_memo",
    "random_token",
]
