"""
Memo 유틸리티

온체인/게이트웨이 상관관계 토큰(memo) 생성 및 파싱.
외부 네트워크는 플랫폼 사용자를 모르므로 memo가 유일한 상관관계 수단.

규칙:
- 내부 이체: TRANSFER_{6자}
- 블록체인 이체: BLOCKCHAIN_TRANSFER_{6자}
- Blurt 직접 입금: BLURT_DEPOSIT_{8자}_{epoch ms}
- Paystack 입금: PAYSTACK_DEPOSIT_{8자}
"""

import secrets
import string
from datetime import datetime, timezone

from core.constants import MemoPrefixes

# 랜덤 토큰 문자 집합 (영문 대소문자 + 숫자)
MEMO_ALPHABET: str = string.ascii_letters + string.digits


def random_token(length: int = 8) -> str:
    """랜덤 영숫자 토큰 생성

    Args:
        length: 토큰 길이

    Returns:
        length 길이의 영숫자 문자열
    """
    if length <= 0:
        raise ValueError("length는 1 이상이어야 합니다")

    return "".join(secrets.choice(MEMO_ALPHABET) for _ in range(length))


def make_transfer_memo() -> str:
    """내부 이체용 기본 memo"""
    return f"{MemoPrefixes.TRANSFER}_{random_token(6)}"


def make_blockchain_transfer_memo() -> str:
    """블록체인 이체용 1회성 memo"""
    return f"{MemoPrefixes.BLOCKCHAIN_TRANSFER}_{random_token(6)}"


def make_gateway_deposit_memo() -> str:
    """Paystack 입금용 memo (게이트웨이 reference로도 사용)"""
    return f"{MemoPrefixes.PAYSTACK_DEPOSIT}_{random_token(8)}"


def make_ledger_deposit_memo(now: datetime | None = None) -> str:
    """Blurt 직접 입금용 전역 유일 memo (랜덤 토큰 + 타임스탬프)

    Args:
        now: 기준 시각 (None이면 현재 UTC)

    Example:
        >>> make_ledger_deposit_memo()
        'BLURT_DEPOSIT_a8Fk2LzQ_1760832000000'
    """
    if now is None:
        now = datetime.now(timezone.utc)

    ts_ms = int(now.timestamp() * 1000)
    return f"{MemoPrefixes.BLURT_DEPOSIT}_{random_token(8)}_{ts_ms}"


def is_ledger_deposit_memo(memo: str) -> bool:
    """Blurt 직접 입금 memo 형식인지 확인"""
    if not memo:
        return False

    prefix = f"{MemoPrefixes.BLURT_DEPOSIT}_"
    if not memo.startswith(prefix):
        return False

    parts = memo[len(prefix):].split("_")
    return len(parts) == 2 and len(parts[0]) == 8 and parts[1].isdigit()
