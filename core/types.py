"""
타입 정의 모듈

Enum 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


class StoreBackend(str, Enum):
    """백킹 스토어 종류 (로컬 SQLite / Supabase)"""

    SQLITE = "sqlite"
    SUPABASE = "supabase"


class TransactionType(str, Enum):
    """지갑 트랜잭션 유형"""

    TRANSFER = "transfer"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    REWARD = "reward"
    BLOCKCHAIN_TRANSFER = "blockchain_transfer"


class TransactionStatus(str, Enum):
    """지갑 트랜잭션 상태

    pending → confirmed | failed 단방향 전이만 허용
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """자금 이동 경로"""

    INTERNAL = "internal"
    PAYSTACK = "paystack"
    BLURT_WALLET = "blurt_wallet"
    BLOCKCHAIN = "blockchain"


class FeeContext(str, Enum):
    """수수료 적용 컨텍스트"""

    REWARD = "reward"
    PEER_TRANSFER = "peer_transfer"
    DEPOSIT = "deposit"
    BLOCKCHAIN_TRANSFER = "blockchain_transfer"


class ChangeKind(str, Enum):
    """변경 피드 이벤트 종류"""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "*"


class ChannelState(str, Enum):
    """변경 피드 채널 상태"""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    CLOSED = "CLOSED"
