"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from decimal import Decimal
from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → walletengine/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class BlurtEndpoints:
    """Blurt 네트워크 엔드포인트 (고정값)"""

    RPC_URL: str = "https://rpc.blurt.world"
    ASSET_SYMBOL: str = "BLURT"


class PaystackEndpoints:
    """Paystack API 엔드포인트"""

    BASE_URL: str = "https://api.paystack.co"


class Defaults:
    """기본값 상수"""

    BACKEND: str = "sqlite"
    TREASURY_ACCOUNT: str = "blurtok.treasury"
    GATEWAY_ACCOUNT: str = "paystack"

    # 아바타가 없을 때 핸들로 시드한 기본 아바타
    AVATAR_URL_TEMPLATE: str = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"

    WEB_HOST: str = "127.0.0.1"
    WEB_PORT: int = 8000

    LOG_LEVEL: str = "INFO"
    HTTP_TIMEOUT_SEC: float = 30.0


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    WALLET_LOGS_DIR: Path = LOGS_DIR / "wallet"
    WEB_LOGS_DIR: Path = LOGS_DIR / "web"

    # 설정 파일
    SECRETS_FILE: Path = CONFIG_DIR / "secrets.yaml"

    # DB 파일
    WALLET_DB: Path = DATA_DIR / "walletengine.db"


class Amounts:
    """금액 관련 상수

    Blurt 최소 단위는 소수점 3자리 (0.001 BLURT)
    """

    MINIMAL_UNIT: Decimal = Decimal("0.001")
    ZERO: Decimal = Decimal("0")


class FeeRates:
    """플랫폼 수수료율"""

    REWARD: Decimal = Decimal("0.10")
    PEER_TRANSFER: Decimal = Decimal("0.025")
    DEPOSIT: Decimal = Decimal("0")
    BLOCKCHAIN_TRANSFER: Decimal = Decimal("0")


class Limits:
    """조회/검색 한도"""

    RECENT_TRANSACTIONS: int = 20
    SEARCH_RESULTS: int = 10
    SEARCH_MIN_LENGTH: int = 2


class MemoPrefixes:
    """메모 접두사 (온체인/게이트웨이 상관관계 토큰)"""

    TRANSFER: str = "TRANSFER"
    BLOCKCHAIN_TRANSFER: str = "BLOCKCHAIN_TRANSFER"
    BLURT_DEPOSIT: str = "BLURT_DEPOSIT"
    PAYSTACK_DEPOSIT: str = "PAYSTACK_DEPOSIT"


class SigningKeyFormat:
    """Blurt 개인키(WIF) 형식 - 구문 검사용"""

    VALID_PREFIXES: tuple[str, ...] = (
        "5H", "5J", "5K", "5Q", "5R", "5S", "5T", "5U", "5V", "5W",
    )
    MIN_LENGTH: int = 51


class ChangeFeedTables:
    """변경 피드 구독 대상 테이블"""

    BALANCES: str = "balances"
    TRANSACTIONS: str = "wallet_transactions"


class ProcedureReasons:
    """백킹 스토어 프로시저 거부 사유 (문자열 그대로 호출자에게 전달)"""

    NOT_YET_SETTLED: str = "not yet settled"
    SETTLEMENT_MISMATCH: str = "settlement mismatch"
    TRANSACTION_NOT_FOUND: str = "transaction not found"
    NOT_A_DEPOSIT: str = "transaction is not a deposit"
    DEPOSIT_FAILED: str = "deposit has failed"
    INSUFFICIENT_FUNDS: str = "Insufficient balance"
    SENDER_NOT_FOUND: str = "Sender not found"
    RECEIVER_NOT_FOUND: str = "Receiver not found"
    RECEIVER_NOT_PROVISIONED: str = "Receiver has no wallet"
    SELF_TRANSFER: str = "Cannot transfer to yourself"
    INVALID_AMOUNT: str = "Amount must be greater than 0"
    REQUEST_KEY_CONFLICT: str = "Request key already used for a different transfer"
