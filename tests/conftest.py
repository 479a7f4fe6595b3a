"""
pytest 공통 fixture 정의

임시 secrets.yaml, 임시 SQLite DB 기반 백킹 스토어, Mock 외부 연동,
테스트 사용자(alice/bob/carol) 제공.
"""

import tempfile
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.change_feed import InProcessChangeFeed
from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.db.user_directory import SQLiteUserDirectory
from adapters.mock.ledger_network import MockLedgerNetwork
from adapters.mock.payment_gateway import MockPaymentGateway
from adapters.models import Identity
from adapters.settlement import MemoRoutedSettlementSource
from core.config.loader import Settings
from core.constants import MemoPrefixes
from wallet.session import WalletSession

# 형식 검사를 통과하는 서명키 (5K + 49자)
VALID_SECRET = "5K" + "a" * 49


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_secrets_file(temp_dir: Path) -> Path:
    """테스트용 secrets.yaml 파일 생성 (sqlite)"""
    secrets_content = f"""# 테스트용 secrets.yaml
backend: sqlite

sqlite:
  path: "{(temp_dir / 'wallet.db').as_posix()}"

blurt:
  signer_url: "http://signer.local"
  treasury_account: "test.treasury"

web:
  secret_key: "test_secret_key_xyz"
"""
    secrets_path = temp_dir / "secrets.yaml"
    secrets_path.write_text(secrets_content, encoding="utf-8")
    return secrets_path


@pytest.fixture
def temp_secrets_file_supabase(temp_dir: Path) -> Path:
    """테스트용 secrets.yaml 파일 생성 (supabase + paystack)"""
    secrets_content = """backend: supabase

supabase:
  url: "https://demo.supabase.co"
  anon_key: "anon-key-123"

paystack:
  secret_key: "sk_test_abc"
  callback_url: "http://localhost/callback"

web:
  secret_key: "prod_secret_key_xyz"
"""
    secrets_path = temp_dir / "secrets_supabase.yaml"
    secrets_path.write_text(secrets_content, encoding="utf-8")
    return secrets_path


@pytest.fixture(autouse=True)
def reset_settings() -> None:
    """Settings 싱글턴 초기화"""
    Settings.reset()
    yield
    Settings.reset()


@pytest.fixture
def signing_secret() -> str:
    return VALID_SECRET


# -------------------------------------------------------------------------
# 백킹 스토어
# -------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[SQLiteAdapter, None]:
    """스키마가 생성된 임시 SQLite DB"""
    adapter = SQLiteAdapter(tmp_path / "wallet.db")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


@pytest.fixture
def feed() -> InProcessChangeFeed:
    return InProcessChangeFeed()


@pytest.fixture
def network() -> MockLedgerNetwork:
    return MockLedgerNetwork()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def store(
    db: SQLiteAdapter,
    feed: InProcessChangeFeed,
    network: MockLedgerNetwork,
    gateway: MockPaymentGateway,
) -> SQLiteBackingStore:
    """Mock 네트워크/게이트웨이를 정산 출처로 쓰는 SQLite 스토어"""
    settlement_source = MemoRoutedSettlementSource(
        {
            MemoPrefixes.BLURT_DEPOSIT: network,
            MemoPrefixes.PAYSTACK_DEPOSIT: gateway,
        }
    )
    return SQLiteBackingStore(db, change_feed=feed, settlement_source=settlement_source)


@pytest.fixture
def directory(db: SQLiteAdapter) -> SQLiteUserDirectory:
    return SQLiteUserDirectory(db)


# -------------------------------------------------------------------------
# 테스트 사용자
# -------------------------------------------------------------------------

@pytest_asyncio.fixture
async def alice(store: SQLiteBackingStore) -> Identity:
    """잔고 100 BLURT, Blurt 계정 alice"""
    identity = await store.create_user("alice", "Alice Kim", email="alice@example.com")
    await store.provision_account(identity.account_id, "alice", Decimal("100"))
    return identity


@pytest_asyncio.fixture
async def bob(store: SQLiteBackingStore) -> Identity:
    """잔고 50 BLURT, Blurt 계정 bob"""
    identity = await store.create_user("bob", "Bob Lee")
    await store.provision_account(identity.account_id, "bob", Decimal("50"))
    return identity


@pytest_asyncio.fixture
async def carol(store: SQLiteBackingStore) -> Identity:
    """원장 행이 없는 사용자"""
    return await store.create_user("carol", "Carol Park")


@pytest.fixture
def alice_session(alice: Identity) -> WalletSession:
    return WalletSession(
        user_id=alice.account_id,
        handle=alice.handle,
        ledger_account_id="alice",
        contact="alice@example.com",
    )
