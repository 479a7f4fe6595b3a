"""
core/config/loader.py 테스트

secrets.yaml 로드, 검증, 설정 싱글턴 테스트
"""

from pathlib import Path

import pytest

from core.config.loader import (
    BlurtConfig,
    Secrets,
    Settings,
    SupabaseConfig,
    get_settings,
    load_secrets,
)
from core.constants import PROJECT_ROOT, BlurtEndpoints, Defaults, PaystackEndpoints
from core.errors import ConfigLoadError
from core.types import StoreBackend


def _write(temp_dir: Path, content: str) -> Path:
    path = temp_dir / "secrets.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestSecrets:
    """Secrets 데이터클래스 테스트"""

    def test_frozen(self, temp_dir: Path) -> None:
        """불변성 확인"""
        secrets = Secrets(
            backend=StoreBackend.SQLITE,
            db_path=temp_dir / "w.db",
            blurt=BlurtConfig(
                rpc_url=BlurtEndpoints.RPC_URL,
                signer_url=None,
                treasury_account=Defaults.TREASURY_ACCOUNT,
            ),
            web_secret_key="key",
        )

        with pytest.raises(AttributeError):
            secrets.web_secret_key = "new"  # type: ignore


class TestSupabaseConfig:
    """SupabaseConfig URL 파생 테스트"""

    def test_urls(self) -> None:
        config = SupabaseConfig(url="https://demo.supabase.co/", anon_key="k")

        assert config.rest_url == "https://demo.supabase.co/rest/v1"
        assert config.realtime_url == "wss://demo.supabase.co/realtime/v1/websocket"

    def test_http_realtime_url(self) -> None:
        config = SupabaseConfig(url="http://localhost:54321", anon_key="k")

        assert config.realtime_url == "ws://localhost:54321/realtime/v1/websocket"


class TestLoadSecrets:
    """load_secrets 테스트"""

    def test_load_sqlite(self, temp_secrets_file: Path, temp_dir: Path) -> None:
        """sqlite 설정 로드"""
        secrets = load_secrets(temp_secrets_file)

        assert secrets.backend == StoreBackend.SQLITE
        assert secrets.db_path == temp_dir / "wallet.db"
        assert secrets.blurt.signer_url == "http://signer.local"
        assert secrets.blurt.treasury_account == "test.treasury"
        assert secrets.blurt.rpc_url == BlurtEndpoints.RPC_URL
        assert secrets.web_secret_key == "test_secret_key_xyz"
        assert secrets.supabase is None
        assert secrets.paystack is None

    def test_load_supabase(self, temp_secrets_file_supabase: Path) -> None:
        """supabase + paystack 설정 로드"""
        secrets = load_secrets(temp_secrets_file_supabase)

        assert secrets.backend == StoreBackend.SUPABASE
        assert secrets.supabase == SupabaseConfig(
            url="https://demo.supabase.co", anon_key="anon-key-123"
        )
        assert secrets.paystack is not None
        assert secrets.paystack.secret_key == "sk_test_abc"
        assert secrets.paystack.base_url == PaystackEndpoints.BASE_URL
        assert secrets.paystack.callback_url == "http://localhost/callback"
        assert secrets.blurt.treasury_account == Defaults.TREASURY_ACCOUNT

    def test_relative_db_path(self, temp_dir: Path) -> None:
        """상대 경로는 프로젝트 루트 기준"""
        path = _write(temp_dir, "sqlite:\n  path: data/x.db\nweb:\n  secret_key: s\n")

        assert load_secrets(path).db_path == PROJECT_ROOT / "data" / "x.db"

    def test_file_not_found(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigLoadError, match="찾을 수 없습니다"):
            load_secrets(temp_dir / "missing.yaml")

    def test_empty_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigLoadError, match="비어 있습니다"):
            load_secrets(_write(temp_dir, ""))

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigLoadError, match="파싱 실패"):
            load_secrets(_write(temp_dir, "web: [unclosed\n"))

    def test_invalid_backend(self, temp_dir: Path) -> None:
        path = _write(temp_dir, "backend: postgres\nweb:\n  secret_key: s\n")

        with pytest.raises(ValueError, match="유효하지 않은 backend"):
            load_secrets(path)

    def test_supabase_backend_requires_section(self, temp_dir: Path) -> None:
        path = _write(temp_dir, "backend: supabase\nweb:\n  secret_key: s\n")

        with pytest.raises(ConfigLoadError, match="supabase 섹션"):
            load_secrets(path)

    def test_supabase_missing_key(self, temp_dir: Path) -> None:
        path = _write(
            temp_dir,
            "supabase:\n  url: https://x.supabase.co\nweb:\n  secret_key: s\n",
        )

        with pytest.raises(ConfigLoadError, match="anon_key"):
            load_secrets(path)

    def test_paystack_missing_secret(self, temp_dir: Path) -> None:
        path = _write(
            temp_dir,
            "paystack:\n  callback_url: http://x\nweb:\n  secret_key: s\n",
        )

        with pytest.raises(ConfigLoadError, match="paystack"):
            load_secrets(path)

    def test_missing_web_secret(self, temp_dir: Path) -> None:
        path = _write(temp_dir, "backend: sqlite\n")

        with pytest.raises(ConfigLoadError, match="secret_key"):
            load_secrets(path)

    def test_section_must_be_mapping(self, temp_dir: Path) -> None:
        path = _write(temp_dir, "blurt: nope\nweb:\n  secret_key: s\n")

        with pytest.raises(ConfigLoadError, match="'blurt'"):
            load_secrets(path)


class TestSettings:
    """Settings 싱글턴 테스트"""

    def test_singleton(self, temp_secrets_file: Path) -> None:
        first = get_settings(temp_secrets_file)
        second = get_settings()

        assert first is second
        assert second.backend == StoreBackend.SQLITE

    def test_properties(self, temp_secrets_file_supabase: Path) -> None:
        settings = Settings(temp_secrets_file_supabase)

        assert settings.supabase is not None
        assert settings.paystack is not None
        assert settings.blurt.signer_url is None
        assert settings.web_secret_key == "prod_secret_key_xyz"

    def test_reset(self, temp_secrets_file: Path, temp_secrets_file_supabase: Path) -> None:
        """reset 후 다른 파일 로드"""
        assert get_settings(temp_secrets_file).backend == StoreBackend.SQLITE

        Settings.reset()

        assert get_settings(temp_secrets_file_supabase).backend == StoreBackend.SUPABASE
