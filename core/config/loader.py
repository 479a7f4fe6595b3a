"""
설정 로더

secrets.yaml 로드 및 백킹 스토어/외부 연동 설정 생성
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from core.constants import PROJECT_ROOT, BlurtEndpoints, Defaults, PaystackEndpoints, Paths
from core.errors import ConfigLoadError
from core.types import StoreBackend


@dataclass(frozen=True)
class SupabaseConfig:
    """Supabase 연결 설정 (PostgREST + Realtime)"""

    url: str
    anon_key: str

    @property
    def rest_url(self) -> str:
        """PostgREST 베이스 URL"""
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def realtime_url(self) -> str:
        """Realtime WebSocket URL"""
        base = self.url.rstrip("/").replace("https://", "wss://").replace("http://", "ws://")
        return f"{base}/realtime/v1/websocket"


@dataclass(frozen=True)
class BlurtConfig:
    """Blurt 네트워크 연동 설정

    signer_url은 서명/브로드캐스트를 담당하는 외부 서비스 주소
    """

    rpc_url: str
    signer_url: str | None
    treasury_account: str


@dataclass(frozen=True)
class PaystackConfig:
    """Paystack 결제 게이트웨이 설정"""

    secret_key: str
    base_url: str
    callback_url: str | None


@dataclass(frozen=True)
class Secrets:
    """보안 설정 (secrets.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    backend: StoreBackend
    db_path: Path
    blurt: BlurtConfig
    web_secret_key: str
    supabase: SupabaseConfig | None = None
    paystack: PaystackConfig | None = None


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """선택 섹션 반환 (없으면 빈 dict)"""
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigLoadError(f"secrets.yaml의 '{name}' 섹션 형식이 잘못되었습니다")
    return value


def load_secrets(path: Path | None = None) -> Secrets:
    """secrets.yaml 파일 로드

    Args:
        path: secrets.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Secrets 인스턴스

    Raises:
        ConfigLoadError: 파일이 없거나 형식이 잘못된 경우
        ValueError: 유효하지 않은 backend인 경우
    """
    if path is None:
        path = Paths.SECRETS_FILE

    if not path.exists():
        raise ConfigLoadError(f"secrets.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"secrets.yaml 파싱 실패: {e}") from e

    if data is None:
        raise ConfigLoadError("secrets.yaml이 비어 있습니다")

    # backend 검증
    backend_str = data.get("backend", Defaults.BACKEND)
    try:
        backend = StoreBackend(backend_str)
    except ValueError as e:
        valid = [b.value for b in StoreBackend]
        raise ValueError(
            f"유효하지 않은 backend입니다: '{backend_str}'. 유효한 값: {valid}"
        ) from e

    # SQLite 경로 (상대 경로는 프로젝트 루트 기준)
    sqlite_config = _section(data, "sqlite")
    db_path = Path(sqlite_config.get("path") or Paths.WALLET_DB)
    if not db_path.is_absolute():
        db_path = PROJECT_ROOT / db_path

    # Supabase (backend=supabase일 때 필수)
    supabase = None
    supabase_config = _section(data, "supabase")
    if supabase_config:
        url = supabase_config.get("url")
        anon_key = supabase_config.get("anon_key")
        if not url or not anon_key:
            raise ConfigLoadError(
                "secrets.yaml의 supabase 섹션에 'url'과 'anon_key'가 필요합니다"
            )
        supabase = SupabaseConfig(url=url, anon_key=anon_key)

    if backend == StoreBackend.SUPABASE and supabase is None:
        raise ConfigLoadError("backend가 supabase인데 supabase 섹션이 없습니다")

    # Blurt
    blurt_config = _section(data, "blurt")
    blurt = BlurtConfig(
        rpc_url=blurt_config.get("rpc_url") or BlurtEndpoints.RPC_URL,
        signer_url=blurt_config.get("signer_url"),
        treasury_account=blurt_config.get("treasury_account") or Defaults.TREASURY_ACCOUNT,
    )

    # Paystack (선택)
    paystack = None
    paystack_config = _section(data, "paystack")
    if paystack_config:
        secret_key = paystack_config.get("secret_key")
        if not secret_key:
            raise ConfigLoadError("secrets.yaml의 paystack 섹션에 'secret_key'가 없습니다")
        paystack = PaystackConfig(
            secret_key=secret_key,
            base_url=paystack_config.get("base_url") or PaystackEndpoints.BASE_URL,
            callback_url=paystack_config.get("callback_url"),
        )

    # Web secret key
    web_secret_key = _section(data, "web").get("secret_key", "")
    if not web_secret_key:
        raise ConfigLoadError("secrets.yaml의 web 섹션에 'secret_key'가 없습니다")

    return Secrets(
        backend=backend,
        db_path=db_path,
        blurt=blurt,
        web_secret_key=web_secret_key,
        supabase=supabase,
        paystack=paystack,
    )


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    secrets.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _secrets: Secrets | None = None

    def __new__(cls, secrets_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, secrets_path: Path | None = None) -> None:
        if self._secrets is None:
            self._secrets = load_secrets(secrets_path)

    @property
    def backend(self) -> StoreBackend:
        """백킹 스토어 종류"""
        assert self._secrets is not None
        return self._secrets.backend

    @property
    def db_path(self) -> Path:
        """SQLite DB 경로"""
        assert self._secrets is not None
        return self._secrets.db_path

    @property
    def supabase(self) -> SupabaseConfig | None:
        """Supabase 설정"""
        assert self._secrets is not None
        return self._secrets.supabase

    @property
    def blurt(self) -> BlurtConfig:
        """Blurt 설정"""
        assert self._secrets is not None
        return self._secrets.blurt

    @property
    def paystack(self) -> PaystackConfig | None:
        """Paystack 설정"""
        assert self._secrets is not None
        return self._secrets.paystack

    @property
    def web_secret_key(self) -> str:
        """Web Secret Key"""
        assert self._secrets is not None
        return self._secrets.web_secret_key

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._secrets = None


def get_settings(secrets_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        secrets_path: secrets.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(secrets_path)
