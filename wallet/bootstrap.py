"""
지갑 서비스 조립

설정(secrets.yaml)에 따라 백킹 스토어와 외부 연동을 생성하고 WalletService로 묶음.

- sqlite: aiosqlite 스토어 + 프로세스 내 변경 피드, 정산은 memo 접두사로 라우팅
- supabase: PostgREST 스토어 + Realtime 변경 피드 (정산은 서버 프로시저 책임)
"""

import logging
from typing import Any

from adapters.blurt.broadcaster import SignerBroadcaster
from adapters.blurt.rpc_client import BlurtRpcClient
from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.change_feed import InProcessChangeFeed
from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.db.user_directory import SQLiteUserDirectory
from adapters.interfaces import ISettlementSource
from adapters.paystack.client import PaystackClient
from adapters.settlement import MemoRoutedSettlementSource
from adapters.supabase.realtime_client import SupabaseRealtimeClient
from adapters.supabase.rest_client import SupabaseRestClient
from adapters.supabase.store import SupabaseBackingStore, SupabaseUserDirectory
from core.config.loader import Settings
from core.constants import MemoPrefixes
from core.types import StoreBackend
from wallet.service import WalletService

logger = logging.getLogger(__name__)


def _create_broadcaster(settings: Settings) -> SignerBroadcaster | None:
    if not settings.blurt.signer_url:
        logger.info("signer_url 미설정, 외부 이체 비활성화")
        return None
    return SignerBroadcaster(settings.blurt.signer_url)


def _create_gateway(settings: Settings) -> PaystackClient | None:
    if settings.paystack is None:
        logger.info("Paystack 미설정, 게이트웨이 입금 비활성화")
        return None
    return PaystackClient(
        secret_key=settings.paystack.secret_key,
        base_url=settings.paystack.base_url,
        callback_url=settings.paystack.callback_url,
    )


async def _build_sqlite(settings: Settings) -> WalletService:
    db = SQLiteAdapter(settings.db_path)
    await db.connect()
    await init_schema(db)

    feed = InProcessChangeFeed()
    store = SQLiteBackingStore(db, change_feed=feed)

    rpc_client = BlurtRpcClient(settings.blurt.rpc_url)
    broadcaster = _create_broadcaster(settings)
    gateway = _create_gateway(settings)

    routes: dict[str, ISettlementSource] = {MemoPrefixes.BLURT_DEPOSIT: rpc_client}
    if gateway is not None:
        routes[MemoPrefixes.PAYSTACK_DEPOSIT] = gateway

    # 접두사가 없는 memo는 로컬 settlements 테이블에서 조회
    store.settlement_source = MemoRoutedSettlementSource(routes, fallback=store)

    resources: list[Any] = [db, rpc_client]
    resources += [r for r in (broadcaster, gateway) if r is not None]

    return WalletService(
        store,
        SQLiteUserDirectory(db),
        feed=feed,
        broadcaster=broadcaster,
        gateway=gateway,
        treasury_account=settings.blurt.treasury_account,
        resources=resources,
    )


async def _build_supabase(settings: Settings) -> WalletService:
    config = settings.supabase
    assert config is not None

    rest_client = SupabaseRestClient(config.rest_url, config.anon_key)
    realtime = SupabaseRealtimeClient(config.realtime_url, config.anon_key)
    broadcaster = _create_broadcaster(settings)
    gateway = _create_gateway(settings)

    resources: list[Any] = [rest_client, realtime]
    resources += [r for r in (broadcaster, gateway) if r is not None]

    return WalletService(
        SupabaseBackingStore(rest_client),
        SupabaseUserDirectory(rest_client),
        feed=realtime,
        broadcaster=broadcaster,
        gateway=gateway,
        treasury_account=settings.blurt.treasury_account,
        resources=resources,
    )


async def build_wallet_service(settings: Settings) -> WalletService:
    """설정에 맞는 WalletService 생성

    반환된 서비스는 사용 후 close()로 연결을 정리해야 함.
    """
    if settings.backend == StoreBackend.SUPABASE:
        service = await _build_supabase(settings)
    else:
        service = await _build_sqlite(settings)

    logger.info(
        "WalletService 초기화 완료",
        extra={
            "backend": settings.backend.value,
            "external_transfer": service.transfers.broadcaster is not None,
            "fiat_deposit": service.deposits.gateway is not None,
        },
    )
    return service
