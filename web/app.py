"""
FastAPI 애플리케이션

라우터 등록 및 앱 설정.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config.loader import get_settings
from core.logging import setup_logging

# 로깅 설정 (콘솔 + 파일)
setup_logging("web")

from web.dependencies import get_configured_service, set_wallet_service
from web.routes import health, users, wallet

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리

    WalletService가 이미 설정되어 있으면(테스트 등) 그대로 사용.
    """
    from wallet.bootstrap import build_wallet_service

    service = None
    if get_configured_service() is None:
        settings = get_settings()
        service = await build_wallet_service(settings)
        set_wallet_service(service)
        logger.info("Web: WalletService 초기화 완료")

    yield

    # 종료 시 - 직접 만든 서비스만 정리
    if service is not None:
        await service.close()
        set_wallet_service(None)
        logger.info("Web: WalletService 종료 완료")


app = FastAPI(
    title="WalletEngine API",
    description="Blurt 지갑/원장 오케스트레이션 API",
    version=health.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS 설정 (개발용)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =========================================================================
# API 라우터 등록
# =========================================================================

app.include_router(health.router)
app.include_router(wallet.router)
app.include_router(users.router)
