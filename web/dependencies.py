"""
의존성 주입

FastAPI의 Depends를 사용한 의존성 관리.
"""

from fastapi import Depends, HTTPException

from core.config.loader import Settings, get_settings
from core.errors import NotFoundError, TransportError
from wallet.service import WalletService
from wallet.session import WalletSession


def get_app_settings() -> Settings:
    """애플리케이션 설정 반환"""
    return get_settings()


# =========================================================================
# WalletService (프로세스 전역)
# =========================================================================

# lifespan에서 설정되는 전역 WalletService 인스턴스
_wallet_service: WalletService | None = None


def set_wallet_service(service: WalletService | None) -> None:
    """WalletService 설정

    앱 시작 시(또는 테스트에서) 호출하여 전역 인스턴스 설정.
    """
    global _wallet_service
    _wallet_service = service


def get_configured_service() -> WalletService | None:
    """설정된 WalletService (없으면 None)"""
    return _wallet_service


def get_wallet_service() -> WalletService:
    """WalletService 반환

    Raises:
        HTTPException: 초기화되지 않은 경우 503
    """
    if _wallet_service is None:
        raise HTTPException(status_code=503, detail="Wallet service is not initialized")
    return _wallet_service


async def get_session(
    handle: str,
    service: WalletService = Depends(get_wallet_service),
) -> WalletSession:
    """경로의 핸들로 세션 컨텍스트 생성

    Raises:
        HTTPException: 사용자 없음 404, 백킹 스토어 장애 503
    """
    try:
        return await service.session_for(handle)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e
    except TransportError as e:
        raise HTTPException(status_code=503, detail=e.message) from e
