"""
헬스 체크 엔드포인트

GET /api/health - 서버 상태 확인
"""

from fastapi import APIRouter

from web.dependencies import get_configured_service
from web.models.responses import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])

API_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """서버 상태 확인

    Returns:
        HealthResponse: status, backend, version 정보
    """
    service = get_configured_service()
    if service is None:
        return HealthResponse(status="starting", backend="none", version=API_VERSION)

    return HealthResponse(
        status="ok",
        backend=type(service.store).__name__,
        version=API_VERSION,
    )
