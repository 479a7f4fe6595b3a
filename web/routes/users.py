"""
사용자 API 라우터

GET /api/users/search?q=  - 핸들/표시 이름 접두사 검색
GET /api/users/resolve?q= - 식별자 해석
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from core.errors import ErrorCode
from wallet.service import WalletService
from wallet.session import WalletSession
from web.dependencies import get_wallet_service
from web.models.responses import IdentityResponse, UserSearchResponse

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/search", response_model=UserSearchResponse)
async def search_users(
    q: str = Query(default="", description="검색어 (2자 이상)"),
    exclude: str | None = Query(default=None, description="결과에서 제외할 본인 핸들"),
    service: WalletService = Depends(get_wallet_service),
) -> UserSearchResponse:
    """사용자 검색 (최대 10명)"""
    session = None
    if exclude:
        identity = await service.store.get_user_by_handle(exclude.lstrip("@"))
        if identity is not None:
            session = WalletSession(user_id=identity.account_id, handle=identity.handle)

    result = await service.search_users(q, session)
    if not result.success:
        raise HTTPException(status_code=503, detail=result.error)

    users = [IdentityResponse.from_identity(i) for i in result.value or []]
    return UserSearchResponse(users=users, total=len(users))


@router.get("/resolve", response_model=IdentityResponse)
async def resolve_user(
    q: str = Query(..., description="핸들 또는 표시 이름"),
    service: WalletService = Depends(get_wallet_service),
) -> IdentityResponse:
    """식별자 → 사용자"""
    result = await service.resolve_user(q)
    if not result.success or result.value is None:
        status = 404 if result.code == ErrorCode.NOT_FOUND else 503
        raise HTTPException(status_code=status, detail=result.error)
    return IdentityResponse.from_identity(result.value)
