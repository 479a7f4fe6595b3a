"""
지갑 API 라우터

잔고/트랜잭션 조회, 이체, 입금 엔드포인트.
코어 연산 결과는 성공/실패 모두 HTTP 200 + OperationResponse로 반환.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from wallet.cache import WalletSnapshot
from wallet.service import WalletService
from wallet.session import WalletSession
from web.dependencies import get_session, get_wallet_service
from web.models.requests import (
    ExternalTransferRequest,
    FiatDepositRequest,
    LedgerDepositRequest,
    TransferRequest,
)
from web.models.responses import (
    OperationResponse,
    TransactionListResponse,
    TransactionResponse,
    WalletResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


async def _load_snapshot(
    service: WalletService,
    session: WalletSession,
    refresh: bool,
) -> WalletSnapshot:
    """캐시 스냅샷 (처음이거나 refresh=True면 갱신)

    Raises:
        HTTPException: 갱신 실패 + 캐시 없음 503
    """
    snapshot = service.snapshot(session.user_id)
    if refresh or not snapshot.is_loaded:
        result = await service.refresh(session.user_id)
        if result.success and result.value is not None:
            return result.value

        snapshot = service.snapshot(session.user_id)
        if not snapshot.is_loaded:
            raise HTTPException(status_code=503, detail=result.error)
    return snapshot


# =========================================================================
# 조회
# =========================================================================


@router.get("/{handle}", response_model=WalletResponse)
async def get_wallet(
    refresh: bool = Query(default=False, description="백킹 스토어에서 다시 조회"),
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> WalletResponse:
    """잔고 스냅샷"""
    snapshot = await _load_snapshot(service, session, refresh)
    return WalletResponse.from_snapshot(
        snapshot,
        handle=session.handle,
        sending_transfer=service.sending_transfer,
    )


@router.get("/{handle}/transactions", response_model=TransactionListResponse)
async def get_transactions(
    refresh: bool = Query(default=False),
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> TransactionListResponse:
    """최근 트랜잭션 (최신순, 최대 20건)"""
    snapshot = await _load_snapshot(service, session, refresh)
    transactions = [TransactionResponse.from_entry(e) for e in snapshot.transactions]
    return TransactionListResponse(transactions=transactions, total=len(transactions))


@router.get("/{handle}/deposits/pending", response_model=TransactionListResponse)
async def get_pending_deposits(
    refresh: bool = Query(default=False),
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> TransactionListResponse:
    """확정 대기 중인 입금"""
    snapshot = await _load_snapshot(service, session, refresh)
    deposits = [TransactionResponse.from_transaction(tx) for tx in snapshot.pending_deposits]
    return TransactionListResponse(transactions=deposits, total=len(deposits))


# =========================================================================
# 이체
# =========================================================================


@router.post("/{handle}/transfer", response_model=OperationResponse)
async def transfer_internal(
    request: TransferRequest,
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> OperationResponse:
    """플랫폼 내부 이체"""
    result = await service.transfer_internal(
        session,
        request.receiver,
        request.amount,
        memo=request.memo,
        description=request.description,
        request_key=request.request_key,
    )
    return OperationResponse.from_result(result)


@router.post("/{handle}/transfer/external", response_model=OperationResponse)
async def transfer_external(
    request: ExternalTransferRequest,
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> OperationResponse:
    """외부 원장 이체"""
    result = await service.transfer_external(
        session,
        request.destination,
        request.amount,
        request.signing_secret,
        memo=request.memo,
    )
    return OperationResponse.from_result(result)


# =========================================================================
# 입금
# =========================================================================


@router.post("/{handle}/deposit/fiat", response_model=OperationResponse)
async def deposit_fiat(
    request: FiatDepositRequest,
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> OperationResponse:
    """게이트웨이 입금 시작"""
    result = await service.initiate_fiat_deposit(session, request.amount, request.email)
    return OperationResponse.from_result(result)


@router.post("/{handle}/deposit/ledger", response_model=OperationResponse)
async def deposit_ledger(
    request: LedgerDepositRequest,
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> OperationResponse:
    """원장 직접 입금 시작"""
    result = await service.initiate_ledger_deposit(
        session, request.amount, request.signing_secret
    )
    return OperationResponse.from_result(result)


@router.post("/{handle}/deposit/{transaction_id}/confirm", response_model=OperationResponse)
async def confirm_deposit(
    transaction_id: str,
    session: WalletSession = Depends(get_session),
    service: WalletService = Depends(get_wallet_service),
) -> OperationResponse:
    """입금 확정 폴링"""
    result = await service.confirm_deposit(transaction_id, session)
    return OperationResponse.from_result(result)
