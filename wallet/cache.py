"""
잔고 캐시 / 트랜잭션 원장

사용자별 마지막 잔고와 최근 트랜잭션 창(20건), pending 입금 목록 보관.
요청 시 또는 변경 피드 이벤트로 갱신.

보장:
- 갱신 완료 시점의 캐시는 조회 시점의 백킹 스토어 상태를 반영 (최종 일관성)
- 갱신 실패 시 이전 캐시 값 유지 (None/부분 데이터로 덮어쓰지 않음)
- 동시 refresh 호출은 진행 중인 조회 하나에 합류
- 각 조회는 단조 증가 revision을 가지며, 이미 반영된 것보다 오래된 응답은 폐기
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal

from adapters.interfaces import IBackingStore
from adapters.models import Account, Transaction
from core.constants import Limits
from core.errors import DataUnavailableError, WalletError
from core.utils.formatting import describe_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """표시용 트랜잭션 (현재 사용자 관점)

    Attributes:
        transaction: 원본 트랜잭션
        is_sent: 현재 사용자가 송신자인지
        counterparty_handle: 상대방 핸들
        description: 표시 설명
    """

    transaction: Transaction
    is_sent: bool
    counterparty_handle: str | None
    description: str

    @classmethod
    def from_transaction(cls, tx: Transaction, user_id: str) -> "LedgerEntry":
        is_sent = tx.sender_id == user_id
        counterparty = tx.receiver_handle if is_sent else tx.sender_handle
        return cls(
            transaction=tx,
            is_sent=is_sent,
            counterparty_handle=counterparty,
            description=describe_transaction(tx.type, is_sent, counterparty, tx.description),
        )


@dataclass(frozen=True)
class WalletSnapshot:
    """캐시 스냅샷 (불변)

    Attributes:
        user_id: 사용자 ID
        account: 계좌 (원장 행 없으면 None)
        transactions: 최근 트랜잭션 (최신순)
        pending_deposits: pending 입금 (최신순)
        revision: 반영된 조회 revision (0이면 아직 조회 전)
        refreshed_at: 마지막 반영 시각
        loading: 조회 진행 중
        error: 마지막 조회 실패 사유
    """

    user_id: str
    account: Account | None = None
    transactions: tuple[LedgerEntry, ...] = ()
    pending_deposits: tuple[Transaction, ...] = ()
    revision: int = 0
    refreshed_at: datetime | None = None
    loading: bool = False
    error: str | None = None

    @property
    def is_loaded(self) -> bool:
        return self.revision > 0

    @property
    def available_balance(self) -> Decimal:
        return self.account.available_balance if self.account else Decimal("0")

    @property
    def reward_balance(self) -> Decimal:
        return self.account.reward_balance if self.account else Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.account.total if self.account else Decimal("0")


@dataclass
class _UserState:
    """사용자별 내부 상태"""

    snapshot: WalletSnapshot
    in_flight: asyncio.Task[WalletSnapshot] | None = None
    query_count: int = 0


class BalanceCache:
    """잔고 캐시

    Args:
        store: 백킹 스토어
        recent_limit: 최근 트랜잭션 개수
    """

    def __init__(
        self,
        store: IBackingStore,
        recent_limit: int = Limits.RECENT_TRANSACTIONS,
    ):
        self.store = store
        self.recent_limit = recent_limit
        self._states: dict[str, _UserState] = {}
        self._revisions = itertools.count(1)

    def _state(self, user_id: str) -> _UserState:
        state = self._states.get(user_id)
        if state is None:
            state = _UserState(snapshot=WalletSnapshot(user_id=user_id))
            self._states[user_id] = state
        return state

    # -------------------------------------------------------------------------
    # 조회 (캐시만)
    # -------------------------------------------------------------------------

    def snapshot(self, user_id: str) -> WalletSnapshot:
        """현재 캐시 스냅샷 (백킹 스토어 조회 없음)"""
        state = self._state(user_id)
        loading = state.in_flight is not None and not state.in_flight.done()
        if loading == state.snapshot.loading:
            return state.snapshot
        return replace(state.snapshot, loading=loading)

    def is_loading(self, user_id: str) -> bool:
        return self.snapshot(user_id).loading

    def last_error(self, user_id: str) -> str | None:
        return self._state(user_id).snapshot.error

    def query_count(self, user_id: str) -> int:
        """백킹 스토어 조회 횟수 (진단용)"""
        return self._state(user_id).query_count

    def evict(self, user_id: str) -> None:
        """사용자 캐시 제거"""
        state = self._states.pop(user_id, None)
        if state is not None and state.in_flight is not None:
            state.in_flight.cancel()

    # -------------------------------------------------------------------------
    # 갱신
    # -------------------------------------------------------------------------

    async def refresh(self, user_id: str, force_new: bool = False) -> WalletSnapshot:
        """백킹 스토어에서 잔고/트랜잭션 갱신

        Args:
            user_id: 사용자 ID
            force_new: True면 진행 중인 조회를 기다린 뒤 새로 조회
                       (자금 이동 직후처럼 이전 조회가 변경을 놓칠 수 있을 때)

        Returns:
            갱신된 스냅샷

        Raises:
            DataUnavailableError: 조회 실패 (캐시는 이전 값 유지)
        """
        state = self._state(user_id)

        in_flight = state.in_flight
        if in_flight is not None and not in_flight.done():
            if not force_new:
                return await asyncio.shield(in_flight)
            try:
                await asyncio.shield(in_flight)
            except DataUnavailableError:
                pass
            # 기다리는 동안 다른 호출이 새 조회를 시작했으면 합류
            if state.in_flight is not None and not state.in_flight.done():
                return await asyncio.shield(state.in_flight)

        task = asyncio.create_task(self._load(user_id, next(self._revisions)))
        state.in_flight = task
        try:
            return await asyncio.shield(task)
        finally:
            if state.in_flight is task and task.done():
                state.in_flight = None

    async def _load(self, user_id: str, revision: int) -> WalletSnapshot:
        state = self._state(user_id)
        state.query_count += 1

        try:
            account = await self.store.get_account(user_id)
            transactions = await self.store.get_recent_transactions(user_id, self.recent_limit)
            pending = await self.store.get_pending_deposits(user_id)
        except WalletError as e:
            raise self._record_failure(user_id, e.message) from e
        except Exception as e:
            logger.exception("지갑 조회 중 예외", extra={"user_id": user_id})
            raise self._record_failure(user_id, str(e) or type(e).__name__) from e

        return self.apply(
            user_id,
            revision,
            account,
            transactions,
            pending,
        )

    def _record_failure(self, user_id: str, message: str) -> DataUnavailableError:
        """실패 기록 (캐시 값은 유지)"""
        state = self._state(user_id)
        state.snapshot = replace(state.snapshot, error=message)
        logger.warning("지갑 조회 실패", extra={"user_id": user_id, "error": message})
        return DataUnavailableError(message)

    def apply(
        self,
        user_id: str,
        revision: int,
        account: Account | None,
        transactions: list[Transaction],
        pending_deposits: list[Transaction],
    ) -> WalletSnapshot:
        """조회 결과 반영 (오래된 revision은 폐기)

        Returns:
            반영 후(또는 폐기 시 현재) 스냅샷
        """
        state = self._state(user_id)

        if revision <= state.snapshot.revision:
            logger.debug(
                "오래된 조회 응답 폐기",
                extra={
                    "user_id": user_id,
                    "revision": revision,
                    "applied_revision": state.snapshot.revision,
                },
            )
            return state.snapshot

        state.snapshot = WalletSnapshot(
            user_id=user_id,
            account=account,
            transactions=tuple(
                LedgerEntry.from_transaction(tx, user_id) for tx in transactions
            ),
            pending_deposits=tuple(pending_deposits),
            revision=revision,
            refreshed_at=datetime.now(timezone.utc),
        )
        return state.snapshot

    def next_revision(self) -> int:
        """외부 조회 결과를 apply할 때 사용할 revision 발급"""
        return next(self._revisions)
