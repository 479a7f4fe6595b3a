"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from decimal import Decimal
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Sequence, runtime_checkable

from adapters.models import (
    Account,
    ChangeEvent,
    ConfirmOutcome,
    Identity,
    PaymentInit,
    Settlement,
    Transaction,
    TransferOutcome,
)
from core.types import ChangeKind, TransactionStatus


@runtime_checkable
class IBackingStore(Protocol):
    """백킹 스토어 인터페이스

    Account/Transaction CRUD와 두 개의 권한 있는 프로시저
    (transfer_funds, confirm_pending_deposit) 제공.
    프로시저는 서버 측 단일 트랜잭션으로 원자적이어야 함.

    전송 계층 실패는 TransportError로 올림.
    """

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get_user_by_handle(self, handle: str) -> Identity | None:
        """핸들로 사용자 조회 (정확히 일치)"""
        ...

    async def get_account(self, user_id: str) -> Account | None:
        """계좌 잔고 조회

        Returns:
            Account 또는 None (원장 행 없음)
        """
        ...

    async def get_recent_transactions(
        self,
        user_id: str,
        limit: int = 20,
    ) -> list[Transaction]:
        """송신자 또는 수신자인 최근 트랜잭션 (최신순)"""
        ...

    async def get_pending_deposits(self, user_id: str) -> list[Transaction]:
        """pending 상태의 입금 트랜잭션 (최신순)"""
        ...

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        """트랜잭션 단건 조회"""
        ...

    # -------------------------------------------------------------------------
    # 기록
    # -------------------------------------------------------------------------

    async def insert_transaction(self, values: dict[str, Any]) -> Transaction:
        """트랜잭션 행 삽입

        Args:
            values: 컬럼 값 (sender_id, receiver_id, amount, fee, memo, type,
                    status, payment_method, description, metadata)
        """
        ...

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction | None:
        """pending 행의 상태 전이 (금액/수수료는 변경 불가)

        Returns:
            갱신된 Transaction 또는 None (pending 행이 아님)
        """
        ...

    # -------------------------------------------------------------------------
    # 권한 있는 프로시저
    # -------------------------------------------------------------------------

    async def transfer_funds(
        self,
        sender_handle: str,
        receiver_handle: str,
        amount: Decimal,
        memo: str,
        description: str,
        request_key: str | None = None,
    ) -> TransferOutcome:
        """내부 이체 (서버 측 잔고 재검증 + 수수료 적용, 원자적)"""
        ...

    async def confirm_pending_deposit(self, transaction_id: str) -> ConfirmOutcome:
        """입금 확정 (memo+amount+destination으로 정산 조회, 멱등)"""
        ...


@runtime_checkable
class IUserDirectory(Protocol):
    """사용자 디렉토리 인터페이스

    각 조회는 첫 번째 행만 반환.
    """

    async def find_by_handle(self, handle: str) -> Identity | None:
        """핸들 정확히 일치"""
        ...

    async def find_by_display_name(self, display_name: str) -> Identity | None:
        """표시 이름 정확히 일치"""
        ...

    async def find_by_partial_display_name(self, fragment: str) -> Identity | None:
        """표시 이름 부분 일치 (대소문자 무시)"""
        ...

    async def find_by_partial_handle(self, fragment: str) -> Identity | None:
        """핸들 부분 일치 (대소문자 무시)"""
        ...

    async def search_prefix(self, prefix: str, limit: int) -> list[Identity]:
        """핸들 또는 표시 이름 접두사 검색 (대소문자 무시)"""
        ...


@runtime_checkable
class IChangeChannel(Protocol):
    """변경 피드 채널 (구독 1건)"""

    async def close(self) -> None:
        """채널 종료 (멱등)"""
        ...


# 변경 이벤트 콜백 타입
ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]

# 행 필터 (컬럼, 값) - 값이 같을 때만 전달 (eq)
RowFilter = tuple[str, str]


@runtime_checkable
class IChangeFeed(Protocol):
    """변경 피드 인터페이스 (테이블 + 행 필터 기반 push 구독)"""

    async def subscribe(
        self,
        table: str,
        event: ChangeKind,
        filters: Sequence[RowFilter],
        callback: ChangeCallback,
    ) -> IChangeChannel:
        """구독 시작

        Args:
            table: 테이블 이름
            event: 변경 종류 (ALL이면 전체)
            filters: (컬럼, 값) 필터 목록, 하나라도 맞으면 전달 (빈 목록이면 전체 행)
            callback: 이벤트 수신 콜백
        """
        ...


@runtime_checkable
class ILedgerBroadcaster(Protocol):
    """외부 원장 브로드캐스트 인터페이스

    서명 및 네트워크 제출은 외부 협력자 책임.
    """

    async def broadcast_transfer(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        memo: str,
        signing_secret: str,
    ) -> str:
        """서명된 이체 브로드캐스트

        Returns:
            네트워크 트랜잭션 ID
        """
        ...


@runtime_checkable
class ISettlementSource(Protocol):
    """정산 조회 인터페이스 (외부 네트워크 인덱서)"""

    async def find_settlement(self, memo: str, destination: str) -> Settlement | None:
        """memo로 정산 조회

        destination 계정의 수신 내역에서 memo가 일치하는 첫 정산을 반환.
        금액/목적지 일치 여부 검증은 호출자(confirm 프로시저) 책임.
        """
        ...


@runtime_checkable
class IPaymentGateway(Protocol):
    """결제 게이트웨이 인터페이스"""

    async def initialize_payment(
        self,
        amount: Decimal,
        contact: str,
        reference: str,
    ) -> PaymentInit:
        """결제 초기화

        Args:
            amount: 결제 금액
            contact: 사용자 연락처 (이메일)
            reference: 상관관계 ID (memo)
        """
        ...


# 구독 스트림 타입
ChangeStream = AsyncIterator[ChangeEvent]
