"""
지갑 도메인 예외

모든 예외는 WalletError를 상속하고 ErrorCode를 가진다.
코디네이터 경계에서 OperationResult로 변환되므로 호출자에게 던져지지 않음.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """에러 코드 (API 응답/로그 공통)"""

    VALIDATION = "VALIDATION"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_CREDENTIAL_FORMAT = "INVALID_CREDENTIAL_FORMAT"
    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"
    SETTLEMENT_NOT_YET_CONFIRMED = "SETTLEMENT_NOT_YET_CONFIRMED"
    SETTLEMENT_MISMATCH = "SETTLEMENT_MISMATCH"
    REJECTED = "REJECTED"


class WalletError(Exception):
    """지갑 예외 베이스

    Attributes:
        code: 에러 코드
        retryable: 재시도 가능 여부
    """

    code: ErrorCode = ErrorCode.REJECTED
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WalletError):
    """입력값 검증 실패 (금액 <= 0, 자기 자신에게 이체, 필수값 누락)"""

    code = ErrorCode.VALIDATION


class NotAuthenticatedError(WalletError):
    """세션 없음"""

    code = ErrorCode.NOT_AUTHENTICATED


class NotFoundError(WalletError):
    """사용자 식별 실패 또는 원장 행 없음"""

    code = ErrorCode.NOT_FOUND


class InsufficientFundsError(WalletError):
    """잔고 부족 (클라이언트 fast-fail, 서버에서 재검증)"""

    code = ErrorCode.INSUFFICIENT_FUNDS


class InvalidCredentialFormat(WalletError):
    """서명키 형식 불일치 (브로드캐스트 전 거부)"""

    code = ErrorCode.INVALID_CREDENTIAL_FORMAT


class DataUnavailableError(WalletError):
    """백킹 스토어/네트워크 접근 불가 (캐시 보존, 재시도 가능)"""

    code = ErrorCode.DATA_UNAVAILABLE
    retryable = True


class TransportError(DataUnavailableError):
    """어댑터 전송 계층 실패 (HTTP/WebSocket)

    Attributes:
        status_code: HTTP 상태 코드 (있는 경우)
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SettlementNotYetConfirmed(WalletError):
    """정산 미확인 (치명적이지 않음, 나중에 재시도)"""

    code = ErrorCode.SETTLEMENT_NOT_YET_CONFIRMED
    retryable = True


class SettlementMismatch(WalletError):
    """메모/금액/목적지 불일치 (해당 입금 핸들에 대해 치명적)"""

    code = ErrorCode.SETTLEMENT_MISMATCH


class BroadcastRejectedError(WalletError):
    """브로드캐스트 이전 거부 (서명 실패, 잔고 부족 등 - 네트워크 미제출 확정)"""

    code = ErrorCode.REJECTED


class ConfigLoadError(Exception):
    """설정 로드 실패 예외"""

    pass
