"""
지갑 세션 컨텍스트

모든 코어 호출에 명시적으로 전달되는 사용자 컨텍스트.
전역 "현재 사용자" 상태를 두지 않는다.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class WalletSession:
    """인증된 사용자 컨텍스트

    Attributes:
        user_id: 플랫폼 사용자 ID
        handle: 사용자 핸들
        ledger_account_id: 외부 원장 계정 ID (프로비저닝 전이면 None)
        contact: 결제 게이트웨이용 연락처 (이메일)
    """

    user_id: str
    handle: str
    ledger_account_id: str | None = None
    contact: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id and self.handle)


def is_authenticated(session: WalletSession | None) -> bool:
    """세션 유효 여부 (None 허용)"""
    return session is not None and session.is_authenticated
