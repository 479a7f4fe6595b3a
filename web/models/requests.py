"""
요청 스키마 (Pydantic)

Web API 요청 데이터 검증.
금액은 문자열로 받아 Decimal로 변환 (부동소수점 오차 방지).
"""

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    """내부 이체 요청"""

    receiver: str = Field(..., description="수신자 핸들 또는 표시 이름")
    amount: str = Field(..., description="금액 (BLURT)")
    memo: str | None = Field(default=None, description="메모 (없으면 자동 생성)")
    description: str | None = Field(default=None, description="설명")
    request_key: str | None = Field(
        default=None, description="재요청 식별 키 (같은 키는 한 번만 적용)"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"receiver": "bob", "amount": "10.000"},
            ]
        }
    }


class ExternalTransferRequest(BaseModel):
    """외부 원장 이체 요청"""

    destination: str = Field(..., description="목적지 Blurt 계정")
    amount: str = Field(..., description="금액 (BLURT)")
    signing_secret: str = Field(..., description="Active 개인키 (저장/로깅하지 않음)")
    memo: str | None = Field(default=None, description="메모 (없으면 자동 생성)")


class FiatDepositRequest(BaseModel):
    """게이트웨이 입금 요청"""

    amount: str = Field(..., description="금액 (BLURT)")
    email: str | None = Field(default=None, description="결제 이메일")


class LedgerDepositRequest(BaseModel):
    """원장 직접 입금 요청"""

    amount: str = Field(..., description="금액 (BLURT)")
    signing_secret: str = Field(..., description="Active 개인키 (형식 검사만)")
