"""
어댑터 테스트 픽스처

PostgREST/SQLite 행 형태의 샘플 데이터와 httpx MockTransport 헬퍼.
"""

import json
from typing import Any, Callable

import httpx
import pytest


# -------------------------------------------------------------------------
# 샘플 행
# -------------------------------------------------------------------------

@pytest.fixture
def balance_row() -> dict[str, Any]:
    """balances 행"""
    return {
        "user_id": "u-1",
        "account_id": "alice",
        "available_balance": "100.000",
        "reward_balance": "2.500",
    }


@pytest.fixture
def transaction_row() -> dict[str, Any]:
    """송수신자 핸들이 임베드된 wallet_transactions 행"""
    return {
        "id": "tx-1",
        "sender_id": "u-1",
        "receiver_id": "u-2",
        "amount": "10.000",
        "fee": "0.250",
        "type": "transfer",
        "status": "confirmed",
        "memo": "TRANSFER_abc123",
        "created_at": "2026-10-19T12:00:00Z",
        "description": "lunch",
        "metadata": {"net_amount": "9.750"},
        "payment_method": "internal",
        "sender": {"username": "alice"},
        "receiver": {"username": "bob"},
    }


@pytest.fixture
def user_row() -> dict[str, Any]:
    """users + profiles 평탄화 행"""
    return {
        "id": "u-1",
        "username": "alice",
        "display_name": "Alice Kim",
        "avatar_url": None,
    }


# -------------------------------------------------------------------------
# httpx MockTransport
# -------------------------------------------------------------------------

class RecordingTransport(httpx.MockTransport):
    """요청을 기록하는 MockTransport

    handler가 반환한 응답을 그대로 돌려주고 requests에 요청 누적.
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def json_body(self, index: int = -1) -> Any:
        """index번째 요청 본문 JSON"""
        return json.loads(self.requests[index].content)


@pytest.fixture
def recording_transport() -> Callable[..., RecordingTransport]:
    """RecordingTransport 팩토리"""
    return RecordingTransport
