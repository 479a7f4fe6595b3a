"""
서명 서비스 브로드캐스터 테스트 (httpx MockTransport)
"""

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest

from adapters.blurt.broadcaster import SignerBroadcaster
from core.errors import BroadcastRejectedError, TransportError

SECRET = "5K" + "a" * 49


async def _broadcast(broadcaster: SignerBroadcaster) -> str:
    return await broadcaster.broadcast_transfer(
        "alice", "ext", Decimal("5"), "BLOCKCHAIN_TRANSFER_abc123", SECRET
    )


class TestSignerBroadcaster:
    """SignerBroadcaster 테스트"""

    @pytest.mark.asyncio
    async def test_success(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(200, json={"tx_id": "abc"}))
        broadcaster = SignerBroadcaster("http://signer.local/", transport=transport)

        tx_id = await _broadcast(broadcaster)

        request = transport.requests[0]
        body = json.loads(request.content)
        assert tx_id == "abc"
        assert str(request.url) == "http://signer.local/transfer"
        assert body["amount"] == "5.000 BLURT"
        assert body["key"] == SECRET
        await broadcaster.close()

    @pytest.mark.asyncio
    async def test_secret_not_logged(
        self, recording_transport: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        transport = recording_transport(lambda request: httpx.Response(200, json={"tx_id": "abc"}))

        with caplog.at_level("INFO"):
            await _broadcast(SignerBroadcaster("http://signer.local", transport=transport))

        for record in caplog.records:
            assert SECRET not in record.getMessage()
            assert SECRET not in str(record.__dict__)

    @pytest.mark.asyncio
    async def test_client_error_is_rejection(self, recording_transport: Any) -> None:
        """4xx: 네트워크 미제출 확정"""
        transport = recording_transport(
            lambda request: httpx.Response(400, json={"error": "missing active authority"})
        )

        with pytest.raises(BroadcastRejectedError, match="missing active authority"):
            await _broadcast(SignerBroadcaster("http://signer.local", transport=transport))

    @pytest.mark.asyncio
    async def test_server_error_is_transport(self, recording_transport: Any) -> None:
        """5xx: 결과 불명"""
        transport = recording_transport(lambda request: httpx.Response(503))

        with pytest.raises(TransportError) as exc_info:
            await _broadcast(SignerBroadcaster("http://signer.local", transport=transport))

        assert not isinstance(exc_info.value, BroadcastRejectedError)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_no_retry_on_timeout(self, recording_transport: Any) -> None:
        """브로드캐스트는 재시도하지 않음"""
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        transport = recording_transport(slow)

        with pytest.raises(TransportError):
            await _broadcast(SignerBroadcaster("http://signer.local", transport=transport))

        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_missing_tx_id(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(200, json={}))

        with pytest.raises(TransportError):
            await _broadcast(SignerBroadcaster("http://signer.local", transport=transport))
