"""
Supabase PostgREST 클라이언트 테스트 (httpx MockTransport)
"""

from typing import Any

import httpx
import pytest

from adapters.supabase.rest_client import SupabaseRestClient
from core.errors import TransportError

REST_URL = "https://demo.supabase.co/rest/v1"


class TestRequests:
    """요청 형식"""

    @pytest.mark.asyncio
    async def test_select_headers_and_params(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(200, json=[{"id": 1}]))
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        rows = await client.select("balances", {"user_id": "eq.u-1", "select": "*"})

        request = transport.requests[0]
        assert rows == [{"id": 1}]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/balances"
        assert request.url.params["user_id"] == "eq.u-1"
        assert request.headers["apikey"] == "anon"
        assert request.headers["Authorization"] == "Bearer anon"
        await client.close()

    @pytest.mark.asyncio
    async def test_access_token(self, recording_transport: Any) -> None:
        """사용자 토큰이 있으면 Bearer 토큰으로 사용"""
        transport = recording_transport(lambda request: httpx.Response(200, json=[]))
        client = SupabaseRestClient(REST_URL, "anon", access_token="jwt", transport=transport)

        await client.select("users", {})

        assert transport.requests[0].headers["Authorization"] == "Bearer jwt"

    @pytest.mark.asyncio
    async def test_insert_returns_row(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(201, json=[{"id": "tx-1"}]))
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        row = await client.insert("wallet_transactions", {"memo": "m"})

        assert row == {"id": "tx-1"}
        assert transport.requests[0].headers["Prefer"] == "return=representation"
        assert transport.json_body() == {"memo": "m"}

    @pytest.mark.asyncio
    async def test_insert_without_row(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(201, json=[]))
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        with pytest.raises(TransportError):
            await client.insert("wallet_transactions", {})

    @pytest.mark.asyncio
    async def test_update(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(200, json=[{"id": "tx-1"}]))
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        rows = await client.update("wallet_transactions", {"id": "eq.tx-1"}, {"status": "failed"})

        assert rows == [{"id": "tx-1"}]
        assert transport.requests[0].method == "PATCH"

    @pytest.mark.asyncio
    async def test_rpc(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(200, json={"success": True}))
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        result = await client.rpc("transfer_funds", {"transfer_amount": "1"})

        assert result == {"success": True}
        assert transport.requests[0].url.path == "/rest/v1/rpc/transfer_funds"

    @pytest.mark.asyncio
    async def test_no_content(self, recording_transport: Any) -> None:
        transport = recording_transport(lambda request: httpx.Response(204))
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        assert await client.rpc("noop", {}) is None


class TestErrors:
    """에러 변환"""

    @pytest.mark.asyncio
    async def test_http_error(self, recording_transport: Any) -> None:
        transport = recording_transport(
            lambda request: httpx.Response(409, json={"message": "duplicate key"})
        )
        client = SupabaseRestClient(REST_URL, "anon", transport=transport)

        with pytest.raises(TransportError) as exc_info:
            await client.select("users", {})

        assert exc_info.value.status_code == 409
        assert exc_info.value.message == "duplicate key"

    @pytest.mark.asyncio
    async def test_connection_error_retries(
        self, recording_transport: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """연결 오류는 재시도 후 TransportError"""
        async def no_sleep(delay: float) -> None:
            return None

        monkeypatch.setattr("adapters.supabase.rest_client.asyncio.sleep", no_sleep)

        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = recording_transport(fail)
        client = SupabaseRestClient(REST_URL, "anon", max_retries=2, transport=transport)

        with pytest.raises(TransportError):
            await client.select("users", {})

        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_timeout_then_success(
        self, recording_transport: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def no_sleep(delay: float) -> None:
            return None

        monkeypatch.setattr("adapters.supabase.rest_client.asyncio.sleep", no_sleep)
        calls = {"n": 0}

        def flaky(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=[])

        client = SupabaseRestClient(REST_URL, "anon", transport=recording_transport(flaky))

        assert await client.select("users", {}) == []
        assert calls["n"] == 2
