"""
Supabase PostgREST 클라이언트

테이블 조회/삽입/갱신과 RPC(저장 프로시저) 호출.
httpx 기반, 타임아웃/연결 오류 시 재시도.
HTTP 에러는 TransportError로 변환.
"""

import asyncio
import logging
from typing import Any

import httpx

from core.constants import Defaults
from core.errors import TransportError

logger = logging.getLogger(__name__)


class SupabaseRestClient:
    """Supabase PostgREST 클라이언트

    Args:
        rest_url: PostgREST 베이스 URL ({project}/rest/v1)
        anon_key: anon API 키
        access_token: 사용자 JWT (없으면 anon 키로 인증)
        timeout: 요청 타임아웃 (초)
        max_retries: 최대 재시도 횟수 (타임아웃/연결 오류)
        transport: httpx 전송 계층 (테스트용 MockTransport 주입)
    """

    def __init__(
        self,
        rest_url: str,
        anon_key: str,
        access_token: str | None = None,
        timeout: float = Defaults.HTTP_TIMEOUT_SEC,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rest_url = rest_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """API 요청 실행

        Raises:
            TransportError: HTTP 에러 또는 재시도 소진
        """
        url = f"{self.rest_url}{path}"
        client = await self._get_client()

        for attempt in range(self.max_retries):
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
            except httpx.TimeoutException:
                logger.warning(
                    "Supabase request timeout",
                    extra={"path": path, "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 * (attempt + 1))
                    continue
                raise TransportError(f"{method} {path} timed out")
            except httpx.RequestError as e:
                logger.error(
                    "Supabase request error",
                    extra={"path": path, "error": str(e), "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 * (attempt + 1))
                    continue
                raise TransportError(f"{method} {path} failed: {e}") from e

            if response.status_code >= 400:
                try:
                    message = response.json().get("message", response.text)
                except ValueError:
                    message = response.text
                raise TransportError(message, status_code=response.status_code)

            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        raise TransportError(f"{method} {path}: all retries failed")

    # -------------------------------------------------------------------------
    # 테이블 / RPC
    # -------------------------------------------------------------------------

    async def select(
        self,
        table: str,
        params: dict[str, str],
    ) -> list[dict[str, Any]]:
        """테이블 조회 (PostgREST 쿼리 파라미터 그대로 전달)"""
        data = await self._request("GET", f"/{table}", params=params)
        return list(data or [])

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        """행 삽입 후 삽입된 행 반환"""
        data = await self._request(
            "POST",
            f"/{table}",
            json=values,
            prefer="return=representation",
        )
        if not data:
            raise TransportError(f"insert into {table} returned no row")
        return data[0]

    async def update(
        self,
        table: str,
        params: dict[str, str],
        values: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """필터에 맞는 행 갱신 후 갱신된 행 목록 반환"""
        data = await self._request(
            "PATCH",
            f"/{table}",
            params=params,
            json=values,
            prefer="return=representation",
        )
        return list(data or [])

    async def rpc(self, function: str, arguments: dict[str, Any]) -> Any:
        """저장 프로시저 호출"""
        return await self._request("POST", f"/rpc/{function}", json=arguments)
