"""
SQLite 사용자 디렉토리

users + profiles 조인 조회. IUserDirectory Protocol 준수.
각 단건 조회는 정렬 후 첫 번째 행만 반환 (동일 단계 내 모호성은 해소하지 않음).
"""

import logging

import aiosqlite

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.models import Identity
from core.errors import TransportError

logger = logging.getLogger(__name__)


_IDENTITY_SELECT = """
    SELECT u.id, u.username, p.display_name, p.avatar_url
    FROM users u LEFT JOIN profiles p ON p.user_id = u.id
"""


def _escape_like(fragment: str) -> str:
    """LIKE 와일드카드 이스케이프"""
    return (
        fragment.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


class SQLiteUserDirectory:
    """SQLite 사용자 디렉토리

    Args:
        db: 연결된 SQLiteAdapter
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def _first(self, where: str, parameter: str) -> Identity | None:
        try:
            row = await self.db.fetchone(
                f"{_IDENTITY_SELECT} WHERE {where} ORDER BY u.username LIMIT 1",
                (parameter,),
            )
        except aiosqlite.Error as e:
            logger.error("사용자 조회 실패", extra={"error": str(e)})
            raise TransportError(f"user lookup failed: {e}") from e

        return Identity.from_row(row) if row else None

    async def find_by_handle(self, handle: str) -> Identity | None:
        return await self._first("u.username = ?", handle)

    async def find_by_display_name(self, display_name: str) -> Identity | None:
        return await self._first("p.display_name = ?", display_name)

    async def find_by_partial_display_name(self, fragment: str) -> Identity | None:
        return await self._first(
            "p.display_name LIKE ? ESCAPE '\\'",
            f"%{_escape_like(fragment)}%",
        )

    async def find_by_partial_handle(self, fragment: str) -> Identity | None:
        return await self._first(
            "u.username LIKE ? ESCAPE '\\'",
            f"%{_escape_like(fragment)}%",
        )

    async def search_prefix(self, prefix: str, limit: int) -> list[Identity]:
        """핸들 또는 표시 이름 접두사 검색 (LIKE는 ASCII 대소문자 무시)"""
        pattern = f"{_escape_like(prefix)}%"

        try:
            rows = await self.db.fetchall(
                f"""
                {_IDENTITY_SELECT}
                WHERE u.username LIKE ? ESCAPE '\\'
                   OR p.display_name LIKE ? ESCAPE '\\'
                ORDER BY u.username
                LIMIT ?
                """,
                (pattern, pattern, limit),
            )
        except aiosqlite.Error as e:
            logger.error("사용자 검색 실패", extra={"error": str(e)})
            raise TransportError(f"user search failed: {e}") from e

        return [Identity.from_row(row) for row in rows]
