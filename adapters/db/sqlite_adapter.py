"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
Wallet 서비스와 Web이 동시에 접근 가능하도록 설정.

주의: 금액 컬럼은 Decimal 정밀도 유지를 위해 TEXT로 저장
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from core.constants import Paths

logger = logging.getLogger(__name__)


def get_db_path() -> Path:
    """기본 DB 경로 반환"""
    return Paths.WALLET_DB


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)

    # 컬럼 이름으로 접근 가능하도록
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (Web 조회용)

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction() as conn:
        await conn.execute("INSERT INTO ...")

    await adapter.close()
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        # 연결 하나를 공유하므로 조회는 진행 중인 쓰기 트랜잭션이 끝난 뒤 실행
        # (미커밋 중간 상태 노출 방지)
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await create_connection(self.db_path, self.readonly)

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        return self._conn

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        conn = self._require_conn()

        if parameters:
            return await conn.execute(sql, parameters)
        return await conn.execute(sql)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> dict[str, Any] | None:
        """단일 행 조회 (dict)"""
        async with self._lock:
            cursor = await self.execute(sql, parameters)
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[dict[str, Any]]:
        """전체 행 조회 (dict 목록)"""
        async with self._lock:
            cursor = await self.execute(sql, parameters)
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def commit(self) -> None:
        """커밋"""
        if self._conn is not None:
            await self._conn.commit()

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """쓰기 트랜잭션 컨텍스트 매니저 (BEGIN IMMEDIATE)

        시작 시점에 쓰기 잠금을 잡아 다른 연결의 동시 이체와 직렬화.
        같은 연결의 다른 코루틴(트랜잭션, fetchone/fetchall)과는 asyncio.Lock으로 직렬화.
        성공 시 자동 커밋, 예외 시 자동 롤백.
        """
        conn = self._require_conn()

        async with self._lock:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블 생성)

    Args:
        adapter: 연결된 SQLiteAdapter
    """
    # users (플랫폼 사용자)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id               TEXT PRIMARY KEY,
            username         TEXT NOT NULL UNIQUE,
            email            TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # profiles (표시 이름, 아바타)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            user_id          TEXT PRIMARY KEY REFERENCES users(id),
            display_name     TEXT,
            avatar_url       TEXT
        )
    """)

    # balances (원장 행, 없으면 이체 수신 불가)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS balances (
            user_id           TEXT PRIMARY KEY REFERENCES users(id),
            account_id        TEXT NOT NULL,
            available_balance TEXT NOT NULL DEFAULT '0',
            reward_balance    TEXT NOT NULL DEFAULT '0',
            updated_at        TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # wallet_transactions
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS wallet_transactions (
            id               TEXT PRIMARY KEY,
            sender_id        TEXT NOT NULL REFERENCES users(id),
            receiver_id      TEXT REFERENCES users(id),

            amount           TEXT NOT NULL,
            fee              TEXT NOT NULL DEFAULT '0',

            type             TEXT NOT NULL,
            status           TEXT NOT NULL,
            memo             TEXT NOT NULL,
            payment_method   TEXT,
            description      TEXT,
            metadata_json    TEXT NOT NULL DEFAULT '{}',
            request_key      TEXT,

            created_at       TEXT NOT NULL,
            updated_at       TEXT NOT NULL,
            confirmed_at     TEXT
        )
    """)

    # settlements (외부 네트워크/게이트웨이에서 관측된 정산)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS settlements (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            memo             TEXT NOT NULL,
            amount           TEXT NOT NULL,
            destination      TEXT NOT NULL,
            network_tx_id    TEXT NOT NULL UNIQUE,
            source           TEXT NOT NULL,
            observed_at      TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # 인덱스
    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_wallet_tx_sender
        ON wallet_transactions(sender_id, created_at)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_wallet_tx_receiver
        ON wallet_transactions(receiver_id, created_at)
    """)

    # pending 입금 memo는 계정별로 유일
    await adapter.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_wallet_tx_pending_deposit_memo
        ON wallet_transactions(sender_id, memo)
        WHERE type = 'deposit' AND status = 'pending'
    """)

    # 이체 재요청 키는 송신자별로 유일
    await adapter.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_wallet_tx_request_key
        ON wallet_transactions(sender_id, request_key)
        WHERE request_key IS NOT NULL
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_settlements_memo
        ON settlements(memo)
    """)

    await adapter.commit()

    logger.info("스키마 초기화 완료")
