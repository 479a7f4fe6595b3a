"""
데이터베이스 어댑터

SQLite WAL 모드 연결 관리, 백킹 스토어, 사용자 디렉토리, 프로세스 내 변경 피드.
"""

from adapters.db.backing_store import SQLiteBackingStore
from adapters.db.change_feed import InProcessChangeFeed, InProcessChannel
from adapters.db.sqlite_adapter import (
    SQLiteAdapter,
    create_connection,
    get_db_path,
    init_schema,
)
from adapters.db.user_directory import SQLiteUserDirectory

__all__ = [
    "SQLiteBackingStore",
    "InProcessChangeFeed",
    "InProcessChannel",
    "SQLiteAdapter",
    "create_connection",
    "get_db_path",
    "init_schema",
    "SQLiteUserDirectory",
]
