"""DuckDB-backed persistence for users, rooms, memberships and messages.

The messenger keeps its relational state in a single embedded DuckDB file.
One ``Database`` instance is created at process start and handed to the
repositories; it owns exactly one connection.

Database Schema:
    users:                id, email, display_name, role, status, last_seen,
                          preferred_lang, bio, avatar_url, is_banned,
                          created_at
    rooms:                id, type (direct|group), name, created_by,
                          created_at, last_message_at
    room_members:         room_id, user_id, role (admin|member), is_active,
                          joined_at, last_read_at
    messages:             id, sender_id, room_id, content, attachment_url,
                          attachment_type, status (sent|delivered|read),
                          reply_to_id, expires_at, is_deleted, created_at
    message_translations: message_id, language, translated_content,
                          confidence
    moderation_queue:     id, message_id (unique), reason, status
                          (pending|approved|rejected), created_at,
                          resolved_by, resolved_at

Thread Safety:
    The DuckDB connection is NOT safe for concurrent use. Every statement
    goes through ``execute``/``fetchone``/``fetchall`` which hold a lock for
    the duration of the call.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Sequence

import duckdb

from app.errors import TransientStoreError

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id             VARCHAR PRIMARY KEY,
        email          VARCHAR NOT NULL,
        display_name   VARCHAR NOT NULL DEFAULT '',
        role           VARCHAR NOT NULL DEFAULT 'user',
        status         VARCHAR NOT NULL DEFAULT 'offline',
        last_seen      TIMESTAMP,
        preferred_lang VARCHAR,
        bio            VARCHAR,
        avatar_url     VARCHAR,
        is_banned      BOOLEAN NOT NULL DEFAULT FALSE,
        created_at     TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id              VARCHAR PRIMARY KEY,
        type            VARCHAR NOT NULL,
        name            VARCHAR,
        created_by      VARCHAR NOT NULL,
        created_at      TIMESTAMP NOT NULL,
        last_message_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS room_members (
        room_id      VARCHAR NOT NULL,
        user_id      VARCHAR NOT NULL,
        role         VARCHAR NOT NULL DEFAULT 'member',
        is_active    BOOLEAN NOT NULL DEFAULT TRUE,
        joined_at    TIMESTAMP NOT NULL,
        last_read_at TIMESTAMP,
        PRIMARY KEY (room_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id              VARCHAR PRIMARY KEY,
        sender_id       VARCHAR NOT NULL,
        room_id         VARCHAR NOT NULL,
        content         VARCHAR,
        attachment_url  VARCHAR,
        attachment_type VARCHAR,
        status          VARCHAR NOT NULL DEFAULT 'sent',
        reply_to_id     VARCHAR,
        expires_at      TIMESTAMP,
        is_deleted      BOOLEAN NOT NULL DEFAULT FALSE,
        created_at      TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_translations (
        message_id         VARCHAR NOT NULL,
        language           VARCHAR NOT NULL,
        translated_content VARCHAR NOT NULL,
        confidence         DOUBLE,
        PRIMARY KEY (message_id, language)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS moderation_queue (
        id          VARCHAR PRIMARY KEY,
        message_id  VARCHAR NOT NULL UNIQUE,
        reason      VARCHAR,
        status      VARCHAR NOT NULL DEFAULT 'pending',
        created_at  TIMESTAMP NOT NULL,
        resolved_by VARCHAR,
        resolved_at TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_members_user ON room_members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id)",
]


def utc_now_naive() -> datetime:
    """Current UTC time without tzinfo, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """Owns the DuckDB connection and the schema.

    Attributes:
        path: DuckDB file path, or ``":memory:"``.
    """

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._lock = threading.RLock()
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(path)
        self._initialize_schema()
        logger.info("[Database] Initialized with db=%s", path)

    def _initialize_schema(self) -> None:
        """Create tables and indexes. Safe to call multiple times."""
        for statement in _SCHEMA:
            self.execute(statement)

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise TransientStoreError("Database connection is closed")
        return self._conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        with self._lock:
            try:
                self._connection().execute(sql, list(params))
            except duckdb.IOException as exc:
                raise TransientStoreError(f"Database unavailable: {exc}") from exc

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        with self._lock:
            try:
                return self._connection().execute(sql, list(params)).fetchone()
            except duckdb.IOException as exc:
                raise TransientStoreError(f"Database unavailable: {exc}") from exc

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        with self._lock:
            try:
                return self._connection().execute(sql, list(params)).fetchall()
            except duckdb.IOException as exc:
                raise TransientStoreError(f"Database unavailable: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run several statements atomically; rolls back on any exception."""
        with self._lock:
            self.execute("BEGIN TRANSACTION")
            try:
                yield self
            except BaseException:
                self.execute("ROLLBACK")
                raise
            self.execute("COMMIT")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
