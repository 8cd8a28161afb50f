"""Shared DuckDB connection.

The directory and the message log live in one embedded database so the
message store can join sender details without a second round trip.

Thread Safety:
    A DuckDB connection is NOT thread-safe, but its cursors are. Every
    statement runs on a fresh cursor of the shared connection, so lookups
    pushed to a worker thread (handshake authentication) are safe.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import duckdb

from servicedesk.errors import StoreError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, for DuckDB TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id          VARCHAR PRIMARY KEY,
        name        VARCHAR NOT NULL,
        email       VARCHAR NOT NULL UNIQUE,
        role        VARCHAR NOT NULL DEFAULT 'standard',
        created_at  TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tickets (
        id              VARCHAR PRIMARY KEY,
        title           VARCHAR NOT NULL,
        description     VARCHAR NOT NULL DEFAULT '',
        reporter_id     VARCHAR NOT NULL,
        assigned_to_id  VARCHAR,
        status          VARCHAR NOT NULL DEFAULT 'open',
        priority        VARCHAR NOT NULL DEFAULT 'medium',
        created_at      TIMESTAMP NOT NULL,
        updated_at      TIMESTAMP NOT NULL,
        closed_at       TIMESTAMP
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id          VARCHAR PRIMARY KEY,
        seq         BIGINT DEFAULT nextval('messages_seq'),
        ticket_id   VARCHAR NOT NULL,
        sender_id   VARCHAR NOT NULL,
        content     VARCHAR NOT NULL,
        is_read     BOOLEAN NOT NULL DEFAULT FALSE,
        read_at     TIMESTAMP,
        created_at  TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_ticket ON messages(ticket_id, created_at)",
]


class Database:
    """Owns the DuckDB connection and the schema."""

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._connect_lock = threading.Lock()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Connect on first use and make sure the schema exists."""
        with self._connect_lock:
            if self._connection is None:
                conn = duckdb.connect(self.path)
                self._initialize(conn)
                self._connection = conn
            return self._connection

    def _initialize(self, conn: duckdb.DuckDBPyConnection) -> None:
        for statement in _SCHEMA:
            conn.execute(statement)
        logger.info("[Database] Initialized with db=%s", self.path)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> duckdb.DuckDBPyConnection:
        """Run a statement, turning driver failures into StoreError."""
        try:
            return self._get_connection().cursor().execute(sql, list(params))
        except duckdb.Error as exc:
            logger.error("[Database] Query failed: %s", exc)
            raise StoreError() from exc

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        return self.execute(sql, params).fetchall()

    def close(self) -> None:
        """Close the database connection."""
        with self._connect_lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
