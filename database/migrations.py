"""Database schema migrations."""

from __future__ import annotations

import sqlite3
from typing import Iterable

from core.logger import get_logger

logger = get_logger(__name__)


SCHEMA_SQL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS contests (
        id TEXT PRIMARY KEY,
        data TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
)


def _execute_statements(conn: sqlite3.Connection, statements: Iterable[str]) -> None:
    for statement in statements:
        conn.execute(statement)


def run_migrations(conn: sqlite3.Connection) -> None:
    """Create the contest table if it does not exist yet."""
    conn.execute("BEGIN")
    try:
        _execute_statements(conn, SCHEMA_SQL)
    except Exception:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
    logger.debug("contest schema ensured")
