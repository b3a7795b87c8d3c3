"""SQLite connection helper for the contest store."""

from __future__ import annotations

import sqlite3
from pathlib import Path


def _apply_pragma(conn: sqlite3.Connection, busy_timeout_ms: int) -> None:
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=FULL")
    conn.execute("PRAGMA temp_store=MEMORY")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")


def open_connection(database_path: str | Path, busy_timeout_ms: int = 5000) -> sqlite3.Connection:
    """Open a connection in autocommit mode; transactions are explicit.

    ``check_same_thread`` is disabled because the repository serializes all
    access with its own lock while Flask serves requests from worker threads.
    """
    path = Path(database_path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(
        path.as_posix(),
        timeout=busy_timeout_ms / 1000,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    _apply_pragma(conn, busy_timeout_ms)
    return conn
