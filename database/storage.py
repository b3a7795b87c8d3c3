"""Whole-collection storage backends for contests.

Both backends persist the same JSON encoding of each contest, so callers
see identical ``Contest`` values regardless of the backend in use.
"""

from __future__ import annotations

import json
import os
import shutil
import sqlite3
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Sequence

from core.exceptions import StoreError
from core.logger import get_logger
from database.connection import open_connection
from database.migrations import run_migrations
from database.models import Contest
from utils.validators import utc_now, utc_now_iso

logger = get_logger(__name__)

SQLITE_SUFFIXES = frozenset({".db", ".sqlite", ".sqlite3"})


def encode_contest(contest: Contest) -> str:
    return json.dumps(contest.to_dict(), ensure_ascii=False, separators=(",", ":"))


def decode_contest(raw: str) -> Contest:
    return Contest.from_dict(json.loads(raw))


class ContestStorage:
    """Base class for a backend that reads and replaces the full collection."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.corrupt_detected = False

    def read_all(self) -> List[Contest]:
        raise NotImplementedError

    def write_all(self, contests: Sequence[Contest]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class JsonContestStorage(ContestStorage):
    """Single JSON document ``{"contests": [...]}`` rewritten atomically."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.write_all([])

    def read_all(self) -> List[Contest]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            # An unreadable store must not be rewritten from an empty collection
            logger.error("contest_store_read_failed path=%s error=%s", self.path, exc)
            raise StoreError(f"Failed to read contest store {self.path}: {exc}") from exc

        try:
            parsed: Any = json.loads(raw)
            if not isinstance(parsed, dict) or not isinstance(parsed.get("contests"), list):
                raise ValueError("missing contests array")
            return [Contest.from_dict(item) for item in parsed["contests"]]
        except (ValueError, KeyError, TypeError) as exc:
            self._quarantine(exc)
            return []

    def write_all(self, contests: Sequence[Contest]) -> None:
        document: Dict[str, Any] = {"contests": [contest.to_dict() for contest in contests]}
        payload = json.dumps(document, ensure_ascii=False, indent=2)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f"Failed to write contest store {self.path}: {exc}") from exc

    def _quarantine(self, error: Exception) -> None:
        """Copy a malformed store aside before a later write replaces it."""
        if self.corrupt_detected:
            return
        self.corrupt_detected = True
        backup = self.path.with_name(f"{self.path.name}.corrupt-{utc_now().strftime('%Y%m%d%H%M%S')}")
        try:
            shutil.copy2(self.path, backup)
        except OSError as exc:
            logger.error("contest_store_quarantine_failed path=%s error=%s", self.path, exc)
            backup = None
        logger.warning(
            "contest_store_malformed path=%s error=%s backup=%s; treating as empty",
            self.path,
            error,
            backup,
        )


class SqliteContestStorage(ContestStorage):
    """Table ``contests(id, data, updated_at)`` replaced inside a transaction."""

    def __init__(self, path: str | Path, busy_timeout_ms: int = 5000) -> None:
        super().__init__(path)
        self._conn = open_connection(self.path, busy_timeout_ms=busy_timeout_ms)
        run_migrations(self._conn)

    def read_all(self) -> List[Contest]:
        rows = self._conn.execute(
            "SELECT id, data FROM contests ORDER BY updated_at ASC, rowid ASC"
        ).fetchall()
        contests: List[Contest] = []
        for row in rows:
            try:
                contests.append(decode_contest(row["data"]))
            except (ValueError, KeyError, TypeError) as exc:
                self.corrupt_detected = True
                raise StoreError(f"Malformed contest row {row['id']}: {exc}") from exc
        return contests

    def write_all(self, contests: Sequence[Contest]) -> None:
        now = utc_now_iso()
        records = [(contest.id, encode_contest(contest), now) for contest in contests]
        try:
            self._conn.execute("BEGIN IMMEDIATE")
            self._conn.execute("DELETE FROM contests")
            self._conn.executemany(
                "INSERT INTO contests (id, data, updated_at) VALUES (?, ?, ?)",
                records,
            )
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise StoreError(f"Failed to write contest store {self.path}: {exc}") from exc

    def close(self) -> None:
        self._conn.close()


def create_storage(storage_path: str | Path) -> ContestStorage:
    """Pick the backend from the storage path suffix."""
    path = Path(storage_path)
    if path.suffix.lower() in SQLITE_SUFFIXES:
        return SqliteContestStorage(path)
    return JsonContestStorage(path)
