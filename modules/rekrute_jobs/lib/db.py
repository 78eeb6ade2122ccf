from __future__ import annotations

import contextlib
import json
import os
import sqlite3
import threading
from typing import Any

from .logging_bridge import error as log_error
from .utils import now_iso

# ---- Public API -------------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)


class SqliteSink:
    """
    Record sink keyed by job URL.

    A URL already stored (from this run or an earlier one) is ignored, so the
    table holds the first record seen for each job. `inserted` counts rows
    actually written by this sink.
    """

    def __init__(self, sqlite_path: str):
        self.sqlite_path = sqlite_path
        self.inserted = 0
        self._lock = threading.Lock()
        init_db(sqlite_path)
        self._conn = _connect(sqlite_path, check_same_thread=False)
        _apply_pragmas(self._conn)

    def write(self, record: dict[str, Any]) -> None:
        url = str(record.get("url") or "").strip()
        if not url:
            raise ValueError("record has no 'url'")
        kind = "job" if "descriptionHtml" in record or "title" in record else "url"
        payload = json.dumps(record, ensure_ascii=False)
        try:
            with self._lock:
                cur = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO jobs (url, kind, source, record_json, first_seen_utc)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (url, kind, record.get("source"), payload, now_iso()),
                )
                if cur.rowcount == 1:
                    self.inserted += 1
        except sqlite3.Error as e:
            log_error({
                "component": "rekrute_jobs.db",
                "op": "write",
                "sqlite_path": self.sqlite_path,
                "url": url,
                "error": repr(e),
            })
            raise

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def count_rows(sqlite_path: str) -> int:
    """Return total rows in the jobs table; 0 if DB missing/empty."""
    if not os.path.exists(sqlite_path):
        return 0
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _ensure_schema(conn)
        (n,) = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
    return int(n or 0)


def load_records(sqlite_path: str) -> list[dict[str, Any]]:
    """Stored records in insertion order."""
    if not os.path.exists(sqlite_path):
        return []
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _ensure_schema(conn)
        rows = conn.execute("SELECT record_json FROM jobs ORDER BY id").fetchall()
    return [json.loads(r[0]) for r in rows]


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str, *, check_same_thread: bool = True) -> sqlite3.Connection:
    # Autocommit; each INSERT is its own transaction.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None, check_same_thread=check_same_thread)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY,
          url TEXT NOT NULL UNIQUE,
          kind TEXT NOT NULL,
          source TEXT,
          record_json TEXT NOT NULL,
          first_seen_utc TEXT NOT NULL
        );
        """
    )
