# src/noderewards/storage/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

SCHEMA_VERSION = 1

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS kv (
      key TEXT PRIMARY KEY,
      value_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
)

_SYNC_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")


def canon_json(obj: Any) -> str:
    """Canonical JSON: sorted keys, no whitespace, no fallback encoder.

    A Decimal (or any non-JSON value) reaching storage raises TypeError.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_ms(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        return max(0, int(raw)) if raw else int(default)
    except ValueError:
        return int(default)


def _is_busy(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "locked" in msg or "busy" in msg


class SqliteDB:
    """One SQLite file holding the contract key/value storage.

    Connections are opened per use and never shared between threads. Writers
    serialize on BEGIN IMMEDIATE; lock contention is retried with jittered
    exponential backoff until NODEREWARDS_SQLITE_WRITE_DEADLINE_MS.
    """

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def synchronous_level() -> str:
        # prod -> FULL, dev/testnet -> NORMAL, NODEREWARDS_SQLITE_SYNCHRONOUS wins if valid
        mode = (os.environ.get("NODEREWARDS_MODE") or "prod").strip().lower()
        fallback = "FULL" if mode == "prod" else "NORMAL"
        wanted = (os.environ.get("NODEREWARDS_SQLITE_SYNCHRONOUS") or fallback).strip().upper()
        return wanted if wanted in _SYNC_LEVELS else fallback

    def _open(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        busy_ms = _env_ms("NODEREWARDS_SQLITE_BUSY_TIMEOUT_MS", 30_000)

        con = sqlite3.connect(self.path, timeout=busy_ms / 1000.0, isolation_level=None, check_same_thread=False)
        con.row_factory = sqlite3.Row

        journal = str(con.execute("PRAGMA journal_mode=WAL;").fetchone()[0]).lower()
        if journal != "wal" and (os.environ.get("NODEREWARDS_SQLITE_ALLOW_NON_WAL") or "").strip() not in {"1", "true"}:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is {journal!r}, expected 'wal'")

        con.execute(f"PRAGMA synchronous={self.synchronous_level()};")
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._open()
        try:
            yield con
        finally:
            con.close()

    def init_schema(self) -> None:
        """Create tables, or refuse to open a DB written by another schema version."""
        with self.write_tx() as con:
            for stmt in _SCHEMA:
                con.execute(stmt)
            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(SCHEMA_VERSION),))
                return
            have = str(row["value"])
            if have != str(SCHEMA_VERSION):
                raise RuntimeError(f"sqlite schema_version is {have}, this build expects {SCHEMA_VERSION}")

    def _with_retry(self, step: Callable[[], Any], deadline: float) -> None:
        base_s = max(0.001, _env_ms("NODEREWARDS_SQLITE_WRITE_BACKOFF_BASE_MS", 5) / 1000.0)
        cap_s = max(base_s, _env_ms("NODEREWARDS_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)
        attempt = 0
        while True:
            try:
                step()
                return
            except sqlite3.OperationalError as e:
                if not _is_busy(e) or time.monotonic() >= deadline:
                    raise
            delay = min(cap_s, base_s * (2 ** min(attempt, 8)))
            time.sleep(delay * random.uniform(0.5, 1.5))
            attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT; ROLLBACK if the body or the commit fails."""
        deadline = time.monotonic() + max(250, _env_ms("NODEREWARDS_SQLITE_WRITE_DEADLINE_MS", 30_000)) / 1000.0
        with self.connection() as con:
            self._with_retry(lambda: con.execute("BEGIN IMMEDIATE;"), deadline)
            try:
                yield con
                self._with_retry(lambda: con.execute("COMMIT;"), deadline)
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise
