# src/noderewards/storage/kv.py
from __future__ import annotations

import json
import time
from typing import Any, Dict, Mapping, Optional, Protocol

from noderewards.storage.sqlite_db import SqliteDB, canon_json


class KVStore(Protocol):
    def get_raw(self, key: str) -> Optional[str]: ...

    def write_batch(self, items: Mapping[str, str]) -> None: ...

    def dump(self) -> Dict[str, str]: ...


class JsonAccess:
    """get()/set() over canonical JSON strings.

    Every get() decodes a fresh object, so a caller mutating what it read
    never touches stored state until it calls set().
    """

    def get_raw(self, key: str) -> Optional[str]:  # pragma: no cover
        raise NotImplementedError

    def set_raw(self, key: str, raw: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def get(self, key: str, default: Any = None) -> Any:
        raw = self.get_raw(str(key))
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self.set_raw(str(key), canon_json(value))


class MemoryKV(JsonAccess):
    def __init__(self, data: Optional[Mapping[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(data or {})

    def get_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_raw(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def write_batch(self, items: Mapping[str, str]) -> None:
        self._data.update(items)

    def dump(self) -> Dict[str, str]:
        return dict(self._data)


class SqliteKV(JsonAccess):
    """Durable KV on the `kv` table. Batches land in a single write_tx."""

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def get_raw(self, key: str) -> Optional[str]:
        with self._db.connection() as con:
            row = con.execute("SELECT value_json FROM kv WHERE key=? LIMIT 1;", (key,)).fetchone()
            return None if row is None else str(row["value_json"])

    def set_raw(self, key: str, raw: str) -> None:
        self.write_batch({key: raw})

    def write_batch(self, items: Mapping[str, str]) -> None:
        if not items:
            return
        now = int(time.time() * 1000)
        with self._db.write_tx() as con:
            for key in sorted(items.keys()):
                con.execute(
                    """
                    INSERT INTO kv(key, value_json, updated_ts_ms) VALUES(?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                      value_json=excluded.value_json,
                      updated_ts_ms=excluded.updated_ts_ms;
                    """,
                    (key, items[key], now),
                )

    def dump(self) -> Dict[str, str]:
        with self._db.connection() as con:
            rows = con.execute("SELECT key, value_json FROM kv ORDER BY key;").fetchall()
            return {str(r["key"]): str(r["value_json"]) for r in rows}


class StagedKV(JsonAccess):
    """Write overlay on a base store.

    Reads see staged writes first, then the base. commit() pushes every
    staged write to the base in one batch; an uncommitted overlay is simply
    dropped.
    """

    def __init__(self, base: KVStore) -> None:
        self._base = base
        self._writes: Dict[str, str] = {}

    @property
    def pending(self) -> int:
        return len(self._writes)

    def get_raw(self, key: str) -> Optional[str]:
        if key in self._writes:
            return self._writes[key]
        return self._base.get_raw(key)

    def set_raw(self, key: str, raw: str) -> None:
        self._writes[key] = raw

    def write_batch(self, items: Mapping[str, str]) -> None:
        self._writes.update(items)

    def dump(self) -> Dict[str, str]:
        out = self._base.dump()
        out.update(self._writes)
        return out

    def commit(self) -> int:
        n = len(self._writes)
        if n:
            self._base.write_batch(dict(self._writes))
        self._writes = {}
        return n

    def discard(self) -> None:
        self._writes = {}
