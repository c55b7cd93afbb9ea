# src/noderewards/runtime/metrics.py
"""Process-local counters and gauges for the executor.

Counters written by the executor: calls_committed, calls_rolled_back,
calls_rejected, events_emitted. Gauge: last_call_writes.
"""
from __future__ import annotations

import os
import threading
import time
from typing import Dict

_TRUTHY = {"1", "true", "yes", "y", "on"}

_lock = threading.Lock()
_values: Dict[str, Dict[str, int]] = {"counter": {}, "gauge": {}}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    return (os.environ.get("NODEREWARDS_METRICS_ENABLED") or "").strip().lower() in _TRUTHY


def _put(kind: str, name: str, value: int, *, add: bool) -> None:
    key = (name or "").strip()
    if not key:
        return
    with _lock:
        table = _values[kind]
        table[key] = table.get(key, 0) + int(value) if add else int(value)


def inc_counter(name: str, value: int = 1) -> None:
    _put("counter", name, value, add=True)


def set_gauge(name: str, value: int) -> None:
    _put("gauge", name, value, add=False)


def snapshot() -> dict:
    now = int(time.time() * 1000)
    with _lock:
        return {
            "ts_ms": now,
            "started_ms": _started_ms,
            "uptime_ms": now - _started_ms,
            "counters": dict(_values["counter"]),
            "gauges": dict(_values["gauge"]),
        }


def reset() -> None:
    with _lock:
        for table in _values.values():
            table.clear()


def format_prometheus(prefix: str = "noderewards_") -> str:
    snap = snapshot()
    pre = (prefix or "").strip() or "noderewards_"
    rows = [("uptime_ms", snap["uptime_ms"])]
    rows += sorted(snap["counters"].items())
    rows += sorted(snap["gauges"].items())
    return "".join(f"{pre}{name} {int(v)}\n" for name, v in rows)
