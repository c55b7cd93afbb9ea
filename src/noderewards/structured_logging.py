# src/noderewards/structured_logging.py
"""JSON-lines logging on top of the stdlib `logging` module.

Every structured record is a single JSON object with at least `ts_ms` and
`event`. Loggers are named per layer: noderewards.executor,
noderewards.ledger, noderewards.http.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

_CONFIGURED_ATTR = "_noderewards_jsonl"


def configure_structured_logging() -> None:
    """Send root logging to stderr as bare messages, level from NODEREWARDS_LOG_LEVEL.

    Re-running only re-applies the level.
    """
    level = logging.getLevelName((os.environ.get("NODEREWARDS_LOG_LEVEL") or "INFO").strip().upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, _CONFIGURED_ATTR, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, _CONFIGURED_ATTR, True)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    record = dict(fields, ts_ms=int(time.time() * 1000), event=event)
    try:
        line = json.dumps(record, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        line = json.dumps({k: repr(v) for k, v in record.items()}, sort_keys=True)
    logger.info(line)
