from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    ex = getattr(request.app.state, "executor", None)
    return {
        "ok": True,
        "service": "noderewards",
        "mode": (os.environ.get("NODEREWARDS_MODE") or "prod").strip().lower(),
        "ts_ms": _now_ms(),
        "executor": ex is not None,
        "initialized": bool(ex.initialized()) if ex is not None else False,
    }
