from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from noderewards.api.routes_parts.common import _executor, _unwrap
from noderewards.api.schemas import CallRequest

router = APIRouter()


@router.post("/calls/{method}")
def post_call(method: str, body: CallRequest, request: Request) -> Dict[str, Any]:
    """Run one state-changing contract call atomically."""
    ex = _executor(request)
    res = ex.invoke(method, (), body.args, sender=body.sender, value=body.value, timestamp=body.timestamp)
    _unwrap(res)
    return res.to_json()


@router.get("/events")
def get_events(request: Request) -> Dict[str, Any]:
    return {"ok": True, "events": _executor(request).events()}
