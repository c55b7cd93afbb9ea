from __future__ import annotations

from fastapi import APIRouter, Query, Response
from fastapi.responses import JSONResponse

from noderewards.runtime.metrics import format_prometheus, metrics_enabled, snapshot

router = APIRouter()

_EXPOSITION = "text/plain; version=0.0.4; charset=utf-8"
_NO_STORE = {"Cache-Control": "no-store"}


@router.get("/metrics")
def metrics(fmt: str = Query("text", alias="format", pattern="^(text|json)$")) -> Response:
    """Executor counters, off unless NODEREWARDS_METRICS_ENABLED is truthy.

    Text exposition lines (prefix noderewards_):
      calls_committed / calls_rolled_back / calls_rejected  call outcomes
      events_emitted                                        contract events committed
      last_call_writes                                      keys written by the last commit
      uptime_ms                                             since process start

    `?format=json` returns the raw snapshot instead.
    """
    if not metrics_enabled():
        return Response(status_code=404, content="metrics disabled\n", media_type="text/plain", headers=_NO_STORE)
    if fmt == "json":
        return JSONResponse(snapshot(), headers=_NO_STORE)
    return Response(content=format_prometheus(), media_type=_EXPOSITION, headers=_NO_STORE)
