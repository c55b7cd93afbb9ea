# src/noderewards/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from noderewards.structured_logging import log_event

REQUEST_ID_HEADER = "x-request-id"


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs an `http_request` event per request and echoes the request id.

    Set NODEREWARDS_LOG_REQUESTS=0 to turn it off.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        flag = (os.environ.get("NODEREWARDS_LOG_REQUESTS") or "1").strip().lower()
        self.enabled = flag not in {"0", "false", "no", "off"}
        self.logger = logging.getLogger("noderewards.http")

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        t0 = time.monotonic()
        fields = {"request_id": request_id, "method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception as e:
            log_event(self.logger, "http_request", status=500, error=str(e), duration_ms=_elapsed_ms(t0), **fields)
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        log_event(self.logger, "http_request", status=response.status_code, duration_ms=_elapsed_ms(t0), **fields)
        return response


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
