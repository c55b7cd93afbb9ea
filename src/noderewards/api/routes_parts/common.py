from __future__ import annotations

from typing import Any

from fastapi import Request

from noderewards.api.errors import ApiError
from noderewards.runtime.executor import CallResult, DistributeExecutor


def _executor(request: Request) -> DistributeExecutor:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _unwrap(res: CallResult) -> Any:
    """Query result, or the contract error as an ApiError."""
    if not res.ok:
        assert res.error is not None
        raise ApiError.from_contract(res.error)
    return res.result
