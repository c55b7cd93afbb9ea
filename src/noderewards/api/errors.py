from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from noderewards.errors import DistributeError, ErrorKind

# HTTP status per contract error kind.
_KIND_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PERMISSION: 403,
    ErrorKind.STATE: 409,
    ErrorKind.TRANSFER: 502,
    ErrorKind.EXTERNAL: 502,
}


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_contract(err: DistributeError) -> "ApiError":
        if err.reason == "unknown_method":
            status = 404
        else:
            status = _KIND_STATUS.get(err.kind, 500)
        if isinstance(err.details, dict):
            details = dict(err.details)
        else:
            details = {} if err.details is None else {"value": err.details}
        return ApiError(status, err.reason, str(err), {"kind": err.kind.value, **details})


def _error_body(err: ApiError) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": err.code, "message": err.message, "details": err.details}}


async def _api_error_handler(_request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)  # type: ignore[arg-type]
