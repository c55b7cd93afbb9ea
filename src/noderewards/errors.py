# src/noderewards/errors.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    STATE = "state"
    TRANSFER = "transfer"
    EXTERNAL = "external"


@dataclass
class DistributeError(Exception):
    """Canonical error type for every failed distribution call.

    Nothing below the executor catches these. The executor discards the
    call's staged writes and reports the error in a failed CallResult.
    """

    kind: ErrorKind
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.kind.value}:{self.reason}"
        return f"{self.kind.value}:{self.reason}:{self.details}"

    def to_json(self) -> dict:
        return {"kind": self.kind.value, "reason": self.reason, "details": self.details}


class ValidationError(DistributeError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(ErrorKind.VALIDATION, reason, details)


class AccessDenied(DistributeError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(ErrorKind.PERMISSION, reason, details)


class StateError(DistributeError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(ErrorKind.STATE, reason, details)


class TransferError(DistributeError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(ErrorKind.TRANSFER, reason, details)


class RegistryError(DistributeError):
    """The node-registry collaborator failed or returned a malformed payload."""

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(ErrorKind.EXTERNAL, reason, details)


__all__ = [
    "ErrorKind",
    "DistributeError",
    "ValidationError",
    "AccessDenied",
    "StateError",
    "TransferError",
    "RegistryError",
]
