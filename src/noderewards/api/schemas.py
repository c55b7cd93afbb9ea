from __future__ import annotations

"""Pydantic request schemas for the HTTP API.

Contract arguments are passed through untouched; the contract validates them.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CallRequest(BaseModel):
    sender: str = Field(..., description="Account calling the contract")
    value: int = Field(default=0, ge=0, description="Raw units attached to the call")
    timestamp: Optional[int] = Field(default=None, description="Block timestamp (seconds); defaults to now")
    args: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the contract method")

    model_config = {"extra": "forbid"}
