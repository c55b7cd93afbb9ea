# src/noderewards/api/routes.py
from __future__ import annotations

from fastapi import APIRouter

from noderewards.api.routes_parts.calls import router as calls_router
from noderewards.api.routes_parts.health import router as health_router
from noderewards.api.routes_parts.metrics import router as metrics_router
from noderewards.api.routes_parts.queries import router as queries_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(calls_router, prefix="/v1", tags=["calls"])
public_router.include_router(queries_router, prefix="/v1", tags=["queries"])

# Ops
public_router.include_router(metrics_router, prefix="", tags=["metrics"])
