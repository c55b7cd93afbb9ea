from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from noderewards.api.errors import install_error_handlers
from noderewards.api.routes import public_router
from noderewards.api.structured_logging import RequestLogMiddleware
from noderewards.runtime.config import ServiceConfig, apply_service_config_to_env, load_service_config
from noderewards.runtime.executor import DistributeExecutor
from noderewards.structured_logging import configure_structured_logging


def build_executor(cfg: ServiceConfig) -> DistributeExecutor:
    """Build the executor for API runtime.

    Kept as a module-level function so tests can monkeypatch
    `noderewards.api.app.build_executor`.
    """
    return DistributeExecutor.from_config(cfg)


def create_app(
    *,
    boot_runtime: bool = True,
    cfg: Optional[ServiceConfig] = None,
    executor: Optional[DistributeExecutor] = None,
) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load service config and attach an executor
      - False: no executor unless one is passed in (unit tests)
    """
    if cfg is None and (boot_runtime or executor is None):
        cfg = load_service_config()
    if cfg is not None:
        apply_service_config_to_env(cfg)
    configure_structured_logging()

    mode = cfg.mode if cfg is not None else "prod"

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Node Rewards API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Node Rewards API")

    app.state.cfg = cfg
    if executor is not None:
        app.state.executor = executor
    elif boot_runtime and cfg is not None:
        app.state.executor = build_executor(cfg)
    else:
        app.state.executor = None

    app.add_middleware(RequestLogMiddleware)
    install_error_handlers(app)
    app.include_router(public_router)

    return app
