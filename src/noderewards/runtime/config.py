# src/noderewards/runtime/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from noderewards.runtime.host import DEFAULT_ADDRESS_PATTERN

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_float(v: Any, default: float) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return float(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class ServiceConfig:
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file for contract storage.
    db_path: str

    # Account the contract runs as; incoming call value is credited here.
    contract_address: str
    # Deploy-time multi-sig owner of the contract config.
    multi_sig: str

    # Optional file with a static node-registry fixture (dev/testnet only).
    node_registry_path: str
    registry_timeout_s: float

    address_pattern: str

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_service_config(cfg: ServiceConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    for name, v in (("db_path", cfg.db_path), ("contract_address", cfg.contract_address)):
        if not isinstance(v, str) or not v.strip():
            raise ValueError(f"{name} must be a non-empty string")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if float(cfg.registry_timeout_s) <= 0:
        raise ValueError(f"registry_timeout_s must be > 0; got: {cfg.registry_timeout_s}")

    if cfg.node_registry_path and mode == "prod":
        # Static fixtures are a dev convenience; prod must talk to the real registry.
        raise ValueError("node_registry_path is not allowed in prod mode")

    if cfg.node_registry_path and not Path(cfg.node_registry_path).is_file():
        raise ValueError(f"node_registry_path does not exist or is not a file: {cfg.node_registry_path!r}")


def default_service_config() -> ServiceConfig:
    return ServiceConfig(
        mode="prod",
        db_path="./data/noderewards.db",
        contract_address="distribute-contract",
        multi_sig="",
        node_registry_path="",
        registry_timeout_s=10.0,
        address_pattern=DEFAULT_ADDRESS_PATTERN,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def service_config_from_dict(raw: Json) -> ServiceConfig:
    d = default_service_config()
    cfg = ServiceConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        contract_address=_as_str(raw.get("contract_address"), d.contract_address),
        multi_sig=_as_str(raw.get("multi_sig"), d.multi_sig),
        node_registry_path=_as_str(raw.get("node_registry_path"), d.node_registry_path),
        registry_timeout_s=_as_float(raw.get("registry_timeout_s"), d.registry_timeout_s),
        address_pattern=_as_str(raw.get("address_pattern"), d.address_pattern),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )
    validate_service_config(cfg)
    return cfg


def load_service_config(*, config_path: Optional[str] = None) -> ServiceConfig:
    """Config file (argument or NODEREWARDS_CONFIG_PATH), else defaults.

    NODEREWARDS_MODE / NODEREWARDS_DB_PATH / NODEREWARDS_MULTI_SIG override
    whichever source was used.
    """
    p = config_path or os.environ.get("NODEREWARDS_CONFIG_PATH")
    raw: Json = {}
    if p:
        raw = json.loads(Path(p).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("service config must be a JSON object")

    for key, env in (("mode", "NODEREWARDS_MODE"), ("db_path", "NODEREWARDS_DB_PATH"), ("multi_sig", "NODEREWARDS_MULTI_SIG")):
        v = (os.environ.get(env) or "").strip()
        if v:
            raw[key] = v

    return service_config_from_dict(raw)


def apply_service_config_to_env(cfg: ServiceConfig) -> None:
    """Expose mode/log level to modules that read the environment (sqlite pragmas, logging)."""
    validate_service_config(cfg)
    os.environ["NODEREWARDS_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["NODEREWARDS_LOG_LEVEL"] = cfg.log_level
