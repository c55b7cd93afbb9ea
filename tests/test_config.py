from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from noderewards import env as env_mod
from noderewards.runtime.config import (
    apply_service_config_to_env,
    default_service_config,
    load_service_config,
    service_config_from_dict,
)
from noderewards.runtime.executor import DistributeExecutor


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in ("NODEREWARDS_CONFIG_PATH", "NODEREWARDS_MODE", "NODEREWARDS_DB_PATH", "NODEREWARDS_MULTI_SIG"):
        monkeypatch.delenv(k, raising=False)


def test_defaults_when_nothing_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    cfg = load_service_config()
    assert cfg == default_service_config()
    assert cfg.mode == "prod"


def test_file_then_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    p = tmp_path / "service.json"
    p.write_text(json.dumps({"mode": "testnet", "db_path": "a.db", "api_port": "9000"}), encoding="utf-8")
    monkeypatch.setenv("NODEREWARDS_CONFIG_PATH", str(p))
    monkeypatch.setenv("NODEREWARDS_DB_PATH", str(tmp_path / "b.db"))

    cfg = load_service_config()
    assert cfg.mode == "testnet"
    assert cfg.api_port == 9000
    assert cfg.db_path == str(tmp_path / "b.db")


@pytest.mark.parametrize(
    "raw",
    [
        {"mode": "staging"},
        {"api_port": 70000},
        {"registry_timeout_s": 0},
        {"mode": "dev", "node_registry_path": "/does/not/exist.json"},
    ],
)
def test_invalid_config_fails_fast(raw) -> None:
    with pytest.raises(ValueError):
        service_config_from_dict(raw)


def test_static_registry_not_allowed_in_prod(tmp_path: Path) -> None:
    p = tmp_path / "registry.json"
    p.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError):
        service_config_from_dict({"mode": "prod", "node_registry_path": str(p)})


def test_non_object_config_file_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    p = tmp_path / "service.json"
    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_service_config(config_path=str(p))


def test_apply_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NODEREWARDS_MODE", "prod")
    monkeypatch.setenv("NODEREWARDS_LOG_LEVEL", "INFO")
    cfg = service_config_from_dict({"mode": "dev", "log_level": "DEBUG"})
    apply_service_config_to_env(cfg)
    assert os.environ["NODEREWARDS_MODE"] == "dev"
    assert os.environ["NODEREWARDS_LOG_LEVEL"] == "DEBUG"


def test_executor_from_config_deploys_and_persists(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NODEREWARDS_MODE", "dev")
    reg = tmp_path / "registry.json"
    reg.write_text(
        json.dumps({"currentPeriod": 1, "nodes": {"n1": {"accounts": {"registrant": "@reg"}, "blockCount": 5, "votes": []}}}),
        encoding="utf-8",
    )
    cfg = service_config_from_dict(
        {"mode": "dev", "db_path": str(tmp_path / "db" / "rewards.db"), "multi_sig": "@msig", "node_registry_path": str(reg)}
    )

    ex = DistributeExecutor.from_config(cfg)
    assert ex.query("get_config").result["multi_sig"] == "@msig"
    assert ex.call("set_config", {"multi_sig": "@msig", "node_proxy": "file"}, sender="@msig").ok
    assert ex.call("register", "n1", ["@mgr"], {"start": 1, "rate": "1"}, sender="@reg").ok

    # a second process on the same DB sees the committed state and does not redeploy
    again = DistributeExecutor.from_config(cfg)
    assert again.query("get_nodes").result == ["n1"]
    assert again.query("get_node_periods", "n1").result == [1]


def test_dotenv_loads_once_without_overriding(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    p = tmp_path / ".env"
    p.write_text("NODEREWARDS_TEST_A=from_file\nNODEREWARDS_TEST_B=from_file\n", encoding="utf-8")
    monkeypatch.setenv("NODEREWARDS_TEST_B", "from_env")
    monkeypatch.delenv("NODEREWARDS_TEST_A", raising=False)
    monkeypatch.setattr(env_mod, "_LOADED", False)

    assert env_mod.load_dotenv_if_present(str(p)) is True
    assert os.environ["NODEREWARDS_TEST_A"] == "from_file"
    assert os.environ["NODEREWARDS_TEST_B"] == "from_env"
    assert env_mod.load_dotenv_if_present(str(p)) is False

    os.environ.pop("NODEREWARDS_TEST_A", None)
