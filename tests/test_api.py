from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from noderewards.registry.node_registry import StaticNodeRegistry
from noderewards.runtime import metrics
from noderewards.runtime.executor import DistributeExecutor

from conftest import MANAGER, PLAN, REGISTRANT, units


def _pin_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # create_app exports mode/log level; pin them so monkeypatch restores them
    monkeypatch.delenv("NODEREWARDS_CONFIG_PATH", raising=False)
    monkeypatch.setenv("NODEREWARDS_MODE", "dev")
    monkeypatch.setenv("NODEREWARDS_LOG_LEVEL", "INFO")


def _client(executor: DistributeExecutor) -> TestClient:
    from noderewards.api.app import create_app

    return TestClient(create_app(boot_runtime=False, executor=executor))


def test_create_app_boot_runtime_false_does_not_attach_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from noderewards.api.app import create_app

    _pin_env(monkeypatch)
    app = create_app(boot_runtime=False)
    assert app.state.executor is None

    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["executor"] is False

        r = client.get("/v1/nodes")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_create_app_boot_runtime_true_uses_build_executor(monkeypatch: pytest.MonkeyPatch, executor: DistributeExecutor) -> None:
    from noderewards.api import app as api_app

    _pin_env(monkeypatch)
    monkeypatch.setattr(api_app, "build_executor", lambda _cfg: executor)
    app = api_app.create_app(boot_runtime=True)
    assert app.state.executor is executor


def test_register_distribute_and_query_over_http(executor: DistributeExecutor, node_registry: StaticNodeRegistry) -> None:
    client = _client(executor)

    r = client.post(
        "/v1/calls/register",
        json={"sender": REGISTRANT, "args": {"node_id": "n1", "managers": [MANAGER], "plan": PLAN}, "timestamp": 1000},
    )
    assert r.status_code == 200, r.text
    assert r.json()["ok"] is True
    assert r.headers.get("x-request-id")

    r = client.post("/v1/calls/charge", json={"sender": "@payer", "value": 10**20, "args": {"node_id": "n1"}})
    assert r.status_code == 200
    assert r.json()["events"][0]["name"] == "charge"

    node_registry.advance(
        "n1",
        period=2,
        block_count=150,
        votes=[{"address": "@alice", "value": units(500)}, {"address": "@bob", "value": units(2000)}],
    )
    r = client.post("/v1/calls/distribute", json={"sender": MANAGER, "args": {"node_id": "n1"}})
    assert r.status_code == 200
    assert r.json()["result"] == 1

    assert client.get("/v1/nodes").json()["result"] == ["n1"]
    assert client.get("/v1/nodes/n1/periods").json()["result"] == [1, 2]
    assert client.get("/v1/nodes/n1/periods/2/votes").json()["result"]["block_count"] == 150
    incomes = client.get("/v1/nodes/n1/periods/2/incomes").json()["result"]
    assert [(i["address"], i["value"]) for i in incomes] == [("@alice", "29.72")]
    assert client.get("/v1/nodes/n1/periods/2/incomes/@alice").json()["result"]["value"] == "29.72"
    assert client.get("/v1/nodes/n1/to-reward").json()["result"]["total"] == "29.72"
    assert client.get("/v1/nodes/n1/balance").json()["result"] == str(10**20)
    assert len(client.get("/v1/nodes/n1/charges").json()["result"]) == 1
    assert client.get("/v1/nodes/n1/prospective", params={"value": units(500)}).json()["result"]["value"] == "4.95467"

    r = client.post("/v1/calls/transfer_reward", json={"sender": MANAGER, "args": {"node_id": "n1", "period": 2}})
    assert r.status_code == 200

    mine = client.get("/v1/nodes/n1/addresses/@alice/incomes").json()["result"]
    assert mine[0]["transferred"] is True
    assert client.get("/v1/addresses/@alice/incomes").json()["result"][0]["node_id"] == "n1"
    assert [e["name"] for e in client.get("/v1/events").json()["events"]][-1] == "transferAddressReward"


def test_contract_errors_map_to_http_status(registered: DistributeExecutor) -> None:
    client = _client(registered)

    r = client.post("/v1/calls/distribute", json={"sender": "@mallory", "args": {"node_id": "n1"}})
    assert r.status_code == 403
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "not_node_manager"
    assert body["error"]["details"]["kind"] == "permission"

    r = client.post("/v1/calls/distribute", json={"sender": MANAGER, "args": {"node_id": "n1"}})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "must_track_first"

    r = client.post("/v1/calls/register", json={"sender": REGISTRANT, "args": {"node_id": "n2", "managers": []}})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "bad_arguments"

    r = client.post("/v1/calls/withdraw", json={"sender": MANAGER, "args": {"node_id": "n1", "address": "@out", "value": 1}})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "insufficient_withdraw_balance"

    r = client.post("/v1/calls/transfer_fund", json={"sender": "@treasury", "args": {"to": "@out", "amount": 5}})
    assert r.status_code == 502
    assert r.json()["error"]["code"] == "transfer_failed"

    r = client.post("/v1/calls/register", json={"sender": REGISTRANT, "args": {"node_id": "ghost", "managers": [MANAGER], "plan": PLAN}})
    assert r.status_code == 502
    assert r.json()["error"]["details"]["kind"] == "external"

    r = client.post("/v1/calls/nope", json={"sender": MANAGER})
    assert r.status_code == 404

    r = client.get("/v1/nodes/zz/balance")
    assert r.status_code == 409


def test_call_body_is_validated(registered: DistributeExecutor) -> None:
    client = _client(registered)
    assert client.post("/v1/calls/charge", json={"args": {"node_id": "n1"}}).status_code == 422
    assert client.post("/v1/calls/charge", json={"sender": "@a", "value": -1}).status_code == 422
    assert client.post("/v1/calls/charge", json={"sender": "@a", "unexpected": 1}).status_code == 422


def test_metrics_endpoint_gated(monkeypatch: pytest.MonkeyPatch, registered: DistributeExecutor) -> None:
    client = _client(registered)

    monkeypatch.delenv("NODEREWARDS_METRICS_ENABLED", raising=False)
    assert client.get("/metrics").status_code == 404

    monkeypatch.setenv("NODEREWARDS_METRICS_ENABLED", "1")
    metrics.reset()
    client.post("/v1/calls/accept", json={"sender": "@donor", "value": 1})
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "noderewards_calls_committed 1" in r.text
    assert "noderewards_events_emitted 1" in r.text


def test_metrics_json_snapshot_and_headers(monkeypatch: pytest.MonkeyPatch, registered: DistributeExecutor) -> None:
    client = _client(registered)

    monkeypatch.delenv("NODEREWARDS_METRICS_ENABLED", raising=False)
    off = client.get("/metrics")
    assert off.status_code == 404
    assert off.text == "metrics disabled\n"

    monkeypatch.setenv("NODEREWARDS_METRICS_ENABLED", "1")
    metrics.reset()
    client.post("/v1/calls/accept", json={"sender": "@donor", "value": 1})
    client.post("/v1/calls/nope", json={"sender": "@donor"})

    text = client.get("/metrics")
    assert text.headers["content-type"].startswith("text/plain; version=0.0.4")
    assert text.headers["cache-control"] == "no-store"
    assert "noderewards_calls_rejected 1" in text.text
    assert "noderewards_uptime_ms " in text.text

    body = client.get("/metrics", params={"format": "json"}).json()
    assert body["counters"]["calls_committed"] == 1
    assert body["counters"]["calls_rejected"] == 1
    assert body["gauges"]["last_call_writes"] > 0

    assert client.get("/metrics", params={"format": "xml"}).status_code == 422


def test_non_numeric_period_in_call_body_is_a_400(registered: DistributeExecutor) -> None:
    client = _client(registered)

    r = client.post("/v1/calls/transfer_reward", json={"sender": MANAGER, "args": {"node_id": "n1", "period": "abc"}})
    assert r.status_code == 400
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "not_an_int"
    assert body["error"]["details"]["field"] == "period"
    assert body["error"]["details"]["kind"] == "validation"
