from __future__ import annotations

import threading

from noderewards.ledger.constants import RAW_UNIT
from noderewards.registry.node_registry import StaticNodeRegistry
from noderewards.runtime import metrics
from noderewards.runtime.executor import DistributeExecutor
from noderewards.storage.kv import MemoryKV

from conftest import CONTRACT, MANAGER, TREASURY


def test_registry_failure_rolls_back_attached_value(registered: DistributeExecutor, node_registry: StaticNodeRegistry, store: MemoryKV) -> None:
    node_registry.advance("n1", period=2, block_count=150)
    node_registry.nodes["n1"]["votes"] = "garbage"
    before = store.dump()

    res = registered.call("distribute", "n1", sender=MANAGER, value=5 * RAW_UNIT)

    assert not res.ok
    assert res.error.reason == "bad_vote_statistic"
    assert res.error.kind.value == "external"
    assert res.events == []
    assert store.dump() == before


def test_transfer_failure_rolls_back_every_write(registered: DistributeExecutor, node_registry: StaticNodeRegistry, store: MemoryKV) -> None:
    assert registered.call("charge", "n1", sender="@payer", value=100 * RAW_UNIT).ok
    node_registry.advance("n1", period=2, block_count=150)
    assert registered.call("distribute", "n1", sender=MANAGER).ok

    # node balance still covers the reward, the contract account no longer does
    assert registered.call("transfer_fund", TREASURY, 100 * RAW_UNIT, sender=TREASURY).ok
    before = store.dump()
    events_before = registered.events()

    res = registered.call("transfer_reward", "n1", 2, sender=MANAGER)

    assert not res.ok
    assert res.error.reason == "transfer_failed"
    assert res.error.kind.value == "transfer"
    assert store.dump() == before
    assert registered.events() == events_before

    income = registered.query("get_node_period_addr_income", "n1", 2, "@alice").result
    assert income["transferred"] is False
    assert registered.query("get_node_balance", "n1").result == str(100 * RAW_UNIT)


def test_committed_events_are_logged_in_order(registered: DistributeExecutor) -> None:
    registered.call("accept", sender="@a", value=1)
    registered.call("charge", "n1", sender="@b", value=2)
    names = [e["name"] for e in registered.events()]
    assert names == ["transfer", "charge"]


def test_queries_never_commit(registered: DistributeExecutor, store: MemoryKV) -> None:
    before = store.dump()
    assert registered.query("get_nodes").ok
    assert store.dump() == before


def test_unknown_method_and_bad_arguments(registered: DistributeExecutor) -> None:
    res = registered.call("init", "@x", sender="@x")
    assert res.error.reason == "unknown_method"
    res = registered.query("distribute", "n1")
    assert res.error.reason == "unknown_method"
    res = registered.call("charge", sender="@x")
    assert res.error.reason == "bad_arguments"
    res = registered.call("charge", "n1", sender="@x", value=-1)
    assert res.error.reason == "negative_call_value"


def test_non_numeric_period_is_a_failed_result(registered: DistributeExecutor, store: MemoryKV) -> None:
    before = store.dump()

    res = registered.call("transfer_reward", "n1", "abc", sender=MANAGER, value=3 * RAW_UNIT)
    assert not res.ok
    assert res.error.reason == "not_an_int"
    assert res.error.details == {"field": "period", "value": "abc"}
    assert store.dump() == before

    for method, args in (
        ("get_node_votes", ("n1", "abc")),
        ("get_node_incomes", ("n1", None)),
        ("get_node_period_addr_income", ("n1", True, "@alice")),
    ):
        res = registered.query(method, *args)
        assert not res.ok, method
        assert res.error.reason == "not_an_int"

    assert registered.query("get_node_votes", "n1", "1").ok


def test_invoke_passes_value_named_argument(registered: DistributeExecutor) -> None:
    assert registered.call("charge", "n1", sender="@payer", value=10).ok
    res = registered.invoke("withdraw", (), {"node_id": "n1", "address": "@out", "value": 4}, sender=MANAGER)
    assert res.ok, res.error
    assert registered.query("get_node_balance", "n1").result == "6"


def test_metrics_count_commits_and_rollbacks(registered: DistributeExecutor) -> None:
    metrics.reset()
    registered.call("accept", sender="@a", value=1)
    registered.call("withdraw", "n1", "@out", 1, sender="@nobody")

    snap = metrics.snapshot()
    assert snap["counters"]["calls_committed"] == 1
    assert snap["counters"]["calls_rolled_back"] == 1
    assert snap["counters"]["events_emitted"] == 1


def test_concurrent_charges_are_serialized() -> None:
    reg = StaticNodeRegistry(current_period=1)
    reg.put_node("n1", registrant="@reg", block_count=1)
    ex = DistributeExecutor(store=MemoryKV(), contract_address=CONTRACT, resolve_node_registry=lambda _p: reg)
    assert ex.deploy("@msig").ok
    assert ex.call("set_config", {"multi_sig": "@msig", "node_proxy": "static"}, sender="@msig").ok
    assert ex.call("register", "n1", [MANAGER], {"start": 1, "rate": "1"}, sender="@reg").ok

    def _charge() -> None:
        for _ in range(20):
            assert ex.call("charge", "n1", sender="@payer", value=1).ok

    threads = [threading.Thread(target=_charge) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert ex.query("get_node_balance", "n1").result == "80"
    assert len(ex.query("get_node_charge", "n1").result) == 80
