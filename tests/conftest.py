from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "noderewards" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from noderewards.ledger.constants import STAKE_UNIT  # noqa: E402
from noderewards.registry.node_registry import StaticNodeRegistry  # noqa: E402
from noderewards.runtime import metrics  # noqa: E402
from noderewards.runtime.executor import DistributeExecutor  # noqa: E402
from noderewards.storage.kv import MemoryKV  # noqa: E402

MULTI_SIG = "@msig"
CONTRACT = "@contract"
REGISTRANT = "@registrant"
MANAGER = "@manager"
TREASURY = "@treasury"

PLAN = {"start": 1, "rate": "0.5", "options": {"1000": "1", "100000": "1.1"}}


def units(n: int) -> str:
    """Vote value of `n` stake units, in raw units."""
    return str(int(n) * STAKE_UNIT)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture()
def node_registry() -> StaticNodeRegistry:
    reg = StaticNodeRegistry(current_period=1)
    reg.put_node("n1", registrant=REGISTRANT, block_count=100, votes=[{"address": "@alice", "value": units(500)}])
    return reg


@pytest.fixture()
def store() -> MemoryKV:
    return MemoryKV()


@pytest.fixture()
def executor(store: MemoryKV, node_registry: StaticNodeRegistry) -> DistributeExecutor:
    """Deployed contract with node proxy and an asset manager configured."""
    ex = DistributeExecutor(
        store=store,
        contract_address=CONTRACT,
        resolve_node_registry=lambda _proxy: node_registry,
    )
    assert ex.deploy(MULTI_SIG, timestamp=1000).ok
    res = ex.call(
        "set_config",
        {"multi_sig": MULTI_SIG, "asset_managers": [TREASURY], "data_managers": [], "node_proxy": "static://registry"},
        sender=MULTI_SIG,
        timestamp=1000,
    )
    assert res.ok, res.error
    return ex


@pytest.fixture()
def registered(executor: DistributeExecutor) -> DistributeExecutor:
    """Executor with node n1 registered (period 1 tracked)."""
    res = executor.call("register", "n1", [MANAGER], PLAN, sender=REGISTRANT, timestamp=1000)
    assert res.ok, res.error
    return executor
