# src/noderewards/ledger/registry.py
from __future__ import annotations

"""
DistributionRegistry: the contract surface.

Owns the set of registered nodes and the contract configuration, routes
per-node operations to a RewardLedger, and is the only component that talks
to the node-registry collaborator.

A registry instance lives for exactly one call. RewardLedger handles are
built from persisted Node data on first use inside that call and dropped with
the registry, so nothing survives between calls except storage.
"""

from typing import Any, Callable, Dict, List, Optional

from noderewards.errors import AccessDenied, StateError, TransferError, ValidationError
from noderewards.ledger.amounts import to_period, to_raw
from noderewards.ledger.reward_ledger import RewardLedger
from noderewards.ledger.types import ContractConfig, Node, Plan
from noderewards.registry.node_registry import NodeDetail, NodeRegistryClient
from noderewards.runtime.host import Host
from noderewards.storage.kv import JsonAccess
from noderewards.storage.ordered_store import OrderedStore

Json = Dict[str, Any]
RegistryResolver = Callable[[str], NodeRegistryClient]

# State-changing operations reachable through DistributeExecutor.call().
PUBLIC_CALLS = frozenset(
    {
        "set_config",
        "register",
        "update",
        "track",
        "distribute",
        "charge",
        "withdraw",
        "transfer_reward",
        "accept",
        "transfer_fund",
    }
)

# Read-only operations reachable through DistributeExecutor.query().
PUBLIC_QUERIES = frozenset(
    {
        "get_config",
        "get_nodes",
        "get_node_conf",
        "get_node_periods",
        "get_node_votes",
        "get_node_incomes",
        "get_node_period_addr_income",
        "get_node_addr_income",
        "get_address_income",
        "get_node_balance",
        "get_node_charge",
        "get_node_to_reward",
        "prospective_income",
    }
)

CONFIG_KEY = "contract:config"


class DistributionRegistry:
    def __init__(self, storage: JsonAccess, host: Host, *, resolve_node_registry: RegistryResolver) -> None:
        self.storage = storage
        self.host = host
        self._nodes = OrderedStore(storage, "nodes")
        self._resolve_node_registry = resolve_node_registry
        self._node_registry: Optional[NodeRegistryClient] = None
        self._ledgers: Dict[str, RewardLedger] = {}

    # ----------------------------
    # Contract config
    # ----------------------------

    @property
    def config(self) -> ContractConfig:
        raw = self.storage.get(CONFIG_KEY)
        if raw is None:
            raise StateError("contract_not_initialized")
        return ContractConfig.from_json(raw)

    def init(self, multi_sig: str) -> None:
        if self.storage.get(CONFIG_KEY) is not None:
            raise StateError("contract_already_initialized")
        self._verify_address(multi_sig)
        self.storage.set(CONFIG_KEY, ContractConfig(multi_sig=multi_sig).to_json())

    def set_config(self, config: Json) -> None:
        self._verify_from_multi_sig()
        cfg = ContractConfig.from_json(config)
        for addr in (cfg.multi_sig, *cfg.asset_managers, *cfg.data_managers):
            self._verify_address(addr)
        self.storage.set(CONFIG_KEY, cfg.to_json())

    def get_config(self) -> Json:
        return self.config.to_json()

    def _verify_from_multi_sig(self) -> None:
        if self.host.tx.sender != self.config.multi_sig:
            raise AccessDenied("not_multi_sig", {"sender": self.host.tx.sender})

    def _verify_from_asset_manager(self) -> None:
        if self.host.tx.sender not in self.config.asset_managers:
            raise AccessDenied("not_asset_manager", {"sender": self.host.tx.sender})

    def _verify_address(self, address: Any) -> None:
        if not self.host.validate_address(address):
            raise ValidationError("invalid_address", {"address": address})

    def _verify_addresses(self, addresses: Any) -> List[str]:
        if not isinstance(addresses, (list, tuple)) or len(addresses) == 0:
            raise ValidationError("manager_list_required")
        for a in addresses:
            self._verify_address(a)
        return [str(a) for a in addresses]

    # ----------------------------
    # Collaborators
    # ----------------------------

    @property
    def node_registry(self) -> NodeRegistryClient:
        if self._node_registry is None:
            proxy = self.config.node_proxy
            if not proxy:
                raise StateError("node_proxy_not_configured")
            self._node_registry = self._resolve_node_registry(proxy)
        return self._node_registry

    def _ledger(self, node_id: str) -> RewardLedger:
        node_id = str(node_id)
        ledger = self._ledgers.get(node_id)
        if ledger is None:
            raw = self._nodes.get(node_id)
            if raw is None:
                raise StateError("node_not_registered", {"node_id": node_id})
            ledger = RewardLedger(self.storage, Node.from_json(node_id, raw), self.host)
            self._ledgers[node_id] = ledger
        return ledger

    # ----------------------------
    # Node lifecycle
    # ----------------------------

    def register(self, node_id: str, managers: List[str], plan: Json) -> None:
        managers = self._verify_addresses(managers)
        parsed = Plan.from_json(plan)

        node_id = str(node_id)
        if node_id in self._nodes:
            raise StateError("node_already_registered", {"node_id": node_id})

        detail = self.node_registry.get_node_detail(node_id)
        if detail.registrant != self.host.tx.sender:
            raise AccessDenied("not_node_registrant", {"node_id": node_id, "sender": self.host.tx.sender})

        self._nodes.set(node_id, Node(node_id=node_id, managers=tuple(managers), plan=parsed).to_json())
        self._track(node_id, detail)

    def update(self, node_id: str, managers: List[str], plan: Json) -> None:
        managers = self._verify_addresses(managers)
        parsed = Plan.from_json(plan)

        node_id = str(node_id)
        self._ledger(node_id).check_manager()

        self._nodes.set(node_id, Node(node_id=node_id, managers=tuple(managers), plan=parsed).to_json())
        self._ledgers.pop(node_id, None)

    # ----------------------------
    # Routed operations
    # ----------------------------

    def track(self, node_id: str) -> bool:
        detail = self.node_registry.get_node_detail(str(node_id))
        return self._track(str(node_id), detail)

    def _track(self, node_id: str, detail: NodeDetail) -> bool:
        period = self.node_registry.get_current_period()
        votes = self.node_registry.get_node_vote_statistic(node_id)
        return self._ledger(node_id).track(period, detail.block_count, votes)

    def distribute(self, node_id: str) -> int:
        self.track(node_id)
        return self._ledger(node_id).distribute()

    def _charge_incoming(self, ledger: RewardLedger) -> None:
        if int(self.host.tx.value) > 0:
            ledger.charge(self.host.tx.sender, self.host.tx.value)

    def charge(self, node_id: str) -> None:
        self._charge_incoming(self._ledger(node_id))

    def withdraw(self, node_id: str, address: str, value: Any) -> None:
        self._verify_address(address)
        self._ledger(node_id).withdraw(address, value)

    def transfer_reward(self, node_id: str, period: int) -> None:
        ledger = self._ledger(node_id)
        self._charge_incoming(ledger)
        ledger.transfer_reward(to_period(period))

    # ----------------------------
    # Contract funds
    # ----------------------------

    def accept(self) -> None:
        self.host.emit_event(
            "transfer",
            {"from": self.host.tx.sender, "to": self.host.tx.recipient, "value": str(int(self.host.tx.value))},
        )

    def transfer_fund(self, to: Optional[str], amount: Any) -> None:
        to = to or self.host.tx.sender
        self._verify_from_asset_manager()
        self._verify_address(to)
        raw = to_raw(amount, field="amount")
        if not self.host.transfer(to, raw):
            raise TransferError("transfer_failed", {"to": to, "amount": str(raw)})
        self.host.emit_event("transferFund", {"from": self.host.tx.recipient, "to": to, "value": str(raw)})

    # ----------------------------
    # Queries
    # ----------------------------

    def get_nodes(self) -> List[str]:
        return [str(n) for n in self._nodes.keys()]

    def get_node_conf(self, node_id: str) -> Optional[Json]:
        return self._nodes.get(str(node_id))

    def get_node_periods(self, node_id: str) -> List[int]:
        return self._ledger(node_id).get_periods()

    def get_node_votes(self, node_id: str, period: int) -> Optional[Json]:
        return self._ledger(node_id).get_votes(to_period(period))

    def get_node_incomes(self, node_id: str, period: int) -> List[Json]:
        return self._ledger(node_id).get_incomes(to_period(period))

    def get_node_period_addr_income(self, node_id: str, period: int, address: str) -> Optional[Json]:
        return self._ledger(node_id).get_address_income(to_period(period), address)

    def get_node_addr_income(self, node_id: str, address: str) -> List[Json]:
        ledger = self._ledger(node_id)
        out: List[Json] = []
        for period in ledger.get_periods():
            income = ledger.get_address_income(period, address)
            if income is not None:
                income["period"] = period
                out.append(income)
        return out

    def get_address_income(self, address: str) -> List[Json]:
        out: List[Json] = []
        for node_id in self.get_nodes():
            incomes = self.get_node_addr_income(node_id, address)
            if incomes:
                out.append({"node_id": node_id, "incomes": incomes})
        return out

    def get_node_balance(self, node_id: str) -> str:
        return self._ledger(node_id).get_balance()

    def get_node_charge(self, node_id: str) -> List[Json]:
        return self._ledger(node_id).get_charge_history()

    def get_node_to_reward(self, node_id: str) -> Json:
        return self._ledger(node_id).get_to_reward()

    def prospective_income(self, node_id: str, value: Any) -> Json:
        return self._ledger(node_id).prospective_income(value)
