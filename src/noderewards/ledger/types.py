# src/noderewards/ledger/types.py
"""noderewards.ledger.types

Typed records for everything the ledger persists.

Each type validates on construction and round-trips through plain JSON
(`from_json` / `to_json`). Amounts are carried as Decimal/int in memory and
as plain decimal strings on disk so the stored bytes never depend on float
formatting.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from noderewards.errors import ValidationError
from noderewards.ledger.amounts import fmt, to_decimal, to_raw

Json = Dict[str, Any]


def _as_dict(v: Any, *, field: str) -> Json:
    if not isinstance(v, Mapping):
        raise ValidationError("not_an_object", {"field": field})
    return dict(v)


def _as_int(v: Any, *, field: str) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool) or v is None:
        raise ValidationError("not_an_int", {"field": field, "value": v})
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ValidationError("not_an_int", {"field": field, "value": str(v)}) from e


def _as_address(v: Any, *, field: str) -> str:
    s = v.strip() if isinstance(v, str) else ""
    if not s:
        raise ValidationError("missing_address", {"field": field})
    return s


@dataclass(frozen=True)
class Plan:
    """Distribution plan of one node.

    start:   first period that may be tracked
    rate:    share of the block reward handed to voters, in (0, 1]
    options: stake threshold (stake units) -> multiplier, ascending
    """

    start: int
    rate: Decimal
    options: Tuple[Tuple[Decimal, Decimal], ...] = ()

    def __post_init__(self) -> None:
        if not (Decimal(0) < self.rate <= Decimal(1)):
            raise ValidationError("rate_out_of_range", {"rate": fmt(self.rate)})
        for threshold, mult in self.options:
            if threshold <= 0:
                raise ValidationError("bad_threshold", {"threshold": fmt(threshold)})
            if mult <= 0:
                raise ValidationError("bad_multiplier", {"threshold": fmt(threshold), "multiplier": fmt(mult)})

    @staticmethod
    def from_json(j: Any) -> "Plan":
        if isinstance(j, Plan):
            return j
        d = _as_dict(j, field="plan")
        if d.get("start") is None:
            raise ValidationError("plan_start_required")
        if d.get("rate") is None:
            raise ValidationError("plan_rate_required")

        raw_opts = d.get("options") or {}
        opts = _as_dict(raw_opts, field="plan.options")
        parsed = []
        for k, v in opts.items():
            parsed.append((to_decimal(k, field="plan.options.threshold"), to_decimal(v, field="plan.options.multiplier")))
        parsed.sort(key=lambda kv: kv[0])

        return Plan(
            start=_as_int(d.get("start"), field="plan.start"),
            rate=to_decimal(d.get("rate"), field="plan.rate"),
            options=tuple(parsed),
        )

    def to_json(self) -> Json:
        return {
            "start": int(self.start),
            "rate": fmt(self.rate),
            "options": {fmt(t): fmt(m) for t, m in self.options},
        }

    def multiplier(self, stake: Decimal) -> Decimal:
        """Multiplier of the largest threshold <= stake, else 1."""
        weight = Decimal(1)
        for threshold, mult in self.options:
            if stake >= threshold:
                weight = mult
        return weight


@dataclass(frozen=True)
class Node:
    node_id: str
    managers: Tuple[str, ...]
    plan: Plan

    @staticmethod
    def from_json(node_id: str, j: Any) -> "Node":
        d = _as_dict(j, field="node")
        managers = d.get("managers")
        if not isinstance(managers, list):
            managers = []
        return Node(
            node_id=str(node_id),
            managers=tuple(str(m) for m in managers),
            plan=Plan.from_json(d.get("plan")),
        )

    def to_json(self) -> Json:
        return {"managers": list(self.managers), "plan": self.plan.to_json()}

    def is_manager(self, address: str) -> bool:
        return address in self.managers


@dataclass(frozen=True)
class Vote:
    address: str
    value: Decimal

    @staticmethod
    def from_json(j: Any) -> "Vote":
        d = _as_dict(j, field="vote")
        value = to_decimal(d.get("value"), field="vote.value")
        if value < 0:
            raise ValidationError("negative_vote", {"address": d.get("address"), "value": fmt(value)})
        return Vote(address=_as_address(d.get("address"), field="vote.address"), value=value)

    def to_json(self) -> Json:
        return {"address": self.address, "value": fmt(self.value)}


@dataclass(frozen=True)
class VoteSnapshot:
    block_count: int
    timestamp: int
    votes: Tuple[Vote, ...] = ()

    @staticmethod
    def from_json(j: Any) -> "VoteSnapshot":
        d = _as_dict(j, field="snapshot")
        votes = d.get("votes")
        if not isinstance(votes, list):
            votes = []
        return VoteSnapshot(
            block_count=_as_int(d.get("block_count"), field="snapshot.block_count"),
            timestamp=_as_int(d.get("timestamp", 0), field="snapshot.timestamp"),
            votes=tuple(Vote.from_json(v) for v in votes),
        )

    def to_json(self) -> Json:
        return {
            "block_count": int(self.block_count),
            "timestamp": int(self.timestamp),
            "votes": [v.to_json() for v in self.votes],
        }

    def addresses(self) -> List[str]:
        return [v.address for v in self.votes]


@dataclass
class IncomeRecord:
    start: int
    end: int
    distribute_timestamp: int
    vote: Decimal
    weighted_vote: Decimal
    block_count: int
    value: Decimal
    transferred: bool = False
    transfer_timestamp: Optional[int] = None

    @staticmethod
    def from_json(j: Any) -> "IncomeRecord":
        d = _as_dict(j, field="income")
        ts = d.get("transfer_timestamp")
        return IncomeRecord(
            start=int(d["start"]),
            end=int(d["end"]),
            distribute_timestamp=int(d.get("distribute_timestamp", 0)),
            vote=Decimal(str(d["vote"])),
            weighted_vote=Decimal(str(d["weighted_vote"])),
            block_count=int(d["block_count"]),
            value=Decimal(str(d["value"])),
            transferred=bool(d.get("transferred", False)),
            transfer_timestamp=None if ts is None else int(ts),
        )

    def to_json(self) -> Json:
        out: Json = {
            "start": int(self.start),
            "end": int(self.end),
            "distribute_timestamp": int(self.distribute_timestamp),
            "vote": fmt(self.vote),
            "weighted_vote": fmt(self.weighted_vote),
            "block_count": int(self.block_count),
            "value": fmt(self.value),
            "transferred": bool(self.transferred),
        }
        if self.transfer_timestamp is not None:
            out["transfer_timestamp"] = int(self.transfer_timestamp)
        return out


@dataclass(frozen=True)
class ChargeRecord:
    index: int
    sender: str
    value: int
    timestamp: int

    @staticmethod
    def from_json(j: Any) -> "ChargeRecord":
        d = _as_dict(j, field="charge")
        return ChargeRecord(
            index=int(d["index"]),
            sender=str(d.get("from") or ""),
            value=to_raw(d.get("value"), field="charge.value"),
            timestamp=int(d.get("timestamp", 0)),
        )

    def to_json(self) -> Json:
        return {"index": int(self.index), "from": self.sender, "value": str(int(self.value)), "timestamp": int(self.timestamp)}


@dataclass(frozen=True)
class ContractConfig:
    """Contract-wide configuration.

    multi_sig:      the only address allowed to replace this config
    asset_managers: may move contract funds with transfer_fund()
    data_managers:  reserved for data maintenance operations
    node_proxy:     locator of the node-registry collaborator
    """

    multi_sig: str
    asset_managers: Tuple[str, ...] = ()
    data_managers: Tuple[str, ...] = ()
    node_proxy: str = ""

    @staticmethod
    def from_json(j: Any) -> "ContractConfig":
        d = _as_dict(j, field="config")

        def _addrs(name: str) -> Tuple[str, ...]:
            v = d.get(name) or []
            if not isinstance(v, list):
                raise ValidationError("not_a_list", {"field": f"config.{name}"})
            return tuple(_as_address(a, field=f"config.{name}") for a in v)

        return ContractConfig(
            multi_sig=_as_address(d.get("multi_sig"), field="config.multi_sig"),
            asset_managers=_addrs("asset_managers"),
            data_managers=_addrs("data_managers"),
            node_proxy=str(d.get("node_proxy") or "").strip(),
        )

    def to_json(self) -> Json:
        return {
            "multi_sig": self.multi_sig,
            "asset_managers": list(self.asset_managers),
            "data_managers": list(self.data_managers),
            "node_proxy": self.node_proxy,
        }


__all__ = [
    "Plan",
    "Node",
    "Vote",
    "VoteSnapshot",
    "IncomeRecord",
    "ChargeRecord",
    "ContractConfig",
]
