# src/noderewards/ledger/reward_ledger.py
from __future__ import annotations

"""
Per-node reward ledger.

One RewardLedger owns everything stored under `node:<node_id>:`:
- the ordered vote-period history (one VoteSnapshot per tracked period)
- the last distributed period
- the node balance (raw units) and its charge history
- income records per (period, address)
- the pending-reward queue (periods with unsettled income)

A window is the pair of consecutive tracked periods (prev, cur). Voters
present at both ends share `BLOCK_REWARD * block_delta * plan.rate` in
proportion to their weighted vote, floored to 0.01 coin.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from noderewards.errors import AccessDenied, StateError, TransferError, ValidationError
from noderewards.ledger.amounts import (
    coins_to_raw,
    floor_income,
    fmt,
    ledger_context,
    round_prospective,
    to_decimal,
    to_period,
    to_raw,
)
from noderewards.ledger.constants import BLOCK_REWARD, STAKE_UNIT
from noderewards.ledger.types import ChargeRecord, IncomeRecord, Node, Vote, VoteSnapshot
from noderewards.runtime.host import Host
from noderewards.storage.kv import JsonAccess
from noderewards.storage.ordered_store import OrderedStore

Json = Dict[str, Any]

log = logging.getLogger("noderewards.ledger")


class RewardLedger:
    def __init__(self, storage: JsonAccess, node: Node, host: Host) -> None:
        self.storage = storage
        self.node = node
        self.host = host

        self._ns = f"node:{node.node_id}"
        self.periods = OrderedStore(storage, f"{self._ns}:periods")

    # ----------------------------
    # Storage keys
    # ----------------------------

    @property
    def _last_distributed_key(self) -> str:
        return f"{self._ns}:last_distributed"

    @property
    def _balance_key(self) -> str:
        return f"{self._ns}:balance"

    @property
    def _charge_count_key(self) -> str:
        return f"{self._ns}:charge_count"

    @property
    def _pending_key(self) -> str:
        return f"{self._ns}:pending"

    def _charge_key(self, index: int) -> str:
        return f"{self._ns}:charge:{int(index)}"

    def _income_key(self, period: int, address: str) -> str:
        return f"{self._ns}:income:{int(period)}:{address}"

    # ----------------------------
    # Small state accessors
    # ----------------------------

    def _last_distributed(self) -> Optional[int]:
        v = self.storage.get(self._last_distributed_key)
        return None if v is None else int(v)

    def _pending(self) -> List[int]:
        v = self.storage.get(self._pending_key)
        return [int(p) for p in v] if isinstance(v, list) else []

    def _snapshot(self, period: int) -> Optional[VoteSnapshot]:
        raw = self.periods.get(period)
        return None if raw is None else VoteSnapshot.from_json(raw)

    def _balance(self) -> int:
        return int(self.storage.get(self._balance_key, "0"))

    def _set_balance(self, value: int) -> None:
        if value < 0:
            raise StateError("negative_balance", {"node_id": self.node.node_id, "balance": str(value)})
        self.storage.set(self._balance_key, str(int(value)))

    def _debit(self, amount: int, *, reason: str) -> None:
        balance = self._balance()
        if balance < amount:
            raise StateError(reason, {"node_id": self.node.node_id, "balance": str(balance), "amount": str(amount)})
        self._set_balance(balance - amount)

    def _income(self, period: int, address: str) -> Optional[IncomeRecord]:
        raw = self.storage.get(self._income_key(period, address))
        return None if raw is None else IncomeRecord.from_json(raw)

    def check_manager(self) -> None:
        sender = self.host.tx.sender
        if not self.node.is_manager(sender):
            raise AccessDenied("not_node_manager", {"node_id": self.node.node_id, "sender": sender})

    # ----------------------------
    # Weighting
    # ----------------------------

    def weighted_vote(self, value: Decimal) -> Decimal:
        with ledger_context():
            stake = value / STAKE_UNIT
            return value * self.node.plan.multiplier(stake)

    # ----------------------------
    # Tracking
    # ----------------------------

    def track(self, period: int, block_count: int, votes: List[Json]) -> bool:
        """Record the vote snapshot of `period`.

        Periods must arrive in non-decreasing order. Re-tracking the latest
        period refreshes it until it has been distributed; after that the
        snapshot is frozen and the call records nothing (returns False).
        """
        period = to_period(period)
        if period < self.node.plan.start:
            raise StateError("distribution_not_started", {"period": period, "start": self.node.plan.start})

        snapshot = VoteSnapshot(
            block_count=to_period(block_count, field="block_count"),
            timestamp=int(self.host.block.timestamp),
            votes=tuple(Vote.from_json(v) for v in votes),
        )

        if self.periods.size() > 0:
            latest = int(self.periods.last_key())
            if period < latest:
                raise StateError("period_out_of_order", {"period": period, "latest": latest})
            if period == latest and period == self._last_distributed():
                log.debug("track skipped: node=%s period=%s already distributed", self.node.node_id, period)
                return False
            # a refresh of the latest period is still compared with the one before it
            size = self.periods.size()
            if period > latest:
                previous = self._snapshot(latest)
            elif size >= 2:
                previous = self._snapshot(int(self.periods.key_at(size - 2)))
            else:
                previous = None
            if previous is not None and snapshot.block_count < previous.block_count:
                raise StateError(
                    "block_count_decreased",
                    {"period": period, "block_count": snapshot.block_count, "previous": previous.block_count},
                )

        self.periods.set(period, snapshot.to_json())
        return True

    # ----------------------------
    # Distribution
    # ----------------------------

    def _window(self, start: int, prev: VoteSnapshot, end: int, cur: VoteSnapshot) -> List[Tuple[str, IncomeRecord]]:
        prev_addrs = set(prev.addresses())
        weighted = [(v, self.weighted_vote(v.value)) for v in cur.votes if v.address in prev_addrs]

        out: List[Tuple[str, IncomeRecord]] = []
        with ledger_context():
            total = sum((w for _, w in weighted), Decimal(0))
            block_delta = cur.block_count - prev.block_count
            amount = BLOCK_REWARD * block_delta * self.node.plan.rate

            for vote, w in weighted:
                share = floor_income(w * amount / total) if total > 0 else Decimal(0)
                out.append(
                    (
                        vote.address,
                        IncomeRecord(
                            start=start,
                            end=end,
                            distribute_timestamp=int(self.host.block.timestamp),
                            vote=vote.value / STAKE_UNIT,
                            weighted_vote=w,
                            block_count=block_delta,
                            value=share,
                        ),
                    )
                )
        return out

    def distribute(self) -> int:
        """Turn every undistributed window into income records.

        Returns the distance, in period numbers, between the previous and the
        new last-distributed period.
        """
        self.check_manager()

        size = self.periods.size()
        if size <= 1:
            raise StateError("must_track_first", {"node_id": self.node.node_id})

        last = self._last_distributed()
        if last is None:
            last = int(self.periods.key_at(0))

        end = int(self.periods.key_at(size - 1))
        if last == end:
            raise StateError("all_tracks_distributed", {"node_id": self.node.node_id, "period": end})

        pending = self._pending()

        prev = last
        prev_snap = self._snapshot(last)
        if prev_snap is None:
            raise StateError("period_not_tracked", {"node_id": self.node.node_id, "period": last})

        for period in self.periods.keys():
            period = int(period)
            if period <= prev:
                continue
            cur = self._snapshot(period)
            if cur is None:
                raise StateError("period_not_tracked", {"node_id": self.node.node_id, "period": period})

            incomes = self._window(prev, prev_snap, period, cur)
            for address, income in incomes:
                self.storage.set(self._income_key(period, address), income.to_json())

            log.debug(
                "window distributed: node=%s start=%s end=%s participants=%d",
                self.node.node_id,
                prev,
                period,
                len(incomes),
            )
            prev, prev_snap = period, cur
            pending.append(period)

        if prev > last:
            self.storage.set(self._last_distributed_key, prev)
            self.storage.set(self._pending_key, pending)
        return prev - last

    # ----------------------------
    # Transfers
    # ----------------------------

    def transfer_reward(self, period: int) -> None:
        self.check_manager()

        period = to_period(period)
        snap = self._snapshot(period)
        if snap is None:
            raise StateError("period_not_tracked", {"node_id": self.node.node_id, "period": period})

        for address in snap.addresses():
            self.transfer_address_reward(period, address)

        self.storage.set(self._pending_key, [p for p in self._pending() if p != period])

    def transfer_address_reward(self, period: int, address: str) -> Optional[IncomeRecord]:
        income = self._income(period, address)
        if income is None:
            return None
        if income.transferred:
            raise StateError("already_transferred", {"node_id": self.node.node_id, "period": int(period), "address": address})

        income.transferred = True
        income.transfer_timestamp = int(self.host.block.timestamp)

        if income.value > 0:
            amount = coins_to_raw(income.value)
            # distribute() must never create obligations the balance cannot pay
            self._debit(amount, reason="insufficient_balance")
            if not self.host.transfer(address, amount):
                raise TransferError("transfer_failed", {"to": address, "amount": str(amount)})

            payload = income.to_json()
            payload.update({"node_id": self.node.node_id, "period": int(period), "address": address})
            self.host.emit_event("transferAddressReward", payload)

        self.storage.set(self._income_key(period, address), income.to_json())
        return income

    # ----------------------------
    # Balance
    # ----------------------------

    def charge(self, sender: str, value: Any) -> ChargeRecord:
        amount = to_raw(value, field="charge.value")
        index = int(self.storage.get(self._charge_count_key, 0) or 0)
        record = ChargeRecord(index=index, sender=str(sender), value=amount, timestamp=int(self.host.block.timestamp))

        self.storage.set(self._charge_key(index), record.to_json())
        self.storage.set(self._charge_count_key, index + 1)
        self._set_balance(self._balance() + amount)

        payload = record.to_json()
        payload["node_id"] = self.node.node_id
        self.host.emit_event("charge", payload)
        return record

    def withdraw(self, address: str, value: Any) -> None:
        self.check_manager()

        amount = to_raw(value, field="withdraw.value")
        self._debit(amount, reason="insufficient_withdraw_balance")
        if not self.host.transfer(address, amount):
            raise TransferError("transfer_failed", {"to": address, "amount": str(amount)})

        self.host.emit_event(
            "withdraw",
            {"node_id": self.node.node_id, "from": self.host.tx.recipient, "to": address, "value": str(amount)},
        )

    # ----------------------------
    # Queries
    # ----------------------------

    def get_periods(self) -> List[int]:
        return [int(p) for p in self.periods.keys()]

    def get_votes(self, period: int) -> Optional[Json]:
        return self.periods.get(to_period(period))

    def get_incomes(self, period: int) -> List[Json]:
        period = to_period(period)
        snap = self._snapshot(period)
        if snap is None:
            raise StateError("period_not_tracked", {"node_id": self.node.node_id, "period": period})
        out: List[Json] = []
        for address in snap.addresses():
            income = self._income(period, address)
            if income is not None:
                j = income.to_json()
                j["address"] = address
                out.append(j)
        return out

    def get_address_income(self, period: int, address: str) -> Optional[Json]:
        income = self._income(to_period(period), address)
        return None if income is None else income.to_json()

    def get_balance(self) -> str:
        return str(self._balance())

    def get_charge_history(self) -> List[Json]:
        count = int(self.storage.get(self._charge_count_key, 0) or 0)
        return [self.storage.get(self._charge_key(i)) for i in range(count)]

    def get_to_reward(self) -> Json:
        pending = self._pending()
        if not pending:
            return {"total": "0", "data": []}

        total = Decimal(0)
        rewards: List[Json] = []
        with ledger_context():
            for period in pending:
                snap = self._snapshot(period)
                reward: Json = {"period": period, "data": []}
                for address in snap.addresses() if snap is not None else []:
                    income = self._income(period, address)
                    if income is not None and not income.transferred:
                        total += income.value
                        j = income.to_json()
                        j["address"] = address
                        reward["data"].append(j)
                rewards.append(reward)

        return {"total": fmt(total), "data": rewards}

    def prospective_income(self, value: Any) -> Json:
        """Preview the share a new vote of `value` would earn.

        Uses the two latest snapshots and every vote of the latest one, with
        no continuity filter. Never writes.
        """
        size = self.periods.size()
        if size <= 1:
            raise StateError("must_track_first", {"node_id": self.node.node_id})

        amount_in = to_decimal(value, field="value")
        if amount_in < 0:
            raise ValidationError("negative_vote", {"value": fmt(amount_in)})

        last = int(self.periods.key_at(size - 2))
        nxt = int(self.periods.key_at(size - 1))
        last_snap = self._snapshot(last)
        next_snap = self._snapshot(nxt)
        if last_snap is None or next_snap is None:
            raise StateError("period_not_tracked", {"node_id": self.node.node_id, "period": nxt})

        with ledger_context():
            weighted = self.weighted_vote(amount_in)
            total = sum((self.weighted_vote(v.value) for v in next_snap.votes), Decimal(0)) + weighted
            block_delta = next_snap.block_count - last_snap.block_count
            amount = BLOCK_REWARD * block_delta * self.node.plan.rate
            share = amount * weighted / total if total > 0 else Decimal(0)

            return {
                "start": last,
                "end": nxt,
                "vote": fmt(amount_in),
                "block_count": block_delta,
                "value": format(round_prospective(share), "f"),
            }
