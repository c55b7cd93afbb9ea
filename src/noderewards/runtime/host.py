# src/noderewards/runtime/host.py
from __future__ import annotations

"""
Host-ledger capabilities consumed by the distribution contract.

The contract never touches native balances or the event log directly. It
asks its Host to validate addresses, move value and emit events. LedgerHost
keeps native balances inside the call's staged storage and buffers events in
memory, so a rolled-back call leaves neither a transfer nor an event behind.
"""

import copy
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from noderewards.storage.kv import JsonAccess

Json = Dict[str, Any]

DEFAULT_ADDRESS_PATTERN = r"^[A-Za-z0-9@:_.\-]{2,128}$"


@dataclass(frozen=True)
class Transaction:
    sender: str
    recipient: str
    value: int = 0


@dataclass(frozen=True)
class Block:
    timestamp: int


class Host(Protocol):
    tx: Transaction
    block: Block

    def validate_address(self, address: Any) -> bool: ...

    def transfer(self, to: str, amount: int) -> bool: ...

    def emit_event(self, name: str, payload: Json) -> None: ...


class LedgerHost:
    """Host backed by the same staged storage as the contract."""

    def __init__(
        self,
        storage: JsonAccess,
        *,
        tx: Transaction,
        block: Block,
        address_pattern: Optional[str] = None,
    ) -> None:
        self.storage = storage
        self.tx = tx
        self.block = block
        self._address_re = re.compile(address_pattern or DEFAULT_ADDRESS_PATTERN)
        self.events: List[Json] = []

    @staticmethod
    def _balance_key(address: str) -> str:
        return f"host:balance:{address}"

    def validate_address(self, address: Any) -> bool:
        return isinstance(address, str) and bool(self._address_re.match(address))

    def balance_of(self, address: str) -> int:
        return int(self.storage.get(self._balance_key(address), "0"))

    def _set_balance(self, address: str, value: int) -> None:
        self.storage.set(self._balance_key(address), str(int(value)))

    def receive(self) -> None:
        """Credit the incoming call value to the contract account."""
        if int(self.tx.value) > 0:
            self._set_balance(self.tx.recipient, self.balance_of(self.tx.recipient) + int(self.tx.value))

    def transfer(self, to: str, amount: int) -> bool:
        amount = int(amount)
        if amount < 0:
            return False
        own = self.balance_of(self.tx.recipient)
        if own < amount:
            return False
        self._set_balance(self.tx.recipient, own - amount)
        self._set_balance(to, self.balance_of(to) + amount)
        return True

    def emit_event(self, name: str, payload: Json) -> None:
        self.events.append({"name": str(name), "payload": copy.deepcopy(payload)})
