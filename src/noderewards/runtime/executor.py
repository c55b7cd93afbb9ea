# src/noderewards/runtime/executor.py
from __future__ import annotations

import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from noderewards.errors import DistributeError, ValidationError
from noderewards.ledger.registry import PUBLIC_CALLS, PUBLIC_QUERIES, DistributionRegistry, RegistryResolver
from noderewards.registry.node_registry import HttpNodeRegistry, NodeRegistryClient, StaticNodeRegistry
from noderewards.runtime.config import ServiceConfig
from noderewards.runtime.host import Block, LedgerHost, Transaction
from noderewards.runtime.metrics import inc_counter, set_gauge
from noderewards.storage.kv import KVStore, SqliteKV, StagedKV
from noderewards.storage.sqlite_db import SqliteDB
from noderewards.structured_logging import log_event

Json = Dict[str, Any]

log = logging.getLogger("noderewards.executor")

EVENT_COUNT_KEY = "events:count"


def _now_s() -> int:
    return int(time.time())


def _event_key(index: int) -> str:
    return f"events:{int(index)}"


@dataclass
class CallResult:
    ok: bool
    result: Any = None
    error: Optional[DistributeError] = None
    events: List[Json] = field(default_factory=list)
    writes: int = 0

    def to_json(self) -> Json:
        out: Json = {"ok": self.ok, "result": self.result, "events": list(self.events)}
        if self.error is not None:
            out["error"] = self.error.to_json()
        return out


class DistributeExecutor:
    """Runs contract calls one at a time, each all-or-nothing.

    Every call gets a fresh StagedKV over the durable store, a LedgerHost for
    that call's transaction/block, and a fresh DistributionRegistry. If the
    call raises a DistributeError the overlay is dropped and a failed
    CallResult is returned; otherwise the staged writes and the call's events
    are committed in a single batch.
    """

    def __init__(
        self,
        *,
        store: KVStore,
        contract_address: str,
        resolve_node_registry: RegistryResolver,
        address_pattern: Optional[str] = None,
        clock: Callable[[], int] = _now_s,
    ) -> None:
        self._store = store
        self.contract_address = str(contract_address)
        self._resolve = resolve_node_registry
        self._address_pattern = address_pattern
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: ServiceConfig) -> "DistributeExecutor":
        store = SqliteKV(db=SqliteDB(path=cfg.db_path))

        if cfg.node_registry_path:
            static = StaticNodeRegistry.from_file(cfg.node_registry_path)

            def _resolve(_proxy: str) -> NodeRegistryClient:
                return static

        else:

            def _resolve(proxy: str) -> NodeRegistryClient:
                return HttpNodeRegistry(base_url=proxy, timeout_s=cfg.registry_timeout_s)

        ex = cls(
            store=store,
            contract_address=cfg.contract_address,
            resolve_node_registry=_resolve,
            address_pattern=cfg.address_pattern,
        )
        if cfg.multi_sig and not ex.initialized():
            res = ex.deploy(cfg.multi_sig)
            if not res.ok:
                raise RuntimeError(f"contract deploy failed: {res.error}")
        return ex

    # ----------------------------
    # Public entry points
    # ----------------------------

    def initialized(self) -> bool:
        return self.query("get_config").ok

    def deploy(self, multi_sig: str, *, timestamp: Optional[int] = None) -> CallResult:
        return self._run("init", (multi_sig,), {}, sender=multi_sig, value=0, timestamp=timestamp, commit=True)

    def call(
        self,
        method: str,
        *args: Any,
        sender: str,
        value: int = 0,
        timestamp: Optional[int] = None,
        **kwargs: Any,
    ) -> CallResult:
        return self.invoke(method, args, kwargs, sender=sender, value=value, timestamp=timestamp)

    def invoke(
        self,
        method: str,
        args: Sequence[Any] = (),
        kwargs: Optional[Dict[str, Any]] = None,
        *,
        sender: str,
        value: int = 0,
        timestamp: Optional[int] = None,
    ) -> CallResult:
        """Like call(), with contract arguments passed as a sequence and a mapping.

        Contract arguments named `sender` or `value` (withdraw has one) can only
        be passed this way.
        """
        if method not in PUBLIC_CALLS:
            return self._reject_unknown(method)
        return self._run(method, tuple(args), dict(kwargs or {}), sender=sender, value=value, timestamp=timestamp, commit=True)

    def query(self, method: str, *args: Any, sender: str = "", timestamp: Optional[int] = None, **kwargs: Any) -> CallResult:
        if method not in PUBLIC_QUERIES:
            return self._reject_unknown(method)
        return self._run(method, args, kwargs, sender=sender, value=0, timestamp=timestamp, commit=False)

    def events(self) -> List[Json]:
        count = int(self._store_get(EVENT_COUNT_KEY, 0))
        return [self._store_get(_event_key(i)) for i in range(count)]

    def dump_storage(self) -> Dict[str, str]:
        return self._store.dump()

    # ----------------------------
    # Internals
    # ----------------------------

    def _store_get(self, key: str, default: Any = None) -> Any:
        return StagedKV(self._store).get(key, default)

    def _reject_unknown(self, method: str) -> CallResult:
        err = ValidationError("unknown_method", {"method": method})
        inc_counter("calls_rejected")
        return CallResult(ok=False, error=err)

    def _append_events(self, staged: StagedKV, events: List[Json]) -> None:
        count = int(staged.get(EVENT_COUNT_KEY, 0))
        for ev in events:
            staged.set(_event_key(count), ev)
            count += 1
        staged.set(EVENT_COUNT_KEY, count)

    def _run(
        self,
        method: str,
        args: Any,
        kwargs: Dict[str, Any],
        *,
        sender: str,
        value: int,
        timestamp: Optional[int],
        commit: bool,
    ) -> CallResult:
        with self._lock:
            staged = StagedKV(self._store)
            host = LedgerHost(
                staged,
                tx=Transaction(sender=str(sender), recipient=self.contract_address, value=int(value)),
                block=Block(timestamp=int(timestamp) if timestamp is not None else self._clock()),
                address_pattern=self._address_pattern,
            )
            registry = DistributionRegistry(staged, host, resolve_node_registry=self._resolve)

            try:
                if int(value) < 0:
                    raise ValidationError("negative_call_value", {"value": int(value)})
                fn = getattr(registry, method)
                try:
                    inspect.signature(fn).bind(*args, **kwargs)
                except TypeError as e:
                    raise ValidationError("bad_arguments", {"method": method, "error": str(e)}) from e
                host.receive()
                result = fn(*args, **kwargs)
            except DistributeError as e:
                staged.discard()
                if commit:
                    inc_counter("calls_rolled_back")
                    log_event(log, "call_rolled_back", method=method, sender=str(sender), error=e.to_json())
                return CallResult(ok=False, error=e)

            if not commit:
                staged.discard()
                return CallResult(ok=True, result=result)

            self._append_events(staged, host.events)
            writes = staged.commit()

            inc_counter("calls_committed")
            inc_counter("events_emitted", len(host.events))
            set_gauge("last_call_writes", writes)
            log_event(log, "call_committed", method=method, sender=str(sender), writes=writes)
            for ev in host.events:
                log_event(log, "contract_event", name=ev["name"], payload=ev["payload"])

            return CallResult(ok=True, result=result, events=list(host.events), writes=writes)
