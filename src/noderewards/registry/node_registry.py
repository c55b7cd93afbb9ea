# src/noderewards/registry/node_registry.py
from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from noderewards.errors import RegistryError

Json = Dict[str, Any]


@dataclass(frozen=True)
class NodeDetail:
    node_id: str
    registrant: str
    block_count: int
    managers: Tuple[str, ...] = ()


class NodeRegistryClient(Protocol):
    """Synchronous view of the external node registry.

    Every method either returns a well-formed value or raises RegistryError.
    """

    def get_node_detail(self, node_id: str) -> NodeDetail: ...

    def get_current_period(self) -> int: ...

    def get_node_vote_statistic(self, node_id: str) -> List[Json]: ...


def parse_node_detail(node_id: str, raw: Any) -> NodeDetail:
    if not isinstance(raw, dict):
        raise RegistryError("bad_node_detail", {"node_id": node_id})
    accounts = raw.get("accounts") if isinstance(raw.get("accounts"), dict) else {}
    try:
        block_count = int(raw.get("blockCount"))
    except (TypeError, ValueError) as e:
        raise RegistryError("bad_block_count", {"node_id": node_id, "blockCount": raw.get("blockCount")}) from e
    managers = raw.get("managers") if isinstance(raw.get("managers"), list) else []
    return NodeDetail(
        node_id=str(raw.get("id") or node_id),
        registrant=str(accounts.get("registrant") or ""),
        block_count=block_count,
        managers=tuple(str(m) for m in managers),
    )


def parse_current_period(raw: Any) -> int:
    if not isinstance(raw, dict):
        raise RegistryError("bad_system_info")
    try:
        return int(raw.get("currentPeriod"))
    except (TypeError, ValueError) as e:
        raise RegistryError("bad_current_period", {"currentPeriod": raw.get("currentPeriod")}) from e


def parse_votes(node_id: str, raw: Any) -> List[Json]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise RegistryError("bad_vote_statistic", {"node_id": node_id})
    out: List[Json] = []
    for v in raw:
        if not isinstance(v, dict):
            raise RegistryError("bad_vote_statistic", {"node_id": node_id})
        out.append({"address": v.get("address"), "value": v.get("value")})
    return out


@dataclass
class StaticNodeRegistry:
    """In-process registry fed from a dict (dev mode, tests, replays).

    Shape:
      {"currentPeriod": 3,
       "nodes": {"<id>": {"accounts": {"registrant": "..."}, "blockCount": 10,
                          "managers": [...], "votes": [{"address": "...", "value": "..."}]}}}
    """

    current_period: int = 0
    nodes: Dict[str, Json] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: Any) -> "StaticNodeRegistry":
        d = raw if isinstance(raw, dict) else {}
        nodes = d.get("nodes") if isinstance(d.get("nodes"), dict) else {}
        return cls(current_period=int(d.get("currentPeriod") or 0), nodes={str(k): dict(v) for k, v in nodes.items()})

    @classmethod
    def from_file(cls, path: str) -> "StaticNodeRegistry":
        return cls.from_json(json.loads(Path(path).read_text(encoding="utf-8")))

    def put_node(
        self,
        node_id: str,
        *,
        registrant: str,
        block_count: int = 0,
        votes: Optional[List[Json]] = None,
        managers: Optional[List[str]] = None,
    ) -> None:
        self.nodes[str(node_id)] = {
            "id": str(node_id),
            "accounts": {"registrant": registrant},
            "blockCount": int(block_count),
            "managers": list(managers or []),
            "votes": list(votes or []),
        }

    def advance(self, node_id: str, *, period: int, block_count: int, votes: Optional[List[Json]] = None) -> None:
        """Move the registry to `period` with fresh node statistics."""
        n = self._node(node_id)
        self.current_period = int(period)
        n["blockCount"] = int(block_count)
        if votes is not None:
            n["votes"] = list(votes)

    def _node(self, node_id: str) -> Json:
        n = self.nodes.get(str(node_id))
        if not isinstance(n, dict):
            raise RegistryError("node_not_found", {"node_id": node_id})
        return n

    def get_node_detail(self, node_id: str) -> NodeDetail:
        return parse_node_detail(node_id, self._node(node_id))

    def get_current_period(self) -> int:
        return parse_current_period({"currentPeriod": self.current_period})

    def get_node_vote_statistic(self, node_id: str) -> List[Json]:
        return parse_votes(node_id, self._node(node_id).get("votes"))


class HttpNodeRegistry:
    """Node registry reached over HTTP/JSON.

    Endpoints (relative to base_url):
      GET /nodes/<id>          -> node detail
      GET /system              -> {"currentPeriod": ...}
      GET /nodes/<id>/votes    -> [{"address", "value"}, ...]
    """

    def __init__(self, *, base_url: str, timeout_s: float = 10.0) -> None:
        self.base_url = str(base_url).rstrip("/")
        self.timeout_s = float(timeout_s)

    def _get_json(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        req = urllib.request.Request(url, headers={"Accept": "application/json"}, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raise RegistryError("http_error", {"url": url, "status": int(getattr(e, "code", 0) or 0)}) from e
        except urllib.error.URLError as e:
            raise RegistryError("url_error", {"url": url, "reason": str(getattr(e, "reason", e))}) from e
        except TimeoutError as e:
            raise RegistryError("timeout", {"url": url}) from e
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise RegistryError("bad_json", {"url": url}) from e

    def get_node_detail(self, node_id: str) -> NodeDetail:
        q = urllib.parse.quote(str(node_id), safe="")
        return parse_node_detail(node_id, self._get_json(f"/nodes/{q}"))

    def get_current_period(self) -> int:
        return parse_current_period(self._get_json("/system"))

    def get_node_vote_statistic(self, node_id: str) -> List[Json]:
        q = urllib.parse.quote(str(node_id), safe="")
        return parse_votes(node_id, self._get_json(f"/nodes/{q}/votes"))
