from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from noderewards.api.routes_parts.common import _executor, _unwrap

router = APIRouter()

Json = Dict[str, Any]


def _query(request: Request, method: str, *args: Any) -> Json:
    return {"ok": True, "result": _unwrap(_executor(request).query(method, *args))}


@router.get("/config")
def get_config(request: Request) -> Json:
    return _query(request, "get_config")


@router.get("/nodes")
def get_nodes(request: Request) -> Json:
    return _query(request, "get_nodes")


@router.get("/nodes/{node_id}")
def get_node_conf(node_id: str, request: Request) -> Json:
    return _query(request, "get_node_conf", node_id)


@router.get("/nodes/{node_id}/periods")
def get_node_periods(node_id: str, request: Request) -> Json:
    return _query(request, "get_node_periods", node_id)


@router.get("/nodes/{node_id}/periods/{period}/votes")
def get_node_votes(node_id: str, period: int, request: Request) -> Json:
    return _query(request, "get_node_votes", node_id, period)


@router.get("/nodes/{node_id}/periods/{period}/incomes")
def get_node_incomes(node_id: str, period: int, request: Request) -> Json:
    return _query(request, "get_node_incomes", node_id, period)


@router.get("/nodes/{node_id}/periods/{period}/incomes/{address}")
def get_node_period_addr_income(node_id: str, period: int, address: str, request: Request) -> Json:
    return _query(request, "get_node_period_addr_income", node_id, period, address)


@router.get("/nodes/{node_id}/addresses/{address}/incomes")
def get_node_addr_income(node_id: str, address: str, request: Request) -> Json:
    return _query(request, "get_node_addr_income", node_id, address)


@router.get("/nodes/{node_id}/balance")
def get_node_balance(node_id: str, request: Request) -> Json:
    return _query(request, "get_node_balance", node_id)


@router.get("/nodes/{node_id}/charges")
def get_node_charge(node_id: str, request: Request) -> Json:
    return _query(request, "get_node_charge", node_id)


@router.get("/nodes/{node_id}/to-reward")
def get_node_to_reward(node_id: str, request: Request) -> Json:
    return _query(request, "get_node_to_reward", node_id)


@router.get("/nodes/{node_id}/prospective")
def prospective_income(node_id: str, value: str, request: Request) -> Json:
    """Income a hypothetical extra vote of `value` raw units would earn."""
    return _query(request, "prospective_income", node_id, value)


@router.get("/addresses/{address}/incomes")
def get_address_income(address: str, request: Request) -> Json:
    return _query(request, "get_address_income", address)
