# src/noderewards/ledger/amounts.py
from __future__ import annotations

from contextlib import contextmanager
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext
from typing import Any, Iterator

from noderewards.errors import ValidationError
from noderewards.ledger.constants import DECIMAL_PRECISION, INCOME_QUANTUM, PROSPECTIVE_QUANTUM, RAW_UNIT

_CONTEXT = Context(prec=DECIMAL_PRECISION, rounding=ROUND_HALF_UP)


@contextmanager
def ledger_context() -> Iterator[None]:
    """Fixed Decimal context so every re-execution computes identical digits."""
    with localcontext(_CONTEXT):
        yield


def to_decimal(v: Any, *, field: str = "value") -> Decimal:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool) or v is None:
        raise ValidationError("not_a_number", {"field": field, "value": v})
    if isinstance(v, Decimal):
        d = v
    else:
        try:
            d = Decimal(str(v).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError("not_a_number", {"field": field, "value": str(v)}) from e
    if not d.is_finite():
        raise ValidationError("not_a_number", {"field": field, "value": str(v)})
    return d


def to_raw(v: Any, *, field: str = "value") -> int:
    """Parse a raw-unit amount. Raw amounts are non-negative integers."""
    d = to_decimal(v, field=field)
    if d < 0 or d != d.to_integral_value():
        raise ValidationError("bad_raw_amount", {"field": field, "value": str(v)})
    return int(d)


def fmt(d: Decimal) -> str:
    """Plain, normalized decimal string (no exponent, no trailing zeros)."""
    if d == 0:
        return "0"
    return format(d.normalize(), "f")


def floor_income(d: Decimal) -> Decimal:
    return d.quantize(INCOME_QUANTUM, rounding=ROUND_FLOOR)


def round_prospective(d: Decimal) -> Decimal:
    return d.quantize(PROSPECTIVE_QUANTUM, rounding=ROUND_HALF_UP)


def coins_to_raw(coins: Decimal) -> int:
    return int((coins * RAW_UNIT).to_integral_value(rounding=ROUND_FLOOR))


def to_period(v: Any, *, field: str = "period") -> int:
    """Parse a period number (or block count): an integer, given as int or numeric string."""
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool) or v is None:
        raise ValidationError("not_an_int", {"field": field, "value": v})
    try:
        return int(v) if isinstance(v, int) else int(str(v).strip())
    except (TypeError, ValueError) as e:
        raise ValidationError("not_an_int", {"field": field, "value": str(v)}) from e
