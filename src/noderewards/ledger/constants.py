# src/noderewards/ledger/constants.py
from __future__ import annotations

"""Monetary constants for vote-reward distribution.

- 1 coin = 1e18 raw units (balances, charges, withdrawals, transfers)
- plan thresholds are expressed in stake units (1e9 raw)
- every produced block emits BLOCK_REWARD coins to the producing node
"""

from decimal import Decimal

RAW_DECIMALS: int = 18
RAW_UNIT: int = 10**RAW_DECIMALS

STAKE_DECIMALS: int = 9
STAKE_UNIT: int = 10**STAKE_DECIMALS

BLOCK_REWARD: Decimal = Decimal("1.18912")

# Income shares are floored to 1e-2 coin; previews are rounded to 1e-5.
INCOME_QUANTUM: Decimal = Decimal("0.01")
PROSPECTIVE_QUANTUM: Decimal = Decimal("0.00001")

# Working precision for every Decimal computation in the ledger.
DECIMAL_PRECISION: int = 60
