"""
Decimal currency helpers shared by the ledger engine.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Quantize any numeric input to cents. Floats go through str() first."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
