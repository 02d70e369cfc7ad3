"""Currency helpers. Amounts are Decimal with two places, never float."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

TWO_PLACES = Decimal("0.01")
WHOLE_UNIT = Decimal("1")

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    """Quantize to two decimal places, rounding half up"""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_to_unit(value: Number) -> Decimal:
    """Round to the nearest whole currency unit, half up"""
    return Decimal(str(value)).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
