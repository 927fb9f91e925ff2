"""Currency arithmetic helpers"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Quantize any numeric input to two decimal places, half-up"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(base: Number, percent: Number) -> Decimal:
    """Absolute amount for ``percent`` % of ``base``"""
    return to_money(to_money(base) * Decimal(str(percent)) / HUNDRED)


def money_sum(values: Iterable[Number]) -> Decimal:
    return to_money(sum((to_money(v) for v in values), Decimal("0")))
