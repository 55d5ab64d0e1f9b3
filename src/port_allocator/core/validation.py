"""Input parsers shared by the components.

Each parser either returns a clean value or raises ``InvalidParameters``
naming the offending field.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation as DecimalError
from typing import Any

from .errors import InvalidParameters

# Every Numeric column keeps two decimal places.
DECIMAL_PLACES = 2


def positive_decimal(field: str, value: Any, *, allow_zero: bool = False, digits: int = 10) -> Decimal:
    """Parse a quantity that must fit a ``Numeric(digits, 2)`` column exactly.

    Values with more than two decimal places are rejected rather than
    rounded, so what is stored is what was asked for.
    """

    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (DecimalError, TypeError, ValueError):
        raise InvalidParameters(f"{field} must be a number", field=field)
    if not d.is_finite() or d < 0 or (d == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise InvalidParameters(f"{field} must be {bound}", field=field)
    if d != 0 and d.normalize().as_tuple().exponent < -DECIMAL_PLACES:
        raise InvalidParameters(
            f"{field} accepts at most {DECIMAL_PLACES} decimal places", field=field
        )
    if d >= Decimal(10) ** (digits - DECIMAL_PLACES):
        raise InvalidParameters(f"{field} is too large", field=field)
    return d


def whole_number(field: str, value: Any, *, minimum: int = 0) -> int:
    """Parse an integral count or logical time (ints, or strings/decimals holding one)."""

    if value is None or isinstance(value, bool):
        raise InvalidParameters(f"{field} must be a whole number", field=field)
    if isinstance(value, int):
        n = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (DecimalError, TypeError, ValueError):
            raise InvalidParameters(f"{field} must be a whole number", field=field)
        if not d.is_finite() or d != d.to_integral_value():
            raise InvalidParameters(f"{field} must be a whole number", field=field)
        n = int(d)
    if n < minimum:
        raise InvalidParameters(f"{field} must be >= {minimum}", field=field)
    return n
