"""Handling-efficiency and turnaround rules.

Every operation type has a standard handling time in logical ticks. The
efficiency score compares the observed duration with that standard:

  - at or under standard: 100 x standard / duration,
  - over standard:        100 x duration / standard.

A duration exactly equal to the standard therefore scores 100.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

from ..models import OperationType

STANDARD_TIMES: Dict[OperationType, int] = {
    OperationType.LOADING: 120,
    OperationType.UNLOADING: 100,
    OperationType.TRANSFER: 80,
}
DEFAULT_STANDARD_TIME = 80

# Cargo units handled per tick, by cargo type.
THROUGHPUT_RATES: Dict[str, int] = {
    "container": 25,
    "bulk": 50,
    "liquid": 100,
    "general": 20,
}
DEFAULT_THROUGHPUT_RATE = 20


def _score(value: Decimal | int | float | str) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def standard_time(operation_type: OperationType) -> int:
    return STANDARD_TIMES.get(operation_type, DEFAULT_STANDARD_TIME)


def efficiency_score(operation_type: OperationType, duration: int) -> Decimal:
    """Score a completed operation; a zero-tick duration counts as one tick."""

    standard = Decimal(standard_time(operation_type))
    ticks = Decimal(max(int(duration), 1))
    if ticks <= standard:
        return _score(Decimal(100) * standard / ticks)
    return _score(Decimal(100) * ticks / standard)


def throughput_rate(cargo_type: str | None) -> int:
    return THROUGHPUT_RATES.get((cargo_type or "").strip().lower(), DEFAULT_THROUGHPUT_RATE)


def turnaround_ticks(cargo_capacity: Decimal | int, cargo_type: str | None) -> Decimal:
    """Estimated ticks alongside to work a vessel's full capacity."""

    return _score(Decimal(str(cargo_capacity)) / Decimal(throughput_rate(cargo_type)))


def efficiency_ratio(value: Decimal, target: Decimal) -> Decimal:
    return _score(Decimal(100) * Decimal(str(value)) / Decimal(str(target)))
