"""Priority rules for vessels, containers and the berth queue.

Vessel priority is fixed at registration:

  - emergency vessels always rank 10,
  - cargo vessels rank 5,
  - everything else ranks 7 when its requested arrival falls inside the
    near-term window, otherwise 3.

Container handling priority follows a fixed precedence in which the first
matching rule wins: hazardous (10), perishable (9), reefer container (8),
fragile (7), anything else (5).
"""
from __future__ import annotations

from typing import Optional

from ..models import VesselClass

EMERGENCY_PRIORITY = 10
CARGO_PRIORITY = 5
NEAR_TERM_PRIORITY = 7
DEFAULT_PRIORITY = 3

# Vessels above this priority wait one base period in the queue, the rest two.
FAST_LANE_THRESHOLD = 7

# (field, value, priority) evaluated top to bottom.
HANDLING_PRECEDENCE = (
    ("cargo_type", "hazardous", 10),
    ("cargo_type", "perishable", 9),
    ("container_type", "reefer", 8),
    ("cargo_type", "fragile", 7),
)
DEFAULT_HANDLING_PRIORITY = 5


def vessel_priority(
    vessel_class: VesselClass,
    requested_arrival: int,
    now: int,
    near_term_window: int,
) -> int:
    """Derive a vessel's priority from its class and arrival proximity."""

    if vessel_class == VesselClass.EMERGENCY:
        return EMERGENCY_PRIORITY
    if vessel_class == VesselClass.CARGO:
        return CARGO_PRIORITY
    if requested_arrival < now + near_term_window:
        return NEAR_TERM_PRIORITY
    return DEFAULT_PRIORITY


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower().replace("_", "-")


def handling_priority(cargo_type: Optional[str], container_type: Optional[str]) -> int:
    """Compute a container's handling priority; size never matters."""

    fields = {"cargo_type": _norm(cargo_type), "container_type": _norm(container_type)}
    for field, match, priority in HANDLING_PRECEDENCE:
        if fields[field] == match:
            return priority
    return DEFAULT_HANDLING_PRIORITY


def queue_wait(priority: int, base_wait: int) -> int:
    """Estimated wait for a queued vessel."""

    return base_wait * (1 if priority > FAST_LANE_THRESHOLD else 2)
