"""Vessel registry: storage, lookups and the vessel status state machine."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional

from sqlalchemy.orm import Session

from ..models import Vessel, VesselClass, VesselStatus
from .errors import InvalidStatus, NotFound

VESSEL_TRANSITIONS: Mapping[VesselStatus, FrozenSet[VesselStatus]] = {
    VesselStatus.REGISTERED: frozenset({VesselStatus.QUEUED, VesselStatus.DOCKED}),
    VesselStatus.QUEUED: frozenset({VesselStatus.DOCKED}),
    VesselStatus.DOCKED: frozenset({VesselStatus.SCHEDULED_DEPARTURE, VesselStatus.DEPARTED}),
    VesselStatus.SCHEDULED_DEPARTURE: frozenset({VesselStatus.DEPARTED}),
    VesselStatus.DEPARTED: frozenset(),
}


def vessel_dict(v: Vessel) -> Dict[str, Any]:
    return {
        "id": v.id,
        "name": v.name,
        "owner": v.owner,
        "length": str(v.length),
        "beam": str(v.beam),
        "draft": str(v.draft),
        "cargo_capacity": str(v.cargo_capacity),
        "vessel_class": v.vessel_class.value,
        "status": v.status.value,
        "assigned_berth_id": v.assigned_berth_id,
        "requested_arrival": v.requested_arrival,
        "scheduled_departure": v.scheduled_departure,
        "priority": v.priority,
        "registered_at": v.registered_at,
    }


class VesselRegistry:
    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        vessel_id: int,
        *,
        name: str,
        owner: str,
        length: Decimal,
        beam: Decimal,
        draft: Decimal,
        cargo_capacity: Decimal,
        vessel_class: VesselClass,
        requested_arrival: int,
        priority: int,
        registered_at: int,
    ) -> Vessel:
        vessel = Vessel(
            id=vessel_id,
            name=name,
            owner=owner,
            length=length,
            beam=beam,
            draft=draft,
            cargo_capacity=cargo_capacity,
            vessel_class=vessel_class,
            status=VesselStatus.REGISTERED,
            requested_arrival=requested_arrival,
            priority=priority,
            registered_at=registered_at,
        )
        self.db.add(vessel)
        self.db.flush()
        return vessel

    def get(self, vessel_id: int) -> Optional[Vessel]:
        return self.db.get(Vessel, vessel_id)

    def require(self, vessel_id: int, *, lock: bool = False) -> Vessel:
        vessel = self.db.get(Vessel, vessel_id, with_for_update=lock)
        if vessel is None:
            raise NotFound(f"vessel {vessel_id} not found", vessel_id=vessel_id)
        return vessel

    def check_transition(self, vessel: Vessel, new_status: VesselStatus) -> None:
        if new_status not in VESSEL_TRANSITIONS[vessel.status]:
            raise InvalidStatus(
                f"vessel {vessel.id} cannot move from {vessel.status.value} to {new_status.value}",
                vessel_id=vessel.id,
                status=vessel.status.value,
            )

    def transition(self, vessel: Vessel, new_status: VesselStatus) -> None:
        self.check_transition(vessel, new_status)
        vessel.status = new_status
