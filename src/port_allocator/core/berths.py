"""Berth registry: envelope limits, occupancy and the fit predicate."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Berth, Vessel, VesselClass
from .errors import NotFound


def berth_dict(b: Berth) -> Dict[str, Any]:
    return {
        "id": b.id,
        "name": b.name,
        "max_length": str(b.max_length),
        "max_beam": str(b.max_beam),
        "max_draft": str(b.max_draft),
        "supported_class": b.supported_class.value if b.supported_class else None,
        "crane_capacity": b.crane_capacity,
        "hourly_rate": str(b.hourly_rate),
        "operational": b.operational,
        "occupied": b.occupied,
        "current_vessel_id": b.current_vessel_id,
    }


def oversize_dimensions(vessel: Vessel, berth: Berth) -> List[str]:
    """Dimensions on which the vessel exceeds the berth; empty when it fits."""

    checks = (
        ("length", vessel.length, berth.max_length),
        ("beam", vessel.beam, berth.max_beam),
        ("draft", vessel.draft, berth.max_draft),
    )
    return [name for name, have, limit in checks if Decimal(have) > Decimal(limit)]


def fits(vessel: Vessel, berth: Berth) -> bool:
    return not oversize_dimensions(vessel, berth)


class BerthRegistry:
    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        berth_id: int,
        *,
        name: str,
        max_length: Decimal,
        max_beam: Decimal,
        max_draft: Decimal,
        supported_class: Optional[VesselClass],
        crane_capacity: int,
        hourly_rate: Decimal,
        created_by: str,
    ) -> Berth:
        berth = Berth(
            id=berth_id,
            name=name,
            max_length=max_length,
            max_beam=max_beam,
            max_draft=max_draft,
            supported_class=supported_class,
            crane_capacity=crane_capacity,
            hourly_rate=hourly_rate,
            operational=True,
            occupied=False,
            current_vessel_id=None,
            created_by=created_by,
        )
        self.db.add(berth)
        self.db.flush()
        return berth

    def get(self, berth_id: int) -> Optional[Berth]:
        return self.db.get(Berth, berth_id)

    def require(self, berth_id: int, *, lock: bool = False) -> Berth:
        berth = self.db.get(Berth, berth_id, with_for_update=lock)
        if berth is None:
            raise NotFound(f"berth {berth_id} not found", berth_id=berth_id)
        return berth

    def occupy(self, berth: Berth, vessel_id: int) -> None:
        berth.occupied = True
        berth.current_vessel_id = vessel_id

    def vacate(self, berth: Berth) -> None:
        berth.occupied = False
        berth.current_vessel_id = None

    def operational_count(self) -> int:
        return self.db.execute(
            select(func.count()).select_from(Berth).where(Berth.operational.is_(True))
        ).scalar_one()

    def occupied_count(self) -> int:
        return self.db.execute(
            select(func.count()).select_from(Berth).where(Berth.occupied.is_(True))
        ).scalar_one()

    def compatible_with(self, vessel: Vessel) -> List[Berth]:
        """Free, operational berths the vessel fits, tightest envelope first."""

        rows = self.db.execute(
            select(Berth)
            .where(Berth.operational.is_(True), Berth.occupied.is_(False))
            .order_by(Berth.max_length, Berth.max_beam, Berth.max_draft, Berth.id)
        ).scalars().all()
        return [
            b for b in rows
            if fits(vessel, b) and (b.supported_class is None or b.supported_class == vessel.vessel_class)
        ]
