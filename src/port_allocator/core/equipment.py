"""Equipment registry and allocator.

Tracks unit counts per equipment type. ``reserve`` hands one concrete unit
to an operation and ``release`` gives it back; availability always stays
within ``0 <= available <= total``.
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import EquipmentClass, Operation, OperationStatus, Role
from ..settings import Settings
from .auth import AuthorizationGate, require_role
from .clock import Clock
from .errors import CapacityExceeded, InvalidParameters, NotFound, ResourceOccupied
from .validation import whole_number

logger = logging.getLogger(__name__)


def normalise_type(equipment_type: Optional[str]) -> str:
    return "-".join((equipment_type or "").strip().lower().replace("_", " ").split())


def utilization(total: int, available: int) -> Decimal:
    if total <= 0:
        return Decimal("0.00")
    pct = Decimal(100) * Decimal(total - available) / Decimal(total)
    return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def equipment_dict(e: EquipmentClass, reserved: int = 0) -> Dict[str, Any]:
    return {
        "equipment_type": e.equipment_type,
        "total_units": e.total_units,
        "available_units": e.available_units,
        "maintenance_units": e.maintenance_units,
        "reserved_units": reserved,
        "utilization_rate": str(e.utilization_rate),
        "updated_at": e.updated_at,
    }


class EquipmentAllocator:
    def __init__(self, db: Session, *, gate: AuthorizationGate, clock: Clock, settings: Settings):
        self.db = db
        self.gate = gate
        self.clock = clock
        self.settings = settings

    def get(self, equipment_type: str) -> Optional[EquipmentClass]:
        return self.db.get(EquipmentClass, normalise_type(equipment_type))

    def require(self, equipment_type: str, *, lock: bool = False) -> EquipmentClass:
        key = normalise_type(equipment_type)
        record = self.db.get(EquipmentClass, key, with_for_update=lock)
        if record is None:
            raise NotFound(f"equipment type {key!r} not registered", equipment_type=key)
        return record

    def reserved_units(self, equipment_type: str) -> Set[int]:
        rows = self.db.execute(
            select(Operation.equipment_unit).where(
                Operation.equipment_type == normalise_type(equipment_type),
                Operation.status == OperationStatus.IN_PROGRESS,
            )
        ).scalars().all()
        return set(rows)

    def update_inventory(
        self,
        caller: str,
        equipment_type: str,
        total: int,
        available: int,
        maintenance_count: int = 0,
    ) -> Dict[str, Any]:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        key = normalise_type(equipment_type)
        if not key:
            raise InvalidParameters("equipment_type is required", field="equipment_type")
        total = whole_number("total", total)
        available = whole_number("available", available)
        maintenance_count = whole_number("maintenance_count", maintenance_count)
        if available > total:
            raise InvalidParameters("available units cannot exceed total units", field="available")
        if maintenance_count > total:
            raise InvalidParameters("maintenance units cannot exceed total units", field="maintenance_count")
        if total > self.settings.max_equipment_units:
            raise CapacityExceeded(
                f"total units {total} exceed the limit of {self.settings.max_equipment_units}",
                field="total",
            )
        reserved = len(self.reserved_units(key))
        if available > total - reserved:
            raise InvalidParameters(
                f"{reserved} unit(s) are held by running operations; at most {total - reserved} can be available",
                field="available",
            )

        now = self.clock.now()
        record = self.db.get(EquipmentClass, key, with_for_update=True)
        if record is None:
            record = EquipmentClass(equipment_type=key)
            self.db.add(record)
        record.total_units = total
        record.available_units = available
        record.maintenance_units = maintenance_count
        record.utilization_rate = utilization(total, available)
        record.updated_at = now
        record.updated_by = caller
        self.db.flush()
        logger.info("Equipment %s inventory total=%s available=%s", key, total, available)
        return equipment_dict(record, reserved)

    def reserve(self, equipment_type: str) -> int:
        """Take one unit out of availability; returns the unit number bound."""

        record = self.require(equipment_type, lock=True)
        if record.available_units <= 0:
            raise ResourceOccupied(
                f"no {record.equipment_type} units available", equipment_type=record.equipment_type
            )
        held = self.reserved_units(record.equipment_type)
        unit = next((n for n in range(1, record.total_units + 1) if n not in held), None)
        if unit is None:
            raise ResourceOccupied(
                f"every {record.equipment_type} unit is bound to an operation",
                equipment_type=record.equipment_type,
            )
        record.available_units -= 1
        record.utilization_rate = utilization(record.total_units, record.available_units)
        record.updated_at = self.clock.now()
        return unit

    def release(self, equipment_type: str) -> None:
        record = self.require(equipment_type, lock=True)
        if record.available_units + 1 > record.total_units:
            raise CapacityExceeded(
                f"{record.equipment_type} availability would exceed its {record.total_units} units",
                equipment_type=record.equipment_type,
            )
        record.available_units += 1
        record.utilization_rate = utilization(record.total_units, record.available_units)
        record.updated_at = self.clock.now()

    def status(self, equipment_type: str) -> Optional[Dict[str, Any]]:
        record = self.get(equipment_type)
        if record is None:
            return None
        return equipment_dict(record, len(self.reserved_units(record.equipment_type)))

    def all_status(self) -> List[Dict[str, Any]]:
        rows = self.db.execute(select(EquipmentClass).order_by(EquipmentClass.equipment_type)).scalars().all()
        return [equipment_dict(r, len(self.reserved_units(r.equipment_type))) for r in rows]
