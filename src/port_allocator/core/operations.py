"""Cargo operation coordinator.

Binds a container to one equipment unit for a loading, unloading or
transfer operation, drives the operation from in-progress to completed and
gives the unit back on completion. Also owns container registration and
checkpoint tracking, since both feed the container's handling status.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional

from sqlalchemy.orm import Session

from ..models import ContainerStatus, Operation, OperationStatus, OperationType, Vessel
from ..rules.efficiency import efficiency_score
from ..rules.priority import handling_priority
from ..settings import Settings
from .auth import HANDLING_ROLES, AuthorizationGate, require_owner_or_role
from .clock import Clock
from .containers import ContainerRegistry, parse_container_status
from .counters import CounterService
from .equipment import EquipmentAllocator, normalise_type
from .errors import (
    AlreadyAssigned,
    InvalidOperation,
    InvalidParameters,
    InvalidStatus,
    NotFound,
    Unauthorized,
)
from .validation import positive_decimal

logger = logging.getLogger(__name__)

OPERATION_TRANSITIONS: Mapping[OperationStatus, FrozenSet[OperationStatus]] = {
    OperationStatus.IN_PROGRESS: frozenset({OperationStatus.COMPLETED}),
    OperationStatus.COMPLETED: frozenset(),
}

# Container status while the operation runs, and once it completes.
STATUS_DURING: Mapping[OperationType, ContainerStatus] = {
    OperationType.LOADING: ContainerStatus.LOADING,
    OperationType.UNLOADING: ContainerStatus.UNLOADING,
    OperationType.TRANSFER: ContainerStatus.IN_TRANSIT,
}
STATUS_AFTER: Mapping[OperationType, ContainerStatus] = {
    OperationType.UNLOADING: ContainerStatus.IN_YARD,
    OperationType.LOADING: ContainerStatus.LOADED,
}


def operation_dict(op: Operation) -> Dict[str, Any]:
    return {
        "id": op.id,
        "operation_type": op.operation_type.value,
        "container_id": op.container_id,
        "vessel_id": op.vessel_id,
        "equipment_type": op.equipment_type,
        "equipment_unit": op.equipment_unit,
        "operator": op.operator,
        "start_time": op.start_time,
        "end_time": op.end_time,
        "duration": op.duration,
        "status": op.status.value,
        "efficiency_score": str(op.efficiency_score) if op.efficiency_score is not None else None,
    }


def parse_operation_type(value: Any) -> OperationType:
    try:
        if isinstance(value, OperationType):
            return value
        return OperationType(str(value).strip().lower())
    except ValueError:
        raise InvalidOperation(
            f"operation type must be loading, unloading or transfer, got {value!r}",
            operation_type=str(value),
        )


class CargoOperationCoordinator:
    def __init__(self, db: Session, *, gate: AuthorizationGate, clock: Clock, settings: Settings):
        self.db = db
        self.gate = gate
        self.clock = clock
        self.settings = settings
        self.containers = ContainerRegistry(db)
        self.equipment = EquipmentAllocator(db, gate=gate, clock=clock, settings=settings)
        self.counters = CounterService(db)

    def _require_vessel(self, vessel_id: int) -> Vessel:
        vessel = self.db.get(Vessel, vessel_id)
        if vessel is None:
            raise NotFound(f"vessel {vessel_id} not found", vessel_id=vessel_id)
        return vessel

    # ---------- containers ----------

    def register_container(
        self,
        caller: str,
        *,
        weight: Any,
        cargo_type: str,
        container_type: str = "dry",
        size: str = "40ft",
        location: str = "",
        destination: str = "",
        vessel_id: Optional[int] = None,
    ) -> int:
        w = positive_decimal("weight", weight, digits=12)
        if w >= self.settings.max_container_weight:
            raise InvalidParameters(
                f"weight must be below {self.settings.max_container_weight}", field="weight"
            )
        if vessel_id is not None:
            self._require_vessel(vessel_id)

        priority = handling_priority(cargo_type, container_type)
        container_id = self.counters.next_id("container")
        self.containers.add(
            container_id,
            owner=caller,
            weight=w,
            cargo_type=(cargo_type or "general").strip().lower(),
            container_type=(container_type or "dry").strip().lower(),
            size=(size or "").strip(),
            vessel_id=vessel_id,
            location=location or "",
            destination=destination or "",
            handling_priority=priority,
            registered_at=self.clock.now(),
        )
        logger.info("Registered container %s cargo=%s priority=%s", container_id, cargo_type, priority)
        return container_id

    def bind_container(self, caller: str, container_id: int, vessel_id: int) -> bool:
        container = self.containers.require(container_id, lock=True)
        require_owner_or_role(self.gate, caller, container.owner, *HANDLING_ROLES, resource_id=container_id)
        self._require_vessel(vessel_id)
        if self.containers.active_operation(container_id) is not None:
            raise InvalidStatus(
                f"container {container_id} is under an in-progress operation", container_id=container_id
            )
        container.vessel_id = vessel_id
        return True

    def track_cargo_movement(
        self,
        caller: str,
        container_id: int,
        checkpoint: str,
        location: str,
        status: Any,
        notes: Optional[str] = None,
    ) -> bool:
        container = self.containers.require(container_id, lock=True)
        require_owner_or_role(self.gate, caller, container.owner, *HANDLING_ROLES, resource_id=container_id)
        new_status = parse_container_status(status)
        label = (checkpoint or "").strip()
        if not label:
            raise InvalidParameters("checkpoint label is required", field="checkpoint")
        # An in-progress operation owns the container's status until it ends.
        running = self.containers.active_operation(container_id)
        if running is not None and new_status != container.status:
            raise InvalidStatus(
                f"container {container_id} status is held by operation {running.id}",
                container_id=container_id,
                operation_id=running.id,
            )

        self.containers.add_checkpoint(
            container,
            checkpoint=label,
            location=location or "",
            status=new_status,
            notes=notes,
            recorded_at=self.clock.now(),
            recorded_by=caller,
        )
        container.location = location or container.location
        self.containers.set_status(container, new_status)
        return True

    # ---------- operations ----------

    def create_operation(self, caller: str, operation_type: Any, container_id: int, equipment_type: str) -> int:
        op_type = parse_operation_type(operation_type)
        container = self.containers.require(container_id, lock=True)
        require_owner_or_role(self.gate, caller, container.owner, *HANDLING_ROLES, resource_id=container_id)
        running = self.containers.active_operation(container_id)
        if running is not None:
            raise AlreadyAssigned(
                f"container {container_id} is already held by operation {running.id}",
                container_id=container_id,
                operation_id=running.id,
            )

        unit = self.equipment.reserve(equipment_type)
        now = self.clock.now()
        operation_id = self.counters.next_id("operation")
        self.db.add(
            Operation(
                id=operation_id,
                operation_type=op_type,
                container_id=container.id,
                vessel_id=container.vessel_id,
                equipment_type=normalise_type(equipment_type),
                equipment_unit=unit,
                operator=caller,
                start_time=now,
                status=OperationStatus.IN_PROGRESS,
            )
        )
        self.containers.set_status(container, STATUS_DURING[op_type])
        self.db.flush()
        logger.info(
            "Operation %s %s container=%s unit=%s-%s", operation_id, op_type.value, container_id,
            normalise_type(equipment_type), unit,
        )
        return operation_id

    def require_operation(self, operation_id: int, *, lock: bool = False) -> Operation:
        op = self.db.get(Operation, operation_id, with_for_update=lock)
        if op is None:
            raise NotFound(f"operation {operation_id} not found", operation_id=operation_id)
        return op

    def complete_operation(self, caller: str, operation_id: int) -> Decimal:
        op = self.require_operation(operation_id, lock=True)
        if caller != op.operator:
            raise Unauthorized(
                f"only {op.operator!r} may complete operation {operation_id}", operation_id=operation_id
            )
        if OperationStatus.COMPLETED not in OPERATION_TRANSITIONS[op.status]:
            raise InvalidStatus(
                f"operation {operation_id} is {op.status.value}", operation_id=operation_id, status=op.status.value
            )
        container = self.containers.require(op.container_id, lock=True)

        now = self.clock.now()
        duration = now - op.start_time
        score = efficiency_score(op.operation_type, duration)
        self.equipment.release(op.equipment_type)

        op.end_time = now
        op.duration = duration
        op.efficiency_score = score
        op.status = OperationStatus.COMPLETED
        self.containers.set_status(container, STATUS_AFTER.get(op.operation_type, ContainerStatus.TRANSFERRED))
        logger.info("Operation %s completed duration=%s efficiency=%s", operation_id, duration, score)
        return score

    def update_equipment_inventory(
        self, caller: str, equipment_type: str, total: int, available: int, maintenance_count: int = 0
    ) -> Dict[str, Any]:
        return self.equipment.update_inventory(caller, equipment_type, total, available, maintenance_count)
