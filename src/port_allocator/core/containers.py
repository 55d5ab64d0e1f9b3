"""Container registry: specs, current status/location and checkpoint history."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import CargoMovement, Container, ContainerStatus, Operation, OperationStatus
from .errors import AlreadyExists, InvalidStatus, NotFound


def container_dict(c: Container) -> Dict[str, Any]:
    return {
        "id": c.id,
        "owner": c.owner,
        "weight": str(c.weight),
        "cargo_type": c.cargo_type,
        "container_type": c.container_type,
        "size": c.size,
        "vessel_id": c.vessel_id,
        "location": c.location,
        "destination": c.destination,
        "status": c.status.value,
        "handling_priority": c.handling_priority,
        "registered_at": c.registered_at,
    }


def movement_dict(m: CargoMovement) -> Dict[str, Any]:
    return {
        "container_id": m.container_id,
        "checkpoint": m.checkpoint,
        "location": m.location,
        "status": m.status.value,
        "notes": m.notes,
        "recorded_at": m.recorded_at,
        "recorded_by": m.recorded_by,
    }


def parse_container_status(value: Any) -> ContainerStatus:
    try:
        if isinstance(value, ContainerStatus):
            return value
        return ContainerStatus(str(value).strip().lower().replace("_", "-"))
    except ValueError:
        raise InvalidStatus(f"unknown container status {value!r}", status=str(value))


class ContainerRegistry:
    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        container_id: int,
        *,
        owner: str,
        weight: Decimal,
        cargo_type: str,
        container_type: str,
        size: str,
        vessel_id: Optional[int],
        location: str,
        destination: str,
        handling_priority: int,
        registered_at: int,
    ) -> Container:
        container = Container(
            id=container_id,
            owner=owner,
            weight=weight,
            cargo_type=cargo_type,
            container_type=container_type,
            size=size,
            vessel_id=vessel_id,
            location=location,
            destination=destination,
            status=ContainerStatus.ARRIVING,
            handling_priority=handling_priority,
            registered_at=registered_at,
        )
        self.db.add(container)
        self.db.flush()
        return container

    def get(self, container_id: int) -> Optional[Container]:
        return self.db.get(Container, container_id)

    def require(self, container_id: int, *, lock: bool = False) -> Container:
        container = self.db.get(Container, container_id, with_for_update=lock)
        if container is None:
            raise NotFound(f"container {container_id} not found", container_id=container_id)
        return container

    def set_status(self, container: Container, status: ContainerStatus) -> None:
        container.status = parse_container_status(status)

    def active_operation(self, container_id: int) -> Optional[Operation]:
        return self.db.execute(
            select(Operation).where(
                Operation.container_id == container_id,
                Operation.status == OperationStatus.IN_PROGRESS,
            )
        ).scalars().first()

    def add_checkpoint(
        self,
        container: Container,
        *,
        checkpoint: str,
        location: str,
        status: ContainerStatus,
        notes: Optional[str],
        recorded_at: int,
        recorded_by: str,
    ) -> CargoMovement:
        if self.db.get(CargoMovement, (container.id, checkpoint)) is not None:
            raise AlreadyExists(
                f"checkpoint {checkpoint!r} already recorded for container {container.id}",
                container_id=container.id,
                checkpoint=checkpoint,
            )
        movement = CargoMovement(
            container_id=container.id,
            checkpoint=checkpoint,
            location=location,
            status=status,
            notes=notes,
            recorded_at=recorded_at,
            recorded_by=recorded_by,
        )
        self.db.add(movement)
        self.db.flush()
        return movement

    def movements(self, container_id: int) -> List[Dict[str, Any]]:
        rows = self.db.execute(
            select(CargoMovement)
            .where(CargoMovement.container_id == container_id)
            .order_by(CargoMovement.recorded_at, CargoMovement.checkpoint)
        ).scalars().all()
        return [movement_dict(m) for m in rows]
