# src/port_allocator/api/routes.py
"""
Command and query routes for the allocation engine.

Notes:
- The caller identity travels in the X-Caller-Id header; authorization is
  decided by the engine, not here.
- Commands answer with the new id or {"ok": true}; typed engine failures are
  turned into JSON errors by the handler registered in main.py.
- Lookups answer 404 when the entity does not exist.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from ..core.engine import PortEngine
from ..db import SessionLocal
from ..models import OperationType, Role, VesselClass

logger = logging.getLogger("port-allocator")

router = APIRouter(prefix="/api/v1", tags=["Port Allocation"])

# ============ Pydantic Models ============

class VesselIn(BaseModel):
    name: str = Field(..., example="EVER GIVEN")
    length: Decimal = Field(..., example=200)
    beam: Decimal = Field(..., example=30)
    draft: Decimal = Field(..., example=10)
    cargo_capacity: Decimal = Field(..., example=5000)
    vessel_class: VesselClass = Field(VesselClass.STANDARD, example="cargo")
    requested_arrival: int = Field(..., ge=0, example=12)


class BerthIn(BaseModel):
    name: str = Field(..., example="Pier 400 / B1")
    max_length: Decimal = Field(..., example=250)
    max_beam: Decimal = Field(..., example=35)
    max_draft: Decimal = Field(..., example=12)
    supported_class: Optional[VesselClass] = Field(None, description="Restrict to one vessel class")
    crane_capacity: int = Field(0, ge=0, example=4)
    hourly_rate: Decimal = Field(Decimal("0"), example="850.00")


class AssignIn(BaseModel):
    vessel_id: int


class OperationalIn(BaseModel):
    operational: bool


class DepartureIn(BaseModel):
    departure_time: int = Field(..., example=240)


class ScheduleIn(BaseModel):
    vessel_id: int
    berth_id: int
    requested_arrival: int = Field(..., example=24)
    requested_departure: int = Field(..., example=72)


class ContainerIn(BaseModel):
    weight: Decimal = Field(..., example=1000)
    cargo_type: str = Field("general", example="hazardous")
    container_type: str = Field("dry", example="reefer")
    size: str = Field("40ft", example="40ft")
    location: str = Field("", example="Gate A")
    destination: str = Field("", example="Rail ramp 3")
    vessel_id: Optional[int] = None


class BindIn(BaseModel):
    vessel_id: int


class MovementIn(BaseModel):
    checkpoint: str = Field(..., example="gate-in")
    location: str = Field(..., example="Yard block C4")
    status: str = Field(..., example="in-yard")
    notes: Optional[str] = None


class InventoryIn(BaseModel):
    total: int = Field(..., ge=0, example=8)
    available: int = Field(..., ge=0, example=6)
    maintenance_count: int = Field(0, ge=0, example=1)


class OperationIn(BaseModel):
    operation_type: str = Field(..., example="unloading", description="loading | unloading | transfer")
    container_id: int
    equipment_type: str = Field(..., example="crane")


class MetricIn(BaseModel):
    metric_name: str = Field(..., example="moves_per_hour")
    value: Decimal = Field(..., example=28)
    target: Decimal = Field(..., example=30)


class CustomsIn(BaseModel):
    declaration_ref: str = Field(..., example="CBP-7512-0042")
    cleared: bool = False
    notes: Optional[str] = None


class TransportIn(BaseModel):
    container_id: int
    mode: str = Field(..., example="rail")
    carrier: str = Field("", example="BNSF")
    destination: str = Field("", example="Chicago IL")


class RoleIn(BaseModel):
    principal: str = Field(..., example="ops-desk")
    role: Role = Field(..., example="port-operator")


class AdvanceIn(BaseModel):
    ticks: int = Field(1, ge=0, example=1)


# ============ Dependencies ============

@lru_cache(maxsize=1)
def get_engine() -> PortEngine:
    return PortEngine(SessionLocal)


def get_caller(x_caller_id: str = Header(..., alias="X-Caller-Id")) -> str:
    caller = x_caller_id.strip()
    if not caller:
        raise HTTPException(status_code=401, detail="X-Caller-Id header is empty")
    return caller


def _found(value: Any, what: str) -> Any:
    if value is None:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return value


# ============ Vessels ============

@router.post("/vessels", status_code=201)
def register_vessel(body: VesselIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    vessel_id = engine.register_vessel(caller, **body.model_dump())
    return {"vessel_id": vessel_id}


@router.get("/vessels/{vessel_id}")
def get_vessel(vessel_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_vessel(vessel_id), f"Vessel {vessel_id}")


@router.get("/vessels/{vessel_id}/compatible-berths")
def compatible_berths(vessel_id: int, engine: PortEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    """Free berths this vessel fits, tightest envelope first."""
    return _found(engine.find_compatible_berths(vessel_id), f"Vessel {vessel_id}")


@router.post("/vessels/{vessel_id}/queue")
def add_to_queue(vessel_id: int, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"position": engine.add_to_queue(caller, vessel_id)}


@router.post("/vessels/{vessel_id}/departure")
def schedule_departure(
    vessel_id: int,
    body: DepartureIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
):
    return {"ok": engine.schedule_departure(caller, vessel_id, body.departure_time)}


@router.post("/vessels/{vessel_id}/release")
def release_berth(vessel_id: int, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"ok": engine.release_berth(caller, vessel_id)}


@router.get("/queue")
def get_queue(engine: PortEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    return engine.get_queue()


# ============ Berths ============

@router.post("/berths", status_code=201)
def register_berth(body: BerthIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    berth_id = engine.register_berth(caller, **body.model_dump())
    return {"berth_id": berth_id}


@router.get("/berths/{berth_id}")
def get_berth(berth_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_berth(berth_id), f"Berth {berth_id}")


@router.post("/berths/{berth_id}/assign")
def assign_berth(
    berth_id: int,
    body: AssignIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
):
    return {"ok": engine.assign_berth(caller, body.vessel_id, berth_id)}


@router.post("/berths/{berth_id}/operational")
def set_berth_operational(
    berth_id: int,
    body: OperationalIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
):
    return {"ok": engine.set_berth_operational(caller, berth_id, body.operational)}


# ============ Schedules ============

@router.post("/schedules", status_code=201)
def create_schedule(body: ScheduleIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    schedule_id = engine.create_schedule(
        caller, body.vessel_id, body.berth_id, body.requested_arrival, body.requested_departure
    )
    return {"schedule_id": schedule_id}


@router.get("/schedules/{schedule_id}")
def get_schedule(schedule_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_schedule(schedule_id), f"Schedule {schedule_id}")


@router.post("/schedules/{schedule_id}/arrival")
def record_arrival(schedule_id: int, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"ok": engine.record_arrival(caller, schedule_id)}


@router.post("/schedules/{schedule_id}/departure")
def record_departure(schedule_id: int, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"ok": engine.record_departure(caller, schedule_id)}


@router.get("/schedules/{schedule_id}/turnaround")
def turnaround(
    schedule_id: int,
    cargo_type: str = Query("general", description="container | bulk | liquid | general"),
    engine: PortEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return _found(engine.estimate_turnaround(schedule_id, cargo_type), f"Schedule {schedule_id}")


# ============ Containers ============

@router.post("/containers", status_code=201)
def register_container(body: ContainerIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    container_id = engine.register_container(caller, **body.model_dump())
    return {"container_id": container_id}


@router.get("/containers/{container_id}")
def get_container(container_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_container(container_id), f"Container {container_id}")


@router.post("/containers/{container_id}/vessel")
def bind_container(
    container_id: int,
    body: BindIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
):
    return {"ok": engine.bind_container(caller, container_id, body.vessel_id)}


@router.post("/containers/{container_id}/movements", status_code=201)
def track_cargo_movement(
    container_id: int,
    body: MovementIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
):
    ok = engine.track_cargo_movement(caller, container_id, body.checkpoint, body.location, body.status, body.notes)
    return {"ok": ok}


@router.get("/containers/{container_id}/movements")
def cargo_movements(container_id: int, engine: PortEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    _found(engine.get_container(container_id), f"Container {container_id}")
    return engine.get_cargo_movements(container_id)


@router.post("/containers/{container_id}/customs")
def record_customs_clearance(
    container_id: int,
    body: CustomsIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.record_customs_clearance(caller, container_id, body.declaration_ref, body.cleared, body.notes)


@router.get("/containers/{container_id}/customs")
def get_customs_clearance(container_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_customs_clearance(container_id), f"Clearance for container {container_id}")


@router.post("/transports", status_code=201)
def log_transport(body: TransportIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    transport_id = engine.log_transport(caller, body.container_id, body.mode, body.carrier, body.destination)
    return {"transport_id": transport_id}


@router.get("/transports/{transport_id}")
def get_transport(transport_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_transport(transport_id), f"Transport {transport_id}")


# ============ Equipment & operations ============

@router.put("/equipment/{equipment_type}")
def update_equipment_inventory(
    equipment_type: str,
    body: InventoryIn,
    caller: str = Depends(get_caller),
    engine: PortEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.update_equipment_inventory(
        caller, equipment_type, body.total, body.available, body.maintenance_count
    )


@router.get("/equipment")
def equipment_utilization(engine: PortEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    return engine.get_equipment_utilization()


@router.get("/equipment/{equipment_type}")
def get_equipment_status(equipment_type: str, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_equipment_status(equipment_type), f"Equipment type {equipment_type}")


@router.post("/operations", status_code=201)
def create_operation(body: OperationIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    operation_id = engine.create_operation(caller, body.operation_type, body.container_id, body.equipment_type)
    return {"operation_id": operation_id}


@router.get("/operations/{operation_id}")
def get_operation(operation_id: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_operation(operation_id), f"Operation {operation_id}")


@router.post("/operations/{operation_id}/complete")
def complete_operation(operation_id: int, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    score = engine.complete_operation(caller, operation_id)
    return {"ok": True, "efficiency_score": str(score)}


@router.get("/operation-types")
def operation_types() -> List[str]:
    return [t.value for t in OperationType]


# ============ Capacity & metrics ============

@router.get("/capacity")
def get_port_capacity(engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.get_port_capacity()


@router.post("/metrics", status_code=201)
def record_performance_metric(
    body: MetricIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)
) -> Dict[str, Any]:
    return engine.record_performance_metric(caller, body.metric_name, body.value, body.target)


@router.get("/metrics/{metric_name}/{period}")
def get_performance_metric(metric_name: str, period: int, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _found(engine.get_performance_metric(metric_name, period), f"Metric {metric_name}@{period}")


# ============ Roles & clock ============

@router.post("/roles")
def grant_role(body: RoleIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"ok": engine.grant_role(caller, body.principal, body.role)}


@router.post("/roles/revoke")
def revoke_role(body: RoleIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"ok": engine.revoke_role(caller, body.principal, body.role)}


@router.get("/roles/{principal}")
def roles_of(principal: str, engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    return {"principal": principal, "roles": engine.roles_of(principal)}


@router.get("/clock")
def get_clock(engine: PortEngine = Depends(get_engine)) -> Dict[str, int]:
    return {"now": engine.clock.now()}


@router.post("/clock/advance")
def advance_clock(body: AdvanceIn, caller: str = Depends(get_caller), engine: PortEngine = Depends(get_engine)):
    return {"now": engine.advance_clock(caller, body.ticks)}
