from __future__ import annotations
from typing import Optional
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Boolean, Numeric, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy import Enum as SAEnum


class VesselClass(str, Enum):
    STANDARD = "standard"
    CARGO = "cargo"
    CONTAINER = "container"
    TANKER = "tanker"
    PASSENGER = "passenger"
    EMERGENCY = "emergency"


class VesselStatus(str, Enum):
    REGISTERED = "registered"
    QUEUED = "queued"
    DOCKED = "docked"
    SCHEDULED_DEPARTURE = "scheduled-departure"
    DEPARTED = "departed"


class ScheduleStatus(str, Enum):
    SCHEDULED = "scheduled"
    ARRIVED = "arrived"
    COMPLETED = "completed"


class ContainerStatus(str, Enum):
    ARRIVING = "arriving"
    UNLOADING = "unloading"
    IN_YARD = "in-yard"
    LOADING = "loading"
    LOADED = "loaded"
    DEPARTED = "departed"
    IN_TRANSIT = "in-transit"
    TRANSFERRED = "transferred"


class OperationType(str, Enum):
    LOADING = "loading"
    UNLOADING = "unloading"
    TRANSFER = "transfer"


class OperationStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Role(str, Enum):
    CONTRACT_OWNER = "contract-owner"
    PORT_OPERATOR = "port-operator"
    HANDLER = "authorized-handler"
    CUSTOMS_OFFICER = "customs-officer"


def _enum(enum_cls: type[Enum]) -> SAEnum:
    # Store the hyphenated values, not the member names.
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    pass


class Counter(Base):
    """Named monotonic counters: id sequences, berth load, queue position."""

    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(48), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, default=0)


class RoleAssignment(Base):
    __tablename__ = "role_assignments"
    __table_args__ = (UniqueConstraint("principal", "role"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    principal: Mapped[str] = mapped_column(String(128), index=True)
    role: Mapped[Role] = mapped_column(_enum(Role))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    granted_by: Mapped[str] = mapped_column(String(128))
    granted_at: Mapped[int] = mapped_column(Integer)


class Vessel(Base):
    __tablename__ = "vessels"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(120))
    owner: Mapped[str] = mapped_column(String(128), index=True)
    length: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    beam: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    draft: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    cargo_capacity: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    vessel_class: Mapped[VesselClass] = mapped_column(_enum(VesselClass))
    status: Mapped[VesselStatus] = mapped_column(_enum(VesselStatus), default=VesselStatus.REGISTERED)
    # Weak reference: berth id lookup key, not ownership.
    assigned_berth_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    requested_arrival: Mapped[int] = mapped_column(Integer)
    scheduled_departure: Mapped[Optional[int]] = mapped_column(Integer)
    priority: Mapped[int] = mapped_column(Integer)
    registered_at: Mapped[int] = mapped_column(Integer)


class Berth(Base):
    __tablename__ = "berths"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(120))
    max_length: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    max_beam: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    max_draft: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    supported_class: Mapped[Optional[VesselClass]] = mapped_column(_enum(VesselClass))  # None = any class
    crane_capacity: Mapped[int] = mapped_column(Integer, default=0)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    operational: Mapped[bool] = mapped_column(Boolean, default=True)
    occupied: Mapped[bool] = mapped_column(Boolean, default=False)
    current_vessel_id: Mapped[Optional[int]] = mapped_column(Integer)
    created_by: Mapped[str] = mapped_column(String(128))


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    vessel_id: Mapped[int] = mapped_column(ForeignKey("vessels.id"), index=True)
    berth_id: Mapped[int] = mapped_column(ForeignKey("berths.id"), index=True)
    requested_arrival: Mapped[int] = mapped_column(Integer)
    requested_departure: Mapped[int] = mapped_column(Integer)
    estimated_duration: Mapped[int] = mapped_column(Integer)
    actual_arrival: Mapped[Optional[int]] = mapped_column(Integer)
    actual_departure: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[ScheduleStatus] = mapped_column(_enum(ScheduleStatus), default=ScheduleStatus.SCHEDULED)
    priority: Mapped[int] = mapped_column(Integer)
    created_by: Mapped[str] = mapped_column(String(128))


class QueueEntry(Base):
    __tablename__ = "vessel_queue"

    position: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    vessel_id: Mapped[int] = mapped_column(ForeignKey("vessels.id"), index=True)
    priority: Mapped[int] = mapped_column(Integer)
    estimated_wait: Mapped[int] = mapped_column(Integer)
    enqueued_at: Mapped[int] = mapped_column(Integer)


class EquipmentClass(Base):
    __tablename__ = "equipment"

    equipment_type: Mapped[str] = mapped_column(String(48), primary_key=True)
    total_units: Mapped[int] = mapped_column(Integer)
    available_units: Mapped[int] = mapped_column(Integer)
    maintenance_units: Mapped[int] = mapped_column(Integer, default=0)
    utilization_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"))
    updated_at: Mapped[int] = mapped_column(Integer)
    updated_by: Mapped[str] = mapped_column(String(128))


class Container(Base):
    __tablename__ = "containers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    owner: Mapped[str] = mapped_column(String(128), index=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    cargo_type: Mapped[str] = mapped_column(String(48))
    container_type: Mapped[str] = mapped_column(String(48))
    size: Mapped[str] = mapped_column(String(16))
    vessel_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vessels.id"), index=True)
    location: Mapped[str] = mapped_column(String(120))
    destination: Mapped[str] = mapped_column(String(120))
    status: Mapped[ContainerStatus] = mapped_column(_enum(ContainerStatus), default=ContainerStatus.ARRIVING)
    handling_priority: Mapped[int] = mapped_column(Integer)
    registered_at: Mapped[int] = mapped_column(Integer)


class CargoMovement(Base):
    """Immutable checkpoint record; one row per (container, checkpoint label)."""

    __tablename__ = "cargo_movements"

    container_id: Mapped[int] = mapped_column(ForeignKey("containers.id"), primary_key=True)
    checkpoint: Mapped[str] = mapped_column(String(64), primary_key=True)
    location: Mapped[str] = mapped_column(String(120))
    status: Mapped[ContainerStatus] = mapped_column(_enum(ContainerStatus))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    recorded_at: Mapped[int] = mapped_column(Integer)
    recorded_by: Mapped[str] = mapped_column(String(128))


class Operation(Base):
    __tablename__ = "operations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    operation_type: Mapped[OperationType] = mapped_column(_enum(OperationType))
    container_id: Mapped[int] = mapped_column(ForeignKey("containers.id"), index=True)
    vessel_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vessels.id"))
    equipment_type: Mapped[str] = mapped_column(ForeignKey("equipment.equipment_type"), index=True)
    equipment_unit: Mapped[int] = mapped_column(Integer)
    operator: Mapped[str] = mapped_column(String(128))
    start_time: Mapped[int] = mapped_column(Integer)
    end_time: Mapped[Optional[int]] = mapped_column(Integer)
    duration: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[OperationStatus] = mapped_column(_enum(OperationStatus), default=OperationStatus.IN_PROGRESS)
    efficiency_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))


class PerformanceMetric(Base):
    __tablename__ = "performance_metrics"

    metric_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    period: Mapped[int] = mapped_column(Integer, primary_key=True)
    value: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    target: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    efficiency_ratio: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    recorded_by: Mapped[str] = mapped_column(String(128))


class CustomsClearance(Base):
    __tablename__ = "customs_clearances"

    container_id: Mapped[int] = mapped_column(ForeignKey("containers.id"), primary_key=True)
    officer: Mapped[str] = mapped_column(String(128))
    declaration_ref: Mapped[str] = mapped_column(String(64))
    cleared: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    recorded_at: Mapped[int] = mapped_column(Integer)


class TransportLog(Base):
    __tablename__ = "transport_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    container_id: Mapped[int] = mapped_column(ForeignKey("containers.id"), index=True)
    mode: Mapped[str] = mapped_column(String(24))  # truck/rail/barge
    carrier: Mapped[str] = mapped_column(String(120))
    destination: Mapped[str] = mapped_column(String(120))
    logged_by: Mapped[str] = mapped_column(String(128))
    logged_at: Mapped[int] = mapped_column(Integer)
