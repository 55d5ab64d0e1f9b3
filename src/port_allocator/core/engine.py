"""Engine facade: the single logical sequencer in front of every registry.

Each command runs inside one database transaction while holding an
exclusive lock for every entity it touches, so either all of a command's
field updates land together or none do, and two commands on the same
vessel, berth, equipment type or operation never interleave. Locks are
taken in sorted key order. Keys that depend on mutable state (a vessel's
current berth, an operation's container) are read first, locked, then
re-checked inside the transaction.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from ..models import Berth, Container, Operation, Role, Schedule, Vessel
from ..settings import Settings, settings as default_settings
from .auth import AuthorizationGate, RoleTable, require_role
from .berths import berth_dict
from .clock import LogicalClock
from .containers import ContainerRegistry, container_dict
from .counters import BERTH_LOAD, QUEUE_POSITION
from .equipment import EquipmentAllocator, normalise_type
from .errors import PortError
from .metrics import CapacityMetrics
from .operations import CargoOperationCoordinator, operation_dict
from .records import CollaboratorRecords
from .scheduler import VesselBerthScheduler, schedule_dict
from .validation import whole_number
from .vessels import vessel_dict

logger = logging.getLogger(__name__)

T = TypeVar("T")
LockKey = Tuple[str, Hashable]


class EntityLocks:
    """One exclusive lock per (kind, id) entry, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[LockKey, threading.Lock] = {}

    def _lock_for(self, key: LockKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *keys: Optional[LockKey]) -> Iterator[None]:
        ordered = sorted({k for k in keys if k is not None}, key=lambda k: (k[0], str(k[1])))
        acquired: List[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def _counter(name: str) -> LockKey:
    return ("counter", name)


class PortEngine:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Optional[LogicalClock] = None,
        settings: Optional[Settings] = None,
        gate_factory: Optional[Callable[[Session], AuthorizationGate]] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.clock = clock or LogicalClock(self.settings.clock_start)
        self.gate_factory = gate_factory or (lambda db: RoleTable(db, self.settings.contract_owner))
        self.locks = EntityLocks()

    # ---------- plumbing ----------

    @contextmanager
    def _read(self) -> Iterator[Session]:
        with self.session_factory() as db:
            yield db

    def _scheduler(self, db: Session) -> VesselBerthScheduler:
        return VesselBerthScheduler(db, gate=self.gate_factory(db), clock=self.clock, settings=self.settings)

    def _coordinator(self, db: Session) -> CargoOperationCoordinator:
        return CargoOperationCoordinator(db, gate=self.gate_factory(db), clock=self.clock, settings=self.settings)

    def _metrics(self, db: Session) -> CapacityMetrics:
        return CapacityMetrics(db, gate=self.gate_factory(db), clock=self.clock, settings=self.settings)

    def _records(self, db: Session) -> CollaboratorRecords:
        return CollaboratorRecords(db, gate=self.gate_factory(db), clock=self.clock)

    def _command(
        self,
        name: str,
        keys: Sequence[Optional[LockKey]],
        fn: Callable[[Session], T],
        derive: Optional[Callable[[Session], Tuple[Optional[LockKey], ...]]] = None,
    ) -> T:
        try:
            while True:
                extra: Tuple[Optional[LockKey], ...] = ()
                if derive is not None:
                    with self._read() as db:
                        extra = derive(db)
                with self.locks.hold(*keys, *extra):
                    with self.session_factory() as db, db.begin():
                        if derive is not None and derive(db) != extra:
                            logger.debug("%s: lock set moved, retrying", name)
                            continue
                        return fn(db)
        except PortError as exc:
            logger.info("%s rejected: %s (%s)", name, exc.code, exc.message)
            raise

    # ---------- roles & clock ----------

    def grant_role(self, caller: str, principal: str, role: Role) -> bool:
        def run(db: Session) -> bool:
            RoleTable(db, self.settings.contract_owner).grant(caller, principal, Role(role), self.clock.now())
            return True
        return self._command("grant_role", [("role", principal)], run)

    def revoke_role(self, caller: str, principal: str, role: Role) -> bool:
        return self._command(
            "revoke_role",
            [("role", principal)],
            lambda db: RoleTable(db, self.settings.contract_owner).revoke(caller, principal, Role(role)),
        )

    def roles_of(self, principal: str) -> List[str]:
        with self._read() as db:
            return [r.value for r in RoleTable(db, self.settings.contract_owner).roles_of(principal)]

    def advance_clock(self, caller: str, ticks: Any = 1) -> int:
        with self._read() as db:
            require_role(self.gate_factory(db), caller, Role.CONTRACT_OWNER)
        ticks = whole_number("ticks", ticks)
        return self.clock.advance(ticks)

    # ---------- vessels & berths ----------

    def register_vessel(self, caller: str, **spec: Any) -> int:
        return self._command(
            "register_vessel",
            [_counter("vessel_id")],
            lambda db: self._scheduler(db).register_vessel(caller, **spec),
        )

    def register_berth(self, caller: str, **spec: Any) -> int:
        return self._command(
            "register_berth",
            [_counter("berth_id")],
            lambda db: self._scheduler(db).register_berth(caller, **spec),
        )

    def set_berth_operational(self, caller: str, berth_id: int, operational: bool) -> bool:
        return self._command(
            "set_berth_operational",
            [("berth", berth_id)],
            lambda db: self._scheduler(db).set_berth_operational(caller, berth_id, operational),
        )

    def assign_berth(self, caller: str, vessel_id: int, berth_id: int) -> bool:
        return self._command(
            "assign_berth",
            [("vessel", vessel_id), ("berth", berth_id), _counter(BERTH_LOAD)],
            lambda db: self._scheduler(db).assign_berth(caller, vessel_id, berth_id),
        )

    def schedule_departure(self, caller: str, vessel_id: int, departure_time: int) -> bool:
        return self._command(
            "schedule_departure",
            [("vessel", vessel_id)],
            lambda db: self._scheduler(db).schedule_departure(caller, vessel_id, departure_time),
        )

    def release_berth(self, caller: str, vessel_id: int) -> bool:
        def current_berth(db: Session) -> Tuple[Optional[LockKey], ...]:
            vessel = db.get(Vessel, vessel_id, populate_existing=True)
            berth_id = vessel.assigned_berth_id if vessel else None
            return (("berth", berth_id) if berth_id is not None else None,)

        return self._command(
            "release_berth",
            [("vessel", vessel_id), _counter(BERTH_LOAD)],
            lambda db: self._scheduler(db).release_berth(caller, vessel_id),
            derive=current_berth,
        )

    def add_to_queue(self, caller: str, vessel_id: int) -> int:
        return self._command(
            "add_to_queue",
            [("vessel", vessel_id), _counter(QUEUE_POSITION)],
            lambda db: self._scheduler(db).add_to_queue(caller, vessel_id),
        )

    def create_schedule(
        self, caller: str, vessel_id: int, berth_id: int, requested_arrival: int, requested_departure: int
    ) -> int:
        return self._command(
            "create_schedule",
            [("vessel", vessel_id), ("berth", berth_id), _counter("schedule_id")],
            lambda db: self._scheduler(db).create_schedule(
                caller, vessel_id, berth_id, requested_arrival, requested_departure
            ),
        )

    def _schedule_parties(self, schedule_id: int) -> Callable[[Session], Tuple[Optional[LockKey], ...]]:
        def parties(db: Session) -> Tuple[Optional[LockKey], ...]:
            schedule = db.get(Schedule, schedule_id)
            if schedule is None:
                return ()
            return (("vessel", schedule.vessel_id), ("berth", schedule.berth_id))
        return parties

    def record_arrival(self, caller: str, schedule_id: int) -> bool:
        return self._command(
            "record_arrival",
            [("schedule", schedule_id), _counter(BERTH_LOAD)],
            lambda db: self._scheduler(db).record_arrival(caller, schedule_id),
            derive=self._schedule_parties(schedule_id),
        )

    def record_departure(self, caller: str, schedule_id: int) -> bool:
        return self._command(
            "record_departure",
            [("schedule", schedule_id), _counter(BERTH_LOAD)],
            lambda db: self._scheduler(db).record_departure(caller, schedule_id),
            derive=self._schedule_parties(schedule_id),
        )

    # ---------- cargo ----------

    def register_container(self, caller: str, **spec: Any) -> int:
        return self._command(
            "register_container",
            [_counter("container_id")],
            lambda db: self._coordinator(db).register_container(caller, **spec),
        )

    def bind_container(self, caller: str, container_id: int, vessel_id: int) -> bool:
        return self._command(
            "bind_container",
            [("container", container_id)],
            lambda db: self._coordinator(db).bind_container(caller, container_id, vessel_id),
        )

    def track_cargo_movement(
        self,
        caller: str,
        container_id: int,
        checkpoint: str,
        location: str,
        status: Any,
        notes: Optional[str] = None,
    ) -> bool:
        return self._command(
            "track_cargo_movement",
            [("container", container_id)],
            lambda db: self._coordinator(db).track_cargo_movement(
                caller, container_id, checkpoint, location, status, notes
            ),
        )

    def update_equipment_inventory(
        self, caller: str, equipment_type: str, total: int, available: int, maintenance_count: int = 0
    ) -> Dict[str, Any]:
        return self._command(
            "update_equipment_inventory",
            [("equipment", normalise_type(equipment_type))],
            lambda db: self._coordinator(db).update_equipment_inventory(
                caller, equipment_type, total, available, maintenance_count
            ),
        )

    def create_operation(self, caller: str, operation_type: Any, container_id: int, equipment_type: str) -> int:
        return self._command(
            "create_operation",
            [("container", container_id), ("equipment", normalise_type(equipment_type)), _counter("operation_id")],
            lambda db: self._coordinator(db).create_operation(caller, operation_type, container_id, equipment_type),
        )

    def complete_operation(self, caller: str, operation_id: int) -> Any:
        def bound(db: Session) -> Tuple[Optional[LockKey], ...]:
            op = db.get(Operation, operation_id)
            if op is None:
                return ()
            return (("container", op.container_id), ("equipment", op.equipment_type))

        return self._command(
            "complete_operation",
            [("operation", operation_id)],
            lambda db: self._coordinator(db).complete_operation(caller, operation_id),
            derive=bound,
        )

    # ---------- metrics & collaborator records ----------

    def record_performance_metric(self, caller: str, metric_name: str, value: Any, target: Any) -> Dict[str, Any]:
        return self._command(
            "record_performance_metric",
            [("metric", (metric_name or "").strip().lower())],
            lambda db: self._metrics(db).record_performance_metric(caller, metric_name, value, target),
        )

    def record_customs_clearance(
        self, caller: str, container_id: int, declaration_ref: str, cleared: bool, notes: Optional[str] = None
    ) -> Dict[str, Any]:
        return self._command(
            "record_customs_clearance",
            [("customs", container_id)],
            lambda db: self._records(db).record_customs_clearance(
                caller, container_id, declaration_ref, cleared, notes
            ),
        )

    def log_transport(self, caller: str, container_id: int, mode: str, carrier: str, destination: str) -> int:
        return self._command(
            "log_transport",
            [_counter("transport_id")],
            lambda db: self._records(db).log_transport(caller, container_id, mode, carrier, destination),
        )

    # ---------- queries: return None instead of raising ----------

    def get_vessel(self, vessel_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            vessel = db.get(Vessel, vessel_id)
            return vessel_dict(vessel) if vessel else None

    def get_berth(self, berth_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            berth = db.get(Berth, berth_id)
            return berth_dict(berth) if berth else None

    def get_schedule(self, schedule_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            schedule = db.get(Schedule, schedule_id)
            return schedule_dict(schedule) if schedule else None

    def get_container(self, container_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            container = db.get(Container, container_id)
            return container_dict(container) if container else None

    def get_cargo_movements(self, container_id: int) -> List[Dict[str, Any]]:
        with self._read() as db:
            return ContainerRegistry(db).movements(container_id)

    def get_operation(self, operation_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            op = db.get(Operation, operation_id)
            return operation_dict(op) if op else None

    def get_equipment_status(self, equipment_type: str) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            return EquipmentAllocator(
                db, gate=self.gate_factory(db), clock=self.clock, settings=self.settings
            ).status(equipment_type)

    def get_equipment_utilization(self) -> List[Dict[str, Any]]:
        with self._read() as db:
            return self._metrics(db).equipment_utilization()

    def get_port_capacity(self) -> Dict[str, Any]:
        with self._read() as db:
            return self._metrics(db).port_capacity()

    def get_performance_metric(self, metric_name: str, period: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            return self._metrics(db).performance_metric(metric_name, period)

    def estimate_turnaround(self, schedule_id: int, cargo_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            return self._metrics(db).turnaround_estimate(schedule_id, cargo_type)

    def get_queue(self) -> List[Dict[str, Any]]:
        with self._read() as db:
            return self._scheduler(db).queue()

    def find_compatible_berths(self, vessel_id: int) -> Optional[List[Dict[str, Any]]]:
        with self._read() as db:
            if db.get(Vessel, vessel_id) is None:
                return None
            return self._scheduler(db).compatible_berths(vessel_id)

    def get_customs_clearance(self, container_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            return self._records(db).customs_clearance(container_id)

    def get_transport(self, transport_id: int) -> Optional[Dict[str, Any]]:
        with self._read() as db:
            return self._records(db).transport(transport_id)
