"""Vessel-berth scheduler.

Registers vessels and berths, binds a vessel to a berth, keeps the berth
queue and drives both the vessel and the schedule state machines from
arrival through departure.

A berth is held either by direct assignment or by a schedule whose window
covers the current logical time. Recording a schedule's arrival docks its
vessel through the same path as a direct assignment, and recording its
departure releases the berth again.

All checks run before the first mutation; callers wrap each method in one
transaction (see ``core.engine``).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import (
    Berth,
    QueueEntry,
    Role,
    Schedule,
    ScheduleStatus,
    Vessel,
    VesselClass,
    VesselStatus,
)
from ..rules.priority import queue_wait, vessel_priority
from ..settings import Settings
from .auth import AuthorizationGate, require_owner_or_role, require_role
from .berths import BerthRegistry, berth_dict, oversize_dimensions
from .clock import Clock
from .counters import BERTH_LOAD, QUEUE_POSITION, CounterService
from .errors import (
    AlreadyAssigned,
    AlreadyExists,
    BerthOccupied,
    InvalidParameters,
    InvalidStatus,
    NotFound,
    ResourceOccupied,
    VesselTooLarge,
)
from .validation import positive_decimal, whole_number
from .vessels import VesselRegistry

logger = logging.getLogger(__name__)

SCHEDULE_TRANSITIONS: Mapping[ScheduleStatus, FrozenSet[ScheduleStatus]] = {
    ScheduleStatus.SCHEDULED: frozenset({ScheduleStatus.ARRIVED}),
    ScheduleStatus.ARRIVED: frozenset({ScheduleStatus.COMPLETED}),
    ScheduleStatus.COMPLETED: frozenset(),
}

# Vessels in these states may still be given a berth.
_ASSIGNABLE = (VesselStatus.REGISTERED, VesselStatus.QUEUED)


def schedule_dict(s: Schedule) -> Dict[str, Any]:
    return {
        "id": s.id,
        "vessel_id": s.vessel_id,
        "berth_id": s.berth_id,
        "requested_arrival": s.requested_arrival,
        "requested_departure": s.requested_departure,
        "estimated_duration": s.estimated_duration,
        "actual_arrival": s.actual_arrival,
        "actual_departure": s.actual_departure,
        "status": s.status.value,
        "priority": s.priority,
    }


def queue_entry_dict(q: QueueEntry) -> Dict[str, Any]:
    return {
        "position": q.position,
        "vessel_id": q.vessel_id,
        "priority": q.priority,
        "estimated_wait": q.estimated_wait,
        "enqueued_at": q.enqueued_at,
    }


def parse_vessel_class(value: Any) -> VesselClass:
    try:
        return VesselClass((value.value if isinstance(value, VesselClass) else str(value)).strip().lower())
    except ValueError:
        raise InvalidParameters(f"unknown vessel class {value!r}", field="vessel_class")


class VesselBerthScheduler:
    def __init__(self, db: Session, *, gate: AuthorizationGate, clock: Clock, settings: Settings):
        self.db = db
        self.gate = gate
        self.clock = clock
        self.settings = settings
        self.vessels = VesselRegistry(db)
        self.berths = BerthRegistry(db)
        self.counters = CounterService(db)

    # ---------- registration ----------

    def register_vessel(
        self,
        caller: str,
        *,
        name: str,
        length: Any,
        beam: Any,
        draft: Any,
        cargo_capacity: Any,
        vessel_class: Any,
        requested_arrival: Any,
    ) -> int:
        dims = {
            "length": positive_decimal("length", length),
            "beam": positive_decimal("beam", beam),
            "draft": positive_decimal("draft", draft),
            "cargo_capacity": positive_decimal("cargo_capacity", cargo_capacity, digits=14),
        }
        vclass = parse_vessel_class(vessel_class)
        arrival = whole_number("requested_arrival", requested_arrival)

        now = self.clock.now()
        priority = vessel_priority(vclass, arrival, now, self.settings.near_term_window)
        vessel_id = self.counters.next_id("vessel")
        self.vessels.add(
            vessel_id,
            name=(name or "").strip() or f"VESSEL-{vessel_id}",
            owner=caller,
            vessel_class=vclass,
            requested_arrival=arrival,
            priority=priority,
            registered_at=now,
            **dims,
        )
        logger.info("Registered vessel %s class=%s priority=%s owner=%s", vessel_id, vclass.value, priority, caller)
        return vessel_id

    def register_berth(
        self,
        caller: str,
        *,
        name: str,
        max_length: Any,
        max_beam: Any,
        max_draft: Any,
        supported_class: Any = None,
        crane_capacity: Any = 0,
        hourly_rate: Any = 0,
    ) -> int:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        envelope = {
            "max_length": positive_decimal("max_length", max_length),
            "max_beam": positive_decimal("max_beam", max_beam),
            "max_draft": positive_decimal("max_draft", max_draft),
        }
        cranes = whole_number("crane_capacity", crane_capacity)
        rate = positive_decimal("hourly_rate", hourly_rate, allow_zero=True, digits=12)
        sclass = parse_vessel_class(supported_class) if supported_class else None

        berth_id = self.counters.next_id("berth")
        self.berths.add(
            berth_id,
            name=(name or "").strip() or f"BERTH-{berth_id}",
            supported_class=sclass,
            crane_capacity=cranes,
            hourly_rate=rate,
            created_by=caller,
            **envelope,
        )
        logger.info("Registered berth %s by %s", berth_id, caller)
        return berth_id

    def set_berth_operational(self, caller: str, berth_id: int, operational: bool) -> bool:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        berth = self.berths.require(berth_id, lock=True)
        if not operational and berth.occupied:
            raise ResourceOccupied(f"berth {berth_id} is occupied", berth_id=berth_id)
        berth.operational = bool(operational)
        return True

    # ---------- berth binding ----------

    def _reserved_by_other(self, berth: Berth, vessel: Vessel) -> Optional[Schedule]:
        """Another vessel's active schedule on the berth whose window covers now."""

        now = self.clock.now()
        for s in self._active_schedules(berth_id=berth.id):
            if s.vessel_id != vessel.id and s.requested_arrival <= now < s.requested_departure:
                return s
        return None

    def _dock(self, vessel: Vessel, berth: Berth) -> None:
        if berth.occupied:
            raise BerthOccupied(
                f"berth {berth.id} is occupied by vessel {berth.current_vessel_id}",
                berth_id=berth.id,
            )
        reservation = self._reserved_by_other(berth, vessel)
        if reservation is not None:
            raise ResourceOccupied(
                f"berth {berth.id} is reserved for vessel {reservation.vessel_id} "
                f"until {reservation.requested_departure}",
                berth_id=berth.id,
                schedule_id=reservation.id,
            )
        if vessel.assigned_berth_id is not None:
            raise AlreadyAssigned(
                f"vessel {vessel.id} already holds berth {vessel.assigned_berth_id}",
                vessel_id=vessel.id,
            )
        if vessel.status not in _ASSIGNABLE:
            raise InvalidStatus(
                f"vessel {vessel.id} is {vessel.status.value}", vessel_id=vessel.id, status=vessel.status.value
            )
        if not berth.operational:
            raise InvalidStatus(f"berth {berth.id} is out of service", berth_id=berth.id)
        oversize = oversize_dimensions(vessel, berth)
        if oversize:
            raise VesselTooLarge(
                f"vessel {vessel.id} exceeds berth {berth.id} on {', '.join(oversize)}",
                dimensions=oversize,
            )
        self.berths.occupy(berth, vessel.id)
        vessel.assigned_berth_id = berth.id
        self.vessels.transition(vessel, VesselStatus.DOCKED)
        self.counters.increment(BERTH_LOAD)

    def _undock(self, vessel: Vessel) -> Berth:
        berth = self.berths.require(vessel.assigned_berth_id, lock=True)
        self.vessels.check_transition(vessel, VesselStatus.DEPARTED)

        self.counters.decrement(BERTH_LOAD)
        self.vessels.transition(vessel, VesselStatus.DEPARTED)
        vessel.assigned_berth_id = None
        self.berths.vacate(berth)
        return berth

    def assign_berth(self, caller: str, vessel_id: int, berth_id: int) -> bool:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        vessel = self.vessels.require(vessel_id, lock=True)
        berth = self.berths.require(berth_id, lock=True)
        self._dock(vessel, berth)
        logger.info("Assigned vessel %s to berth %s", vessel_id, berth_id)
        return True

    def schedule_departure(self, caller: str, vessel_id: int, departure_time: Any) -> bool:
        vessel = self.vessels.require(vessel_id, lock=True)
        require_owner_or_role(self.gate, caller, vessel.owner, Role.PORT_OPERATOR, resource_id=vessel_id)
        if vessel.status != VesselStatus.DOCKED:
            raise InvalidStatus(
                f"vessel {vessel_id} is {vessel.status.value}, not docked", vessel_id=vessel_id
            )
        departure = whole_number("departure_time", departure_time)
        if departure <= self.clock.now():
            raise InvalidParameters("departure_time must be after the current logical time", field="departure_time")

        vessel.scheduled_departure = departure
        self.vessels.transition(vessel, VesselStatus.SCHEDULED_DEPARTURE)
        return True

    def release_berth(self, caller: str, vessel_id: int) -> bool:
        vessel = self.vessels.require(vessel_id, lock=True)
        require_owner_or_role(self.gate, caller, vessel.owner, Role.PORT_OPERATOR, resource_id=vessel_id)
        if vessel.assigned_berth_id is None:
            raise NotFound(f"vessel {vessel_id} holds no berth", vessel_id=vessel_id)
        berth = self._undock(vessel)
        logger.info("Released berth %s from vessel %s", berth.id, vessel_id)
        return True

    def add_to_queue(self, caller: str, vessel_id: int) -> int:
        vessel = self.vessels.require(vessel_id, lock=True)
        require_owner_or_role(self.gate, caller, vessel.owner, Role.PORT_OPERATOR, resource_id=vessel_id)
        if vessel.status != VesselStatus.REGISTERED:
            raise InvalidStatus(
                f"vessel {vessel_id} is {vessel.status.value}, not registered", vessel_id=vessel_id
            )

        wait = queue_wait(vessel.priority, self.settings.base_wait_time)
        position = self.counters.increment(QUEUE_POSITION)
        self.db.add(
            QueueEntry(
                position=position,
                vessel_id=vessel.id,
                priority=vessel.priority,
                estimated_wait=wait,
                enqueued_at=self.clock.now(),
            )
        )
        self.vessels.transition(vessel, VesselStatus.QUEUED)
        logger.info("Queued vessel %s at position %s (wait=%s)", vessel_id, position, wait)
        return position

    # ---------- schedules ----------

    def _active_schedules(self, *, vessel_id: Optional[int] = None, berth_id: Optional[int] = None) -> List[Schedule]:
        stmt = select(Schedule).where(Schedule.status != ScheduleStatus.COMPLETED)
        if vessel_id is not None:
            stmt = stmt.where(Schedule.vessel_id == vessel_id)
        if berth_id is not None:
            stmt = stmt.where(Schedule.berth_id == berth_id)
        return list(self.db.execute(stmt.order_by(Schedule.id)).scalars().all())

    def create_schedule(
        self,
        caller: str,
        vessel_id: int,
        berth_id: int,
        requested_arrival: Any,
        requested_departure: Any,
    ) -> int:
        vessel = self.vessels.require(vessel_id, lock=True)
        require_owner_or_role(self.gate, caller, vessel.owner, Role.PORT_OPERATOR, resource_id=vessel_id)
        berth = self.berths.require(berth_id, lock=True)

        arrival = whole_number("requested_arrival", requested_arrival)
        departure = whole_number("requested_departure", requested_departure)
        if arrival < self.clock.now():
            raise InvalidParameters("requested_arrival is in the past", field="requested_arrival")
        if departure <= arrival:
            raise InvalidParameters("requested_departure must follow requested_arrival", field="requested_departure")
        oversize = oversize_dimensions(vessel, berth)
        if oversize:
            raise VesselTooLarge(
                f"vessel {vessel_id} exceeds berth {berth_id} on {', '.join(oversize)}",
                dimensions=oversize,
            )
        if self._active_schedules(vessel_id=vessel_id):
            raise AlreadyExists(f"vessel {vessel_id} already has an active schedule", vessel_id=vessel_id)
        for other in self._active_schedules(berth_id=berth_id):
            if arrival < other.requested_departure and other.requested_arrival < departure:
                raise ResourceOccupied(
                    f"berth {berth_id} is reserved {other.requested_arrival}-{other.requested_departure}",
                    berth_id=berth_id,
                    schedule_id=other.id,
                )

        schedule_id = self.counters.next_id("schedule")
        self.db.add(
            Schedule(
                id=schedule_id,
                vessel_id=vessel.id,
                berth_id=berth.id,
                requested_arrival=arrival,
                requested_departure=departure,
                estimated_duration=departure - arrival,
                status=ScheduleStatus.SCHEDULED,
                priority=vessel.priority,
                created_by=caller,
            )
        )
        self.db.flush()
        logger.info("Scheduled vessel %s at berth %s for %s-%s", vessel_id, berth_id, arrival, departure)
        return schedule_id

    def require_schedule(self, schedule_id: int, *, lock: bool = False) -> Schedule:
        schedule = self.db.get(Schedule, schedule_id, with_for_update=lock)
        if schedule is None:
            raise NotFound(f"schedule {schedule_id} not found", schedule_id=schedule_id)
        return schedule

    def _check_schedule_transition(self, schedule: Schedule, new_status: ScheduleStatus) -> None:
        if new_status not in SCHEDULE_TRANSITIONS[schedule.status]:
            raise InvalidStatus(
                f"schedule {schedule.id} cannot move from {schedule.status.value} to {new_status.value}",
                schedule_id=schedule.id,
                status=schedule.status.value,
            )

    def record_arrival(self, caller: str, schedule_id: int) -> bool:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        schedule = self.require_schedule(schedule_id, lock=True)
        now = self.clock.now()
        if schedule.status == ScheduleStatus.SCHEDULED and now < schedule.requested_arrival:
            raise InvalidStatus(
                f"schedule {schedule_id} opens at {schedule.requested_arrival}; now is {now}",
                schedule_id=schedule_id,
            )
        self._check_schedule_transition(schedule, ScheduleStatus.ARRIVED)

        vessel = self.vessels.require(schedule.vessel_id, lock=True)
        berth = self.berths.require(schedule.berth_id, lock=True)
        if vessel.assigned_berth_id != berth.id:
            self._dock(vessel, berth)
        schedule.status = ScheduleStatus.ARRIVED
        schedule.actual_arrival = now
        logger.info("Schedule %s arrived: vessel %s docked at berth %s", schedule_id, vessel.id, berth.id)
        return True

    def record_departure(self, caller: str, schedule_id: int) -> bool:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        schedule = self.require_schedule(schedule_id, lock=True)
        self._check_schedule_transition(schedule, ScheduleStatus.COMPLETED)

        vessel = self.vessels.require(schedule.vessel_id, lock=True)
        if vessel.assigned_berth_id == schedule.berth_id:
            self._undock(vessel)
        schedule.status = ScheduleStatus.COMPLETED
        schedule.actual_departure = self.clock.now()
        return True

    # ---------- queries ----------

    def queue(self) -> List[Dict[str, Any]]:
        rows = self.db.execute(
            select(QueueEntry)
            .join(Vessel, Vessel.id == QueueEntry.vessel_id)
            .where(Vessel.status == VesselStatus.QUEUED)
            .order_by(QueueEntry.priority.desc(), QueueEntry.position)
        ).scalars().all()
        return [queue_entry_dict(q) for q in rows]

    def compatible_berths(self, vessel_id: int) -> List[Dict[str, Any]]:
        vessel = self.vessels.require(vessel_id)
        return [berth_dict(b) for b in self.berths.compatible_with(vessel)]
