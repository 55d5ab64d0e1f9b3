"""Capacity and metrics aggregator.

Derives port-wide capacity, equipment utilization, turnaround estimates and
performance snapshots from the registries. It reads through the registries'
accessors and never mutates their state; the only rows it writes are its
own performance snapshots.
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import PerformanceMetric, Role, Schedule, Vessel
from ..rules.efficiency import efficiency_ratio, throughput_rate, turnaround_ticks
from ..settings import Settings
from .auth import AuthorizationGate, require_role
from .berths import BerthRegistry
from .clock import Clock
from .counters import BERTH_LOAD, CounterService
from .equipment import EquipmentAllocator
from .errors import AlreadyExists, InvalidParameters
from .validation import positive_decimal

logger = logging.getLogger(__name__)


def metric_dict(m: PerformanceMetric) -> Dict[str, Any]:
    return {
        "metric_name": m.metric_name,
        "period": m.period,
        "value": str(m.value),
        "target": str(m.target),
        "efficiency_ratio": str(m.efficiency_ratio),
        "recorded_by": m.recorded_by,
    }


class CapacityMetrics:
    def __init__(self, db: Session, *, gate: AuthorizationGate, clock: Clock, settings: Settings):
        self.db = db
        self.gate = gate
        self.clock = clock
        self.berths = BerthRegistry(db)
        self.counters = CounterService(db)
        self.equipment = EquipmentAllocator(db, gate=gate, clock=clock, settings=settings)

    def port_capacity(self) -> Dict[str, Any]:
        total = self.berths.operational_count()
        load = self.counters.value(BERTH_LOAD)
        pct = Decimal("0.00")
        if total > 0:
            pct = (Decimal(100) * Decimal(load) / Decimal(total)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return {
            "total_capacity": total,
            "current_load": load,
            "available_capacity": max(total - load, 0),
            "utilization_percent": str(pct),
            "as_of": self.clock.now(),
        }

    def equipment_utilization(self) -> List[Dict[str, Any]]:
        return self.equipment.all_status()

    def turnaround_estimate(self, schedule_id: int, cargo_type: Optional[str]) -> Optional[Dict[str, Any]]:
        schedule = self.db.get(Schedule, schedule_id)
        if schedule is None:
            return None
        vessel = self.db.get(Vessel, schedule.vessel_id)
        if vessel is None:
            return None
        estimate = turnaround_ticks(vessel.cargo_capacity, cargo_type)
        return {
            "schedule_id": schedule.id,
            "vessel_id": vessel.id,
            "cargo_type": (cargo_type or "general").strip().lower(),
            "cargo_capacity": str(vessel.cargo_capacity),
            "throughput_rate": throughput_rate(cargo_type),
            "estimated_ticks": str(estimate),
            "scheduled_ticks": schedule.estimated_duration,
            "fits_window": estimate <= Decimal(schedule.estimated_duration),
        }

    def record_performance_metric(self, caller: str, metric_name: str, value: Any, target: Any) -> Dict[str, Any]:
        require_role(self.gate, caller, Role.PORT_OPERATOR)
        name = (metric_name or "").strip().lower()
        if not name:
            raise InvalidParameters("metric_name is required", field="metric_name")
        val = positive_decimal("value", value, allow_zero=True, digits=14)
        tgt = positive_decimal("target", target, digits=14)

        period = self.clock.now()
        if self.db.get(PerformanceMetric, (name, period)) is not None:
            raise AlreadyExists(f"metric {name!r} already recorded for period {period}", metric_name=name)
        metric = PerformanceMetric(
            metric_name=name,
            period=period,
            value=val,
            target=tgt,
            efficiency_ratio=efficiency_ratio(val, tgt),
            recorded_by=caller,
        )
        self.db.add(metric)
        self.db.flush()
        return metric_dict(metric)

    def performance_metric(self, metric_name: str, period: int) -> Optional[Dict[str, Any]]:
        metric = self.db.get(PerformanceMetric, ((metric_name or "").strip().lower(), period))
        return metric_dict(metric) if metric else None
