"""Table-backed counters: per-entity id sequences and utilization totals.

Counters advance inside the caller's transaction. An aborted command rolls
its advance back together with everything else, so an id that has been
handed out is never handed out again.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from ..models import Counter
from .errors import InvalidStatus

ENTITY_CLASSES = ("vessel", "berth", "schedule", "container", "operation", "transport")

BERTH_LOAD = "berth_load"
QUEUE_POSITION = "queue_position"


class CounterService:
    def __init__(self, db: Session):
        self.db = db

    def _row(self, name: str) -> Counter:
        row = self.db.get(Counter, name, with_for_update=True)
        if row is None:
            row = Counter(name=name, value=0)
            self.db.add(row)
            self.db.flush()
        return row

    def value(self, name: str) -> int:
        row = self.db.get(Counter, name)
        return row.value if row else 0

    def next_id(self, entity_class: str) -> int:
        if entity_class not in ENTITY_CLASSES:
            raise ValueError(f"unknown entity class {entity_class!r}")
        return self.increment(f"{entity_class}_id")

    def increment(self, name: str, by: int = 1) -> int:
        row = self._row(name)
        row.value += by
        return row.value

    def decrement(self, name: str, by: int = 1) -> int:
        row = self._row(name)
        if row.value - by < 0:
            raise InvalidStatus(f"counter {name!r} would go negative", counter=name, value=row.value)
        row.value -= by
        return row.value
