"""Customs-clearance and inland-transport records.

Both are collaborator records: the core stores what it is given and hands
it back. Clearance decisions and transport routing happen elsewhere.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..models import CustomsClearance, Role, TransportLog
from .auth import HANDLING_ROLES, AuthorizationGate, require_owner_or_role, require_role
from .clock import Clock
from .containers import ContainerRegistry
from .counters import CounterService
from .errors import InvalidParameters


def clearance_dict(c: CustomsClearance) -> Dict[str, Any]:
    return {
        "container_id": c.container_id,
        "officer": c.officer,
        "declaration_ref": c.declaration_ref,
        "cleared": c.cleared,
        "notes": c.notes,
        "recorded_at": c.recorded_at,
    }


def transport_dict(t: TransportLog) -> Dict[str, Any]:
    return {
        "id": t.id,
        "container_id": t.container_id,
        "mode": t.mode,
        "carrier": t.carrier,
        "destination": t.destination,
        "logged_by": t.logged_by,
        "logged_at": t.logged_at,
    }


class CollaboratorRecords:
    def __init__(self, db: Session, *, gate: AuthorizationGate, clock: Clock):
        self.db = db
        self.gate = gate
        self.clock = clock
        self.containers = ContainerRegistry(db)

    def record_customs_clearance(
        self,
        caller: str,
        container_id: int,
        declaration_ref: str,
        cleared: bool,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        require_role(self.gate, caller, Role.CUSTOMS_OFFICER)
        self.containers.require(container_id)
        if not (declaration_ref or "").strip():
            raise InvalidParameters("declaration_ref is required", field="declaration_ref")

        record = self.db.get(CustomsClearance, container_id, with_for_update=True)
        if record is None:
            record = CustomsClearance(container_id=container_id)
            self.db.add(record)
        record.officer = caller
        record.declaration_ref = declaration_ref.strip()
        record.cleared = bool(cleared)
        record.notes = notes
        record.recorded_at = self.clock.now()
        self.db.flush()
        return clearance_dict(record)

    def customs_clearance(self, container_id: int) -> Optional[Dict[str, Any]]:
        record = self.db.get(CustomsClearance, container_id)
        return clearance_dict(record) if record else None

    def log_transport(self, caller: str, container_id: int, mode: str, carrier: str, destination: str) -> int:
        container = self.containers.require(container_id)
        require_owner_or_role(self.gate, caller, container.owner, *HANDLING_ROLES, resource_id=container_id)
        if not (mode or "").strip():
            raise InvalidParameters("transport mode is required", field="mode")

        transport_id = CounterService(self.db).next_id("transport")
        self.db.add(
            TransportLog(
                id=transport_id,
                container_id=container_id,
                mode=mode.strip().lower(),
                carrier=carrier or "",
                destination=destination or container.destination,
                logged_by=caller,
                logged_at=self.clock.now(),
            )
        )
        self.db.flush()
        return transport_id

    def transport(self, transport_id: int) -> Optional[Dict[str, Any]]:
        record = self.db.get(TransportLog, transport_id)
        return transport_dict(record) if record else None
