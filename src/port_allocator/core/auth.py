"""Authorization gate.

The core asks a single question: may ``caller`` act as ``role`` (optionally
over ``resource_id``)? ``RoleTable`` answers it from the role_assignments
table; any object with the same ``is_authorized`` signature can replace it.
Resource ownership is checked by the components themselves, by identity
equality on the stored owner.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Role, RoleAssignment
from .errors import InvalidParameters, Unauthorized

logger = logging.getLogger(__name__)

# Roles that count as "operator" for cargo handling.
HANDLING_ROLES = (Role.PORT_OPERATOR, Role.HANDLER)


class AuthorizationGate(Protocol):
    def is_authorized(self, caller: str, role: Role, resource_id: Optional[int] = None) -> bool: ...


class RoleTable:
    """Role-assignment table behind the gate; the contract owner passes every check."""

    def __init__(self, db: Session, contract_owner: str):
        self.db = db
        self.contract_owner = contract_owner

    def is_authorized(self, caller: str, role: Role, resource_id: Optional[int] = None) -> bool:
        if not caller:
            return False
        if caller == self.contract_owner:
            return True
        row = self.db.execute(
            select(RoleAssignment).where(
                RoleAssignment.principal == caller,
                RoleAssignment.role == role,
            )
        ).scalar_one_or_none()
        return bool(row and row.active)

    def roles_of(self, principal: str) -> List[Role]:
        rows = self.db.execute(
            select(RoleAssignment)
            .where(RoleAssignment.principal == principal, RoleAssignment.active.is_(True))
            .order_by(RoleAssignment.id)
        ).scalars().all()
        return [r.role for r in rows]

    def grant(self, caller: str, principal: str, role: Role, now: int) -> None:
        require_role(self, caller, Role.CONTRACT_OWNER)
        if not principal:
            raise InvalidParameters("principal is required")
        row = self.db.execute(
            select(RoleAssignment).where(
                RoleAssignment.principal == principal,
                RoleAssignment.role == role,
            )
        ).scalar_one_or_none()
        if row is None:
            self.db.add(
                RoleAssignment(principal=principal, role=role, active=True, granted_by=caller, granted_at=now)
            )
        else:
            row.active = True
            row.granted_by = caller
            row.granted_at = now
        logger.info("Granted %s to %s", role.value, principal)

    def revoke(self, caller: str, principal: str, role: Role) -> bool:
        require_role(self, caller, Role.CONTRACT_OWNER)
        row = self.db.execute(
            select(RoleAssignment).where(
                RoleAssignment.principal == principal,
                RoleAssignment.role == role,
            )
        ).scalar_one_or_none()
        if row is None or not row.active:
            return False
        row.active = False
        logger.info("Revoked %s from %s", role.value, principal)
        return True


def require_role(gate: AuthorizationGate, caller: str, *roles: Role, resource_id: Optional[int] = None) -> None:
    if any(gate.is_authorized(caller, role, resource_id) for role in roles):
        return
    wanted = "/".join(r.value for r in roles)
    raise Unauthorized(f"caller {caller!r} is not authorized as {wanted}", caller=caller)


def require_owner_or_role(
    gate: AuthorizationGate,
    caller: str,
    owner: str,
    *roles: Role,
    resource_id: Optional[int] = None,
) -> None:
    if caller and caller == owner:
        return
    require_role(gate, caller, *roles, resource_id=resource_id)
