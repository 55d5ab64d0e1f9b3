"""Typed failures raised by the allocation core.

Every failure is scoped to the single requested operation. The engine runs
each command in one transaction, so raising any of these before commit
leaves no partial state behind.
"""
from __future__ import annotations

from typing import Any, Dict

__all__ = [
    "PortError",
    "NotFound",
    "InvalidParameters",
    "VesselTooLarge",
    "Unauthorized",
    "AlreadyExists",
    "AlreadyAssigned",
    "ResourceOccupied",
    "BerthOccupied",
    "InvalidStatus",
    "InvalidOperation",
    "CapacityExceeded",
]


class PortError(Exception):
    """Base class; ``code`` is stable and safe to show to API clients."""

    code = "port_error"
    status_code = 400

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class NotFound(PortError):
    code = "not_found"
    status_code = 404


class InvalidParameters(PortError):
    code = "invalid_parameters"
    status_code = 422


class VesselTooLarge(InvalidParameters):
    code = "vessel_too_large"


class Unauthorized(PortError):
    code = "unauthorized"
    status_code = 403


class AlreadyExists(PortError):
    code = "already_exists"
    status_code = 409


class AlreadyAssigned(AlreadyExists):
    code = "already_assigned"


class ResourceOccupied(PortError):
    code = "resource_occupied"
    status_code = 409


class BerthOccupied(ResourceOccupied):
    code = "berth_occupied"


class InvalidStatus(PortError):
    code = "invalid_status"
    status_code = 409


class InvalidOperation(PortError):
    code = "invalid_operation"
    status_code = 422


class CapacityExceeded(PortError):
    code = "capacity_exceeded"
    status_code = 409
