"""Domain errors raised by the clinic services.

Routers never build error responses by hand for business-rule failures:
services raise one of these and the handlers registered in
``uni_health.main`` turn them into JSON with the matching status code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class ClinicError(Exception):
    status_code = 400
    code = "clinic_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}


class ValidationError(ClinicError):
    """Malformed input or a failed business rule on otherwise valid input."""

    status_code = 422
    code = "validation_error"

    def __init__(self, errors: dict[str, list[str]], message: str = "The given data was invalid."):
        self.errors = errors
        super().__init__(message)

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]})

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["errors"] = self.errors
        return result


class NotFoundError(ClinicError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class AuthorizationError(ClinicError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(message)


class ConflictError(ClinicError):
    """The requested status change is not legal from the current status."""

    code = "conflict"

    def __init__(self, message: str, *, current_status: str | None = None, requested: str | None = None):
        self.current_status = current_status
        self.requested = requested
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.current_status is not None:
            result["current_status"] = self.current_status
        if self.requested is not None:
            result["requested_status"] = self.requested
        return result


class PrescriptionConflictError(ConflictError):
    status_code = 409
    code = "prescription_conflict"

    def __init__(self, conflicts: list[dict[str, Any]]):
        self.conflicts = conflicts
        super().__init__(
            "Patient already has active medications overlapping this prescription. "
            "Resubmit with force=true to complete them."
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["conflicts"] = self.conflicts
        return result


class BlockedError(ClinicError):
    """A gate refused the action. Subclasses carry machine-readable context."""

    code = "blocked"


class PriorityBlockedError(BlockedError):
    status_code = 423
    code = "priority_blocked"

    def __init__(self, blocking: list[dict[str, Any]]):
        self.blocking = blocking
        super().__init__(
            "Higher priority appointments must be handled first "
            f"({len(blocking)} outstanding)."
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["blocking_count"] = len(self.blocking)
        result["blocking_appointments"] = self.blocking
        return result


class AttendanceDeniedError(BlockedError):
    status_code = 403
    code = "attendance_denied"

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        can_attend_from: datetime | None = None,
        appointment_id: int | None = None,
    ):
        self.reason = reason
        self.can_attend_from = can_attend_from
        self.appointment_id = appointment_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason
        if self.appointment_id is not None:
            result["appointment_id"] = self.appointment_id
        if self.can_attend_from is not None:
            result["can_attend_from"] = self.can_attend_from.isoformat()
        return result


class InternalError(ClinicError):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error", *, detail: str | None = None):
        self.detail = detail
        super().__init__(message)
