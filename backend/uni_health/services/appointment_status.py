"""Legal appointment status transitions and the timestamps they stamp."""

from __future__ import annotations

from datetime import datetime, timezone

from uni_health.core.errors import ConflictError
from uni_health.models.appointment import Appointment, AppointmentStatus

S = AppointmentStatus

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.pending: frozenset({S.under_review, S.assigned, S.rejected, S.cancelled}),
    S.under_review: frozenset({S.assigned, S.rejected, S.cancelled}),
    S.assigned: frozenset({S.scheduled, S.cancelled}),
    # back to pending only when the doctor hands the appointment back
    S.scheduled: frozenset({S.confirmed, S.cancelled, S.pending}),
    S.waiting: frozenset({S.confirmed, S.cancelled}),
    S.confirmed: frozenset({S.in_progress, S.completed, S.cancelled}),
    S.in_progress: frozenset({S.completed}),
    S.completed: frozenset(),
    S.cancelled: frozenset(),
    S.rejected: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

# statuses that hold a doctor's time slot
OCCUPYING_STATUSES = frozenset({S.pending, S.assigned, S.scheduled, S.confirmed, S.waiting, S.in_progress})

# at most one of these per patient per day
DAILY_ACTIVE_STATUSES = frozenset({S.pending, S.scheduled, S.confirmed})

TIMESTAMP_FIELDS: dict[AppointmentStatus, str] = {
    S.assigned: "assigned_at",
    S.scheduled: "approved_at",
    S.rejected: "rejected_at",
    S.cancelled: "cancelled_at",
    S.confirmed: "confirmed_at",
    S.completed: "completed_at",
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(appointment: Appointment, target: AppointmentStatus) -> None:
    current = appointment.status
    if not can_transition(current, target):
        raise ConflictError(
            f"Cannot change appointment status from {current.value} to {target.value}",
            current_status=current.value,
            requested=target.value,
        )


def apply_transition(
    appointment: Appointment,
    target: AppointmentStatus,
    *,
    at: datetime | None = None,
) -> None:
    ensure_transition(appointment, target)
    appointment.status = target
    field = TIMESTAMP_FIELDS.get(target)
    if field:
        setattr(appointment, field, at or datetime.now(timezone.utc))
