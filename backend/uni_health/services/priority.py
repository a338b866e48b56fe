from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.errors import PriorityBlockedError
from uni_health.models.appointment import (
    PRIORITY_LEVELS,
    Appointment,
    AppointmentPriority,
    AppointmentStatus,
)

OUTSTANDING_STATUSES = (
    AppointmentStatus.pending,
    AppointmentStatus.under_review,
    AppointmentStatus.waiting,
)


def higher_priorities(priority: AppointmentPriority) -> list[AppointmentPriority]:
    level = PRIORITY_LEVELS[priority]
    return [p for p, other in PRIORITY_LEVELS.items() if other > level]


def is_blocked_by(priority: AppointmentPriority, other: AppointmentPriority) -> bool:
    return PRIORITY_LEVELS[other] > PRIORITY_LEVELS[priority]


def find_blocking_appointments(
    db: Session,
    *,
    exclude_id: int | None,
    priority: AppointmentPriority,
) -> list[Appointment]:
    """Outstanding appointments that must be handled before one of ``priority``.

    Highest level first, oldest first within a level. Urgent appointments
    never have blockers.
    """
    above = higher_priorities(priority)
    if not above:
        return []
    stmt = select(Appointment).where(
        Appointment.status.in_(OUTSTANDING_STATUSES),
        Appointment.priority.in_(above),
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    rows = list(db.scalars(stmt).unique())
    rows.sort(key=lambda appt: (-PRIORITY_LEVELS[appt.priority], appt.id))
    return rows


def blocking_summary(appt: Appointment) -> dict:
    patient = appt.patient
    return {
        "id": appt.id,
        "priority": appt.priority.value,
        "status": appt.status.value,
        "type": appt.type,
        "date": appt.date.isoformat(),
        "time": appt.time.strftime("%H:%M"),
        "patient_id": appt.patient_id,
        "patient_name": patient.full_name if patient else None,
        "reason": appt.reason,
    }


def ensure_not_blocked(db: Session, appointment: Appointment) -> None:
    # check-then-act: nothing stops a concurrent request from passing the
    # same check before this one commits
    blocking = find_blocking_appointments(db, exclude_id=appointment.id, priority=appointment.priority)
    if blocking:
        raise PriorityBlockedError([blocking_summary(appt) for appt in blocking])
