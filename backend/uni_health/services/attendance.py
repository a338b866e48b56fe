"""Attendance time gate.

A doctor may record the outcome of a visit (confirm, complete, write a
medical record or prescription) only once the appointment is about to
start. Every call site goes through ``check_attendance`` so the rule lives
in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.errors import AttendanceDeniedError
from uni_health.core.settings import settings
from uni_health.models.appointment import Appointment, AppointmentPriority, AppointmentStatus

ACTIVE_STATUSES = (
    AppointmentStatus.assigned,
    AppointmentStatus.scheduled,
    AppointmentStatus.confirmed,
    AppointmentStatus.waiting,
    AppointmentStatus.in_progress,
)
STAFF_CONFIRMED_STATUSES = (AppointmentStatus.confirmed, AppointmentStatus.in_progress)

NO_ACTIVE_APPOINTMENT = "no_active_appointment"
AWAITING_STAFF_CONFIRMATION = "awaiting_staff_confirmation"
TOO_EARLY = "too_early"


@dataclass
class AttendanceDecision:
    allowed: bool
    appointment: Appointment | None = None
    reason: str | None = None
    message: str | None = None
    can_attend_from: datetime | None = None

    def raise_if_denied(self) -> None:
        if self.allowed:
            return
        raise AttendanceDeniedError(
            self.message or "You cannot attend this appointment yet",
            reason=self.reason or NO_ACTIVE_APPOINTMENT,
            can_attend_from=self.can_attend_from,
            appointment_id=self.appointment.id if self.appointment else None,
        )


def bypasses_clock(appointment: Appointment) -> bool:
    return appointment.is_walk_in or appointment.priority == AppointmentPriority.urgent


def evaluate_attendance(
    appointment: Appointment | None,
    now: datetime,
    *,
    grace_minutes: int | None = None,
) -> AttendanceDecision:
    if appointment is None:
        return AttendanceDecision(
            allowed=False,
            reason=NO_ACTIVE_APPOINTMENT,
            message="No active appointment found with this patient",
        )

    if bypasses_clock(appointment):
        if appointment.status in STAFF_CONFIRMED_STATUSES:
            return AttendanceDecision(allowed=True, appointment=appointment)
        return AttendanceDecision(
            allowed=False,
            appointment=appointment,
            reason=AWAITING_STAFF_CONFIRMATION,
            message="Walk-in and urgent appointments must be confirmed by clinical staff first",
        )

    grace = timedelta(minutes=settings.attendance_grace_minutes if grace_minutes is None else grace_minutes)
    can_attend_from = appointment.starts_at - grace
    if now < can_attend_from:
        return AttendanceDecision(
            allowed=False,
            appointment=appointment,
            reason=TOO_EARLY,
            message=f"You can attend this appointment from {can_attend_from:%Y-%m-%d %H:%M}",
            can_attend_from=can_attend_from,
        )
    return AttendanceDecision(allowed=True, appointment=appointment, can_attend_from=can_attend_from)


def find_active_appointment(db: Session, doctor_id: int, patient_id: int) -> Appointment | None:
    stmt = (
        select(Appointment)
        .where(
            Appointment.doctor_id == doctor_id,
            Appointment.patient_id == patient_id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).unique().first()


def check_attendance(
    db: Session,
    *,
    doctor_id: int,
    patient_id: int,
    now: datetime,
    appointment: Appointment | None = None,
) -> AttendanceDecision:
    """Gate a doctor's clinical action on a patient.

    ``appointment`` pins the check to a known appointment; otherwise the most
    recently created active appointment between the two is used.
    """
    if appointment is None:
        appointment = find_active_appointment(db, doctor_id, patient_id)
    elif appointment.doctor_id != doctor_id or appointment.patient_id != patient_id:
        appointment = None
    return evaluate_attendance(appointment, now)


def ensure_can_attend(
    db: Session,
    *,
    doctor_id: int,
    patient_id: int,
    now: datetime,
    appointment: Appointment | None = None,
) -> Appointment:
    decision = check_attendance(
        db, doctor_id=doctor_id, patient_id=patient_id, now=now, appointment=appointment
    )
    decision.raise_if_denied()
    return decision.appointment
