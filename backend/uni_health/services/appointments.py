"""Appointment lifecycle operations.

Each operation follows the same order: load (404), authorise (403), check the
status transition (400), run the priority gate (423), run the attendance
gate for doctors (403), then persist the change, derived records and audit
entry in one transaction. Events are returned to the caller and published
only after the commit.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.clock import Clock
from uni_health.core.errors import (
    AuthorizationError,
    ClinicError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from uni_health.core.settings import settings
from uni_health.models.appointment import (
    PRIORITY_LEVELS,
    WALK_IN_TYPE,
    Appointment,
    AppointmentPriority,
    AppointmentStatus,
)
from uni_health.models.user import PATIENT_ROLES, Role, User
from uni_health.services import notifications
from uni_health.services.appointment_status import (
    DAILY_ACTIVE_STATUSES,
    apply_transition,
    ensure_transition,
)
from uni_health.services.attendance import ensure_can_attend
from uni_health.services.audit import log_entity_change, snapshot_model
from uni_health.services.availability import check_slot
from uni_health.services.completion import CompletionResult, complete_appointment
from uni_health.services.priority import OUTSTANDING_STATUSES, ensure_not_blocked

logger = logging.getLogger("uni_health.appointments")

S = AppointmentStatus

PRIORITY_GATED_TARGETS = frozenset({S.under_review, S.assigned, S.scheduled, S.confirmed})
ATTENDANCE_GATED_TARGETS = frozenset({S.confirmed, S.completed})
DOCTOR_TARGETS = frozenset({S.confirmed, S.in_progress, S.completed, S.cancelled, S.pending})
STAFF_TARGETS = frozenset({S.under_review, S.scheduled, S.confirmed, S.in_progress, S.cancelled, S.rejected})
PATIENT_CANCELLABLE = frozenset({S.pending, S.under_review, S.assigned, S.scheduled, S.confirmed})
RESCHEDULABLE = frozenset({S.pending, S.assigned, S.scheduled})
# walk-ins may get their doctor at any point before completion
WALK_IN_ATTACHABLE = frozenset({S.waiting, S.confirmed, S.in_progress})


@dataclass
class StatusChange:
    appointment: Appointment
    events: list[notifications.Event] = field(default_factory=list)
    completion: CompletionResult | None = None


@contextmanager
def transaction(db: Session):
    """Commit on success; roll back everything on any failure."""
    try:
        yield
        db.commit()
    except ClinicError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception("Appointment transaction rolled back")
        raise InternalError("The appointment could not be updated", detail=str(exc)) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appt = db.get(Appointment, appointment_id)
    if not appt:
        raise NotFoundError("Appointment", appointment_id)
    return appt


def can_view(actor: User, appt: Appointment) -> bool:
    if actor.is_staff:
        return True
    if actor.role == Role.doctor:
        return appt.doctor_id == actor.id
    return appt.patient_id == actor.id


def ensure_can_view(actor: User, appt: Appointment) -> None:
    if not can_view(actor, appt):
        raise AuthorizationError("You do not have access to this appointment")


def _require_staff(actor: User) -> None:
    if not actor.is_staff:
        raise AuthorizationError("Only clinical staff can perform this action")


def _require_assigned_doctor(actor: User, appt: Appointment) -> None:
    if actor.role != Role.doctor or appt.doctor_id != actor.id:
        raise AuthorizationError("Only the assigned doctor can perform this action")


def load_doctor(db: Session, doctor_id: int, *, field_name: str = "doctor_id") -> User:
    doctor = db.get(User, doctor_id)
    if not doctor or doctor.role != Role.doctor or not doctor.is_active:
        raise ValidationError.single(field_name, "The selected doctor is invalid.")
    return doctor


def load_patient(db: Session, patient_id: int, *, field_name: str = "patient_id") -> User:
    patient = db.get(User, patient_id)
    if not patient or patient.role not in PATIENT_ROLES or not patient.is_active:
        raise ValidationError.single(field_name, "The selected patient is invalid.")
    return patient


def _check_grid(value: time) -> None:
    if value.second or value.microsecond or value.minute % settings.slot_minutes:
        raise ValidationError.single(
            "time", f"The time must be on a {settings.slot_minutes}-minute boundary."
        )


def _check_one_per_day(db: Session, patient_id: int, target: date, exclude_id: int | None = None) -> None:
    # not a database constraint; two concurrent requests can both pass
    stmt = select(Appointment.id).where(
        Appointment.patient_id == patient_id,
        Appointment.date == target,
        Appointment.status.in_(DAILY_ACTIVE_STATUSES),
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    if db.scalar(stmt.limit(1)) is not None:
        raise ValidationError.single("date", "Only one appointment per day is allowed.")


def _check_slot(
    db: Session,
    *,
    clock: Clock,
    target: date,
    start: time,
    doctor: User | None,
    duration_minutes: int,
    exclude_id: int | None = None,
    include_elapsed: bool = False,
) -> None:
    ok, reason = check_slot(
        db,
        target,
        start,
        clock=clock,
        doctor=doctor,
        duration_minutes=duration_minutes,
        exclude_appointment_id=exclude_id,
        include_elapsed=include_elapsed,
    )
    if not ok:
        raise ValidationError.single("time", reason or "This time slot is not available")


def _audit(db: Session, actor: User, action: str, appt: Appointment, before: dict | None, meta: dict) -> None:
    log_entity_change(db, actor, action, appt, before=before, meta=meta)


def create_appointment(
    db: Session,
    *,
    actor: User,
    clock: Clock,
    payload,
    meta: dict,
) -> StatusChange:
    if actor.is_patient:
        if payload.patient_id not in (None, actor.id):
            raise AuthorizationError("Patients can only book appointments for themselves")
        patient = actor
    elif actor.is_staff:
        if payload.patient_id is None:
            raise ValidationError.single("patient_id", "The patient field is required.")
        patient = load_patient(db, payload.patient_id)
    else:
        raise AuthorizationError("Doctors cannot book appointments")

    today = clock.today()
    if payload.date < today:
        raise ValidationError.single("date", "The date must be today or later.")
    _check_grid(payload.time)

    doctor = load_doctor(db, payload.doctor_id) if payload.doctor_id is not None else None
    _check_one_per_day(db, patient.id, payload.date)
    duration = payload.duration_minutes or settings.slot_minutes
    _check_slot(db, clock=clock, target=payload.date, start=payload.time, doctor=doctor, duration_minutes=duration)

    if payload.type:
        appt_type = payload.type
    elif actor.role == Role.student:
        appt_type = "student_request"
    else:
        appt_type = "consultation"

    now = _utcnow()
    appt = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id if doctor else None,
        date=payload.date,
        time=payload.time,
        duration_minutes=duration,
        type=appt_type,
        reason=payload.reason,
        specialization=payload.specialization or (doctor.specialization if doctor else None),
        priority=payload.priority or AppointmentPriority.normal,
        status=S.pending,
        notes=payload.notes,
    )
    appt.stamp(actor)
    if actor.is_staff and doctor is not None:
        # direct booking by staff skips triage
        appt.status = S.scheduled
        appt.assigned_at = now
        appt.approved_at = now

    with transaction(db):
        db.add(appt)
        db.flush()
        _audit(db, actor, "appointment.created", appt, None, meta)
    db.refresh(appt)

    return StatusChange(
        appointment=appt,
        events=[
            notifications.appointment_event(notifications.APPOINTMENT_CREATED, appt),
            notifications.dashboard_event("appointment_created"),
        ],
    )


def create_walk_in(
    db: Session,
    *,
    actor: User,
    clock: Clock,
    payload,
    meta: dict,
) -> StatusChange:
    _require_staff(actor)
    patient = load_patient(db, payload.patient_id)
    doctor = load_doctor(db, payload.doctor_id) if payload.doctor_id is not None else None

    now = clock.now()
    minutes = now.minute - now.minute % settings.slot_minutes
    appt = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id if doctor else None,
        date=now.date(),
        time=time(now.hour, minutes),
        duration_minutes=settings.slot_minutes,
        type=WALK_IN_TYPE,
        reason=payload.reason,
        specialization=doctor.specialization if doctor else None,
        priority=payload.priority or AppointmentPriority.urgent,
        status=S.waiting,
        notes=payload.notes,
    )
    appt.stamp(actor)
    if doctor is not None:
        appt.assigned_at = _utcnow()

    with transaction(db):
        db.add(appt)
        db.flush()
        _audit(db, actor, "appointment.walk_in", appt, None, meta)
    db.refresh(appt)

    return StatusChange(
        appointment=appt,
        events=[
            notifications.appointment_event(notifications.PATIENT_WALKED_IN, appt),
            notifications.dashboard_event("walk_in"),
        ],
    )


def assign_appointment(
    db: Session,
    *,
    actor: User,
    clock: Clock,
    appointment_id: int,
    doctor_id: int,
    notes: str | None,
    meta: dict,
) -> StatusChange:
    appt = get_appointment_or_404(db, appointment_id)
    _require_staff(actor)
    if appt.is_walk_in and appt.status in WALK_IN_ATTACHABLE:
        return _attach_walk_in_doctor(db, actor=actor, appt=appt, doctor_id=doctor_id, notes=notes, meta=meta)
    ensure_transition(appt, S.assigned)
    ensure_not_blocked(db, appt)
    doctor = load_doctor(db, doctor_id)
    # the appointment keeps its own time, which may already have passed
    _check_slot(
        db,
        clock=clock,
        target=appt.date,
        start=appt.time,
        doctor=doctor,
        duration_minutes=appt.duration_minutes,
        exclude_id=appt.id,
        include_elapsed=True,
    )

    before = snapshot_model(appt)
    was_reassignment = appt.needs_reassignment
    with transaction(db):
        apply_transition(appt, S.assigned, at=_utcnow())
        appt.doctor_id = doctor.id
        appt.needs_reassignment = False
        if not appt.specialization:
            appt.specialization = doctor.specialization
        if notes:
            appt.notes = notes
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, "appointment.assigned", appt, before, meta)
    db.refresh(appt)

    events = [notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt)]
    if was_reassignment:
        events.append(notifications.appointment_event(notifications.APPOINTMENT_REASSIGNED, appt))
    return StatusChange(appointment=appt, events=events)


def _attach_walk_in_doctor(
    db: Session,
    *,
    actor: User,
    appt: Appointment,
    doctor_id: int,
    notes: str | None,
    meta: dict,
) -> StatusChange:
    """Give a walk-in its doctor; the walk-in keeps its place in the lifecycle."""
    doctor = load_doctor(db, doctor_id)
    before = snapshot_model(appt)
    with transaction(db):
        appt.doctor_id = doctor.id
        appt.assigned_at = _utcnow()
        if not appt.specialization:
            appt.specialization = doctor.specialization
        if notes:
            appt.notes = notes
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, "appointment.assigned", appt, before, meta)
    db.refresh(appt)
    return StatusChange(
        appointment=appt,
        events=[notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt)],
    )


def approve_appointment(
    db: Session,
    *,
    actor: User,
    appointment_id: int,
    meta: dict,
) -> StatusChange:
    appt = get_appointment_or_404(db, appointment_id)
    _require_staff(actor)
    ensure_transition(appt, S.scheduled)
    ensure_not_blocked(db, appt)

    before = snapshot_model(appt)
    with transaction(db):
        apply_transition(appt, S.scheduled, at=_utcnow())
        if appt.type == "student_request":
            appt.type = "approved_request"
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, "appointment.approved", appt, before, meta)
    db.refresh(appt)
    return StatusChange(
        appointment=appt,
        events=[notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt)],
    )


def reject_appointment(
    db: Session,
    *,
    actor: User,
    appointment_id: int,
    reason: str | None,
    meta: dict,
) -> StatusChange:
    appt = get_appointment_or_404(db, appointment_id)
    _require_staff(actor)
    ensure_transition(appt, S.rejected)

    before = snapshot_model(appt)
    with transaction(db):
        apply_transition(appt, S.rejected, at=_utcnow())
        appt.rejection_reason = reason
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, "appointment.rejected", appt, before, meta)
    db.refresh(appt)
    return StatusChange(
        appointment=appt,
        events=[
            notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt),
            notifications.dashboard_event("appointment_rejected"),
        ],
    )


def confirm_appointment(
    db: Session,
    *,
    actor: User,
    clock: Clock,
    appointment_id: int,
    method: str,
    custom_message: str | None,
    meta: dict,
) -> StatusChange:
    appt = get_appointment_or_404(db, appointment_id)
    if actor.role == Role.doctor:
        _require_assigned_doctor(actor, appt)
    elif not actor.is_staff:
        raise AuthorizationError("Only the assigned doctor or clinical staff can confirm appointments")
    ensure_transition(appt, S.confirmed)
    ensure_not_blocked(db, appt)
    if actor.role == Role.doctor:
        ensure_can_attend(
            db, doctor_id=actor.id, patient_id=appt.patient_id, now=clock.now(), appointment=appt
        )

    before = snapshot_model(appt)
    with transaction(db):
        apply_transition(appt, S.confirmed, at=_utcnow())
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, "appointment.confirmed", appt, before, meta)
    db.refresh(appt)
    return StatusChange(
        appointment=appt,
        events=[
            notifications.appointment_event(
                notifications.APPOINTMENT_CONFIRMED,
                appt,
                method=method,
                custom_message=custom_message,
            )
        ],
    )


def _authorise_status_change(actor: User, appt: Appointment, target: AppointmentStatus) -> None:
    if actor.role == Role.doctor:
        _require_assigned_doctor(actor, appt)
        if target not in DOCTOR_TARGETS:
            raise AuthorizationError(f"Doctors cannot move appointments to {target.value}")
        return
    if actor.is_staff:
        if target not in STAFF_TARGETS:
            if target == S.completed:
                raise AuthorizationError("Only the assigned doctor can complete an appointment")
            raise AuthorizationError(f"Clinical staff cannot move appointments to {target.value}")
        return
    raise AuthorizationError("Patients cannot change appointment status")


def update_status(
    db: Session,
    *,
    actor: User,
    clock: Clock,
    appointment_id: int,
    payload,
    meta: dict,
) -> StatusChange:
    target = payload.status
    if target == S.assigned:
        raise ValidationError.single("status", "Use the assign action to assign a doctor.")
    if target == S.completed and payload.completion_report is None:
        raise ValidationError.single(
            "completion_report", "A completion report is required to complete an appointment."
        )

    appt = get_appointment_or_404(db, appointment_id)
    _authorise_status_change(actor, appt, target)
    ensure_transition(appt, target)
    if target in PRIORITY_GATED_TARGETS:
        ensure_not_blocked(db, appt)
    now = clock.now()
    if actor.role == Role.doctor and target in ATTENDANCE_GATED_TARGETS:
        ensure_can_attend(db, doctor_id=actor.id, patient_id=appt.patient_id, now=now, appointment=appt)

    before = snapshot_model(appt)
    result = StatusChange(appointment=appt)
    with transaction(db):
        if target == S.pending:
            apply_transition(appt, S.pending)
            appt.doctor_id = None
            appt.assigned_at = None
            appt.needs_reassignment = True
            if payload.reason:
                appt.notes = payload.reason
        else:
            apply_transition(appt, target, at=_utcnow())
        if target == S.cancelled and payload.reason:
            appt.cancellation_reason = payload.reason
        if target == S.rejected and payload.reason:
            appt.rejection_reason = payload.reason
        if payload.notes:
            appt.notes = payload.notes
        if target == S.completed:
            result.completion = complete_appointment(
                db,
                actor=actor,
                appointment=appt,
                report=payload.completion_report,
                visit_date=now.date(),
            )
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, f"appointment.{target.value}", appt, before, meta)
    db.refresh(appt)

    if target == S.pending:
        result.events.append(
            notifications.appointment_event(
                notifications.APPOINTMENT_NEEDS_REASSIGNMENT, appt, previous_doctor_id=actor.id
            )
        )
    else:
        result.events.append(notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt))
    if target in {S.completed, S.cancelled, S.rejected}:
        result.events.append(notifications.dashboard_event(f"appointment_{target.value}"))
    return result


def reschedule_appointment(
    db: Session,
    *,
    actor: User,
    clock: Clock,
    appointment_id: int,
    payload,
    meta: dict,
) -> StatusChange:
    appt = get_appointment_or_404(db, appointment_id)
    if not (actor.is_staff or (actor.is_patient and appt.patient_id == actor.id)):
        raise AuthorizationError("You can only reschedule your own appointments")
    if appt.status not in RESCHEDULABLE:
        raise ConflictError(
            f"Appointments in status {appt.status.value} cannot be rescheduled",
            current_status=appt.status.value,
        )
    if payload.date < clock.today():
        raise ValidationError.single("date", "The date must be today or later.")
    _check_grid(payload.time)
    _check_one_per_day(db, appt.patient_id, payload.date, exclude_id=appt.id)
    _check_slot(
        db,
        clock=clock,
        target=payload.date,
        start=payload.time,
        doctor=appt.doctor,
        duration_minutes=appt.duration_minutes,
        exclude_id=appt.id,
    )

    before = snapshot_model(appt)
    with transaction(db):
        appt.date = payload.date
        appt.time = payload.time
        if payload.reason:
            appt.reason = payload.reason
        appt.stamp(actor)
        db.flush()
        _audit(db, actor, "appointment.rescheduled", appt, before, meta)
    db.refresh(appt)
    return StatusChange(
        appointment=appt,
        events=[notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt)],
    )


def cancel_appointment(
    db: Session,
    *,
    actor: User,
    appointment_id: int,
    reason: str | None,
    request_reassignment: bool,
    meta: dict,
) -> StatusChange:
    appt = get_appointment_or_404(db, appointment_id)
    if actor.is_patient:
        if appt.patient_id != actor.id:
            raise AuthorizationError("You can only cancel your own appointments")
        if appt.status not in PATIENT_CANCELLABLE:
            raise ConflictError(
                f"Appointments in status {appt.status.value} cannot be cancelled",
                current_status=appt.status.value,
                requested=S.cancelled.value,
            )
    elif actor.role == Role.doctor:
        _require_assigned_doctor(actor, appt)
    elif not actor.is_staff:
        raise AuthorizationError()

    handing_back = actor.role == Role.doctor and request_reassignment
    target = S.pending if handing_back else S.cancelled
    ensure_transition(appt, target)

    before = snapshot_model(appt)
    with transaction(db):
        if handing_back:
            apply_transition(appt, S.pending)
            appt.doctor_id = None
            appt.assigned_at = None
            appt.needs_reassignment = True
            appt.notes = reason or appt.notes
        else:
            apply_transition(appt, S.cancelled, at=_utcnow())
            appt.cancellation_reason = reason
        appt.stamp(actor)
        db.flush()
        _audit(
            db,
            actor,
            "appointment.handed_back" if handing_back else "appointment.cancelled",
            appt,
            before,
            meta,
        )
    db.refresh(appt)

    if handing_back:
        events = [
            notifications.appointment_event(
                notifications.APPOINTMENT_NEEDS_REASSIGNMENT, appt, previous_doctor_id=actor.id
            )
        ]
    else:
        events = [
            notifications.appointment_event(notifications.APPOINTMENT_UPDATED, appt),
            notifications.dashboard_event("appointment_cancelled"),
        ]
    return StatusChange(appointment=appt, events=events)


def delete_appointment(db: Session, *, actor: User, appointment_id: int, meta: dict) -> list[notifications.Event]:
    appt = get_appointment_or_404(db, appointment_id)
    _require_staff(actor)
    if appt.status == S.in_progress:
        raise ConflictError(
            "Appointments in progress cannot be deleted", current_status=appt.status.value
        )
    before = snapshot_model(appt)
    with transaction(db):
        log_entity_change(db, actor, "appointment.deleted", appt, before=before, deleted=True, meta=meta)
        db.delete(appt)
    return [notifications.dashboard_event("appointment_deleted")]


def list_visible(
    db: Session,
    *,
    actor: User,
    status: AppointmentStatus | None = None,
    on_date: date | None = None,
    doctor_id: int | None = None,
    priority: AppointmentPriority | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Appointment]:
    stmt = select(Appointment).order_by(Appointment.date.desc(), Appointment.time.desc())
    if actor.role == Role.doctor:
        stmt = stmt.where(Appointment.doctor_id == actor.id)
    elif actor.is_patient:
        stmt = stmt.where(Appointment.patient_id == actor.id)
    if status is not None:
        stmt = stmt.where(Appointment.status == status)
    if on_date is not None:
        stmt = stmt.where(Appointment.date == on_date)
    if doctor_id is not None:
        stmt = stmt.where(Appointment.doctor_id == doctor_id)
    if priority is not None:
        stmt = stmt.where(Appointment.priority == priority)
    return list(db.scalars(stmt.limit(limit).offset(offset)).unique())


def triage_queue(db: Session) -> list[Appointment]:
    rows = list(db.scalars(select(Appointment).where(Appointment.status.in_(OUTSTANDING_STATUSES))).unique())
    rows.sort(key=lambda appt: (-PRIORITY_LEVELS[appt.priority], appt.id))
    return rows


def upcoming_for_doctor(db: Session, doctor_id: int, start: date, days: int = 7) -> list[Appointment]:
    stmt = (
        select(Appointment)
        .where(
            Appointment.doctor_id == doctor_id,
            Appointment.date >= start,
            Appointment.date < start + timedelta(days=days),
            Appointment.status.notin_((S.cancelled, S.rejected)),
        )
        .order_by(Appointment.date, Appointment.time)
    )
    return list(db.scalars(stmt).unique())
