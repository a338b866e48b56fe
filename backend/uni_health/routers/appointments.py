from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.orm import Session

from uni_health.core.clock import Clock, get_clock
from uni_health.db.session import get_db
from uni_health.deps import get_current_user, get_request_meta, require_staff
from uni_health.models.appointment import AppointmentPriority, AppointmentStatus
from uni_health.models.user import User
from uni_health.schemas.appointment import (
    AppointmentCreate,
    AppointmentOut,
    AssignRequest,
    CancelRequest,
    ConfirmRequest,
    PriorityCheckOut,
    RejectRequest,
    RescheduleRequest,
    StatusUpdate,
    StatusUpdateOut,
    WalkInCreate,
)
from uni_health.routers import audit as audit_router
from uni_health.schemas.audit_log import AuditLogOut
from uni_health.services import appointments as service
from uni_health.services.notifications import EventBus, dispatch_events, get_event_bus
from uni_health.services.priority import blocking_summary, find_blocking_appointments

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _publish(background_tasks: BackgroundTasks, bus: EventBus, events) -> None:
    if events:
        background_tasks.add_task(dispatch_events, bus, list(events))


@router.get("", response_model=list[AppointmentOut])
def list_appointments(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    date_filter: date | None = Query(default=None, alias="date"),
    doctor_id: int | None = Query(default=None),
    priority: AppointmentPriority | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    return service.list_visible(
        db,
        actor=user,
        status=status_filter,
        on_date=date_filter,
        doctor_id=doctor_id,
        priority=priority,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.create_appointment(db, actor=user, clock=clock, payload=payload, meta=meta)
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.post("/walk-in", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_walk_in(
    payload: WalkInCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
    clock: Clock = Depends(get_clock),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.create_walk_in(db, actor=user, clock=clock, payload=payload, meta=meta)
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.get("/queue", response_model=list[AppointmentOut])
def triage_queue(
    db: Session = Depends(get_db),
    _user: User = Depends(require_staff),
):
    return service.triage_queue(db)


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    appt = service.get_appointment_or_404(db, appointment_id)
    service.ensure_can_view(user, appt)
    return appt


@router.get("/{appointment_id}/priority-check", response_model=PriorityCheckOut)
def priority_check(
    appointment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    appt = service.get_appointment_or_404(db, appointment_id)
    service.ensure_can_view(user, appt)
    blocking = find_blocking_appointments(db, exclude_id=appt.id, priority=appt.priority)
    return {
        "appointment_id": appt.id,
        "priority": appt.priority,
        "blocked": bool(blocking),
        "blocking_count": len(blocking),
        "blocking_appointments": [blocking_summary(item) for item in blocking],
    }


@router.put("/{appointment_id}/assign", response_model=AppointmentOut)
def assign_appointment(
    appointment_id: int,
    payload: AssignRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.assign_appointment(
        db,
        actor=user,
        clock=clock,
        appointment_id=appointment_id,
        doctor_id=payload.doctor_id,
        notes=payload.notes,
        meta=meta,
    )
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.put("/{appointment_id}/approve", response_model=AppointmentOut)
def approve_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.approve_appointment(db, actor=user, appointment_id=appointment_id, meta=meta)
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.put("/{appointment_id}/reject", response_model=AppointmentOut)
def reject_appointment(
    appointment_id: int,
    payload: RejectRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.reject_appointment(
        db, actor=user, appointment_id=appointment_id, reason=payload.reason, meta=meta
    )
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.put("/{appointment_id}/confirm", response_model=AppointmentOut)
def confirm_appointment(
    appointment_id: int,
    payload: ConfirmRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.confirm_appointment(
        db,
        actor=user,
        clock=clock,
        appointment_id=appointment_id,
        method=payload.method,
        custom_message=payload.custom_message,
        meta=meta,
    )
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.put("/{appointment_id}/status", response_model=StatusUpdateOut)
def update_status(
    appointment_id: int,
    payload: StatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.update_status(
        db, actor=user, clock=clock, appointment_id=appointment_id, payload=payload, meta=meta
    )
    _publish(background_tasks, bus, change.events)
    completion = change.completion
    return {
        "appointment": change.appointment,
        "medical_record_created": completion is not None,
        "prescription_created": bool(completion and completion.prescription_created),
        "medical_record_id": completion.medical_record.id if completion else None,
        "prescription_id": completion.prescription.id if completion and completion.prescription else None,
    }


@router.put("/{appointment_id}/reschedule", response_model=AppointmentOut)
def reschedule_appointment(
    appointment_id: int,
    payload: RescheduleRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.reschedule_appointment(
        db, actor=user, clock=clock, appointment_id=appointment_id, payload=payload, meta=meta
    )
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.put("/{appointment_id}/cancel", response_model=AppointmentOut)
def cancel_appointment(
    appointment_id: int,
    payload: CancelRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    change = service.cancel_appointment(
        db,
        actor=user,
        appointment_id=appointment_id,
        reason=payload.reason,
        request_reassignment=payload.request_reassignment,
        meta=meta,
    )
    _publish(background_tasks, bus, change.events)
    return change.appointment


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
    meta: dict = Depends(get_request_meta),
):
    events = service.delete_appointment(db, actor=user, appointment_id=appointment_id, meta=meta)
    _publish(background_tasks, bus, events)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{appointment_id}/audit", response_model=list[AuditLogOut])
def appointment_audit(
    appointment_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_staff),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    return audit_router.appointment_audit(appointment_id, db=db, _user=_user, limit=limit, offset=offset)
