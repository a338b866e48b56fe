from datetime import date, time

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.clock import Clock, get_clock
from uni_health.core.errors import AuthorizationError, NotFoundError
from uni_health.db.session import get_db
from uni_health.deps import get_current_user, get_request_meta
from uni_health.models.calendar import StaffSchedule
from uni_health.models.user import Role, User
from uni_health.schemas.appointment import AppointmentOut
from uni_health.schemas.availability import (
    AvailableDoctorOut,
    AvailableSlotsOut,
    StaffScheduleIn,
    StaffScheduleOut,
)
from uni_health.schemas.user import DoctorOut
from uni_health.services.appointments import load_doctor, transaction, upcoming_for_doctor
from uni_health.services.audit import log_entity_change, snapshot_model
from uni_health.services.availability import (
    count_booked_appointments,
    format_slot,
    next_available_slot,
    resolve_availability,
)
from uni_health.services.users import list_doctors

router = APIRouter(prefix="/doctors", tags=["doctors"])


def _doctor_summary(doctor: User | None) -> dict | None:
    if doctor is None:
        return None
    return {"id": doctor.id, "name": doctor.full_name, "specialization": doctor.specialization}


def _ensure_schedule_access(actor: User, doctor_id: int) -> None:
    if actor.is_staff or actor.id == doctor_id:
        return
    raise AuthorizationError("You may only manage your own schedule.")


@router.get("", response_model=list[DoctorOut])
def get_doctors(
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
    specialization: str | None = Query(default=None),
):
    return list_doctors(db, specialization=specialization)


@router.get("/available-slots", response_model=AvailableSlotsOut)
def available_slots(
    date_value: date = Query(alias="date"),
    doctor_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    doctor = load_doctor(db, doctor_id) if doctor_id is not None else None
    availability = resolve_availability(db, date_value, clock=clock, doctor=doctor)
    return {
        "doctor": _doctor_summary(doctor),
        "date": availability.date,
        "available_slots": availability.available_slots,
        "booked_slots": availability.booked_slots,
        "total_available": availability.total_available,
        "closed_reason": availability.closed_reason,
    }


@router.get("/available", response_model=list[AvailableDoctorOut])
def available_doctors(
    date_value: date = Query(alias="date"),
    time_value: time | None = Query(default=None, alias="time"),
    specialization: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    results: list[dict] = []
    for doctor in list_doctors(db, specialization=specialization):
        availability = resolve_availability(db, date_value, clock=clock, doctor=doctor)
        if time_value is not None:
            is_available = format_slot(time_value) in availability.available_slots
        else:
            is_available = bool(availability.available_slots)
        entry = {
            "id": doctor.id,
            "name": doctor.full_name,
            "specialization": doctor.specialization,
            "department": doctor.department,
            "is_available": is_available,
            "appointments_count": count_booked_appointments(db, date_value, doctor.id),
            "available_slots_count": availability.total_available,
            "next_available_slot": None,
            "next_available_date": None,
        }
        if is_available and time_value is None:
            entry["next_available_slot"] = availability.available_slots[0]
            entry["next_available_date"] = date_value
        elif not is_available:
            upcoming = next_available_slot(db, doctor, date_value, clock=clock)
            if upcoming:
                entry["next_available_date"], entry["next_available_slot"] = upcoming
        results.append(entry)
    results.sort(key=lambda item: (not item["is_available"], item["appointments_count"], item["name"]))
    return results


@router.get("/{doctor_id}/appointments/upcoming", response_model=list[AppointmentOut])
def doctor_upcoming(
    doctor_id: int,
    days: int = Query(default=7, ge=1, le=60),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    _ensure_schedule_access(user, doctor_id)
    load_doctor(db, doctor_id)
    return upcoming_for_doctor(db, doctor_id, clock.today(), days=days)


@router.get("/{doctor_id}/schedule", response_model=StaffScheduleOut)
def get_schedule(
    doctor_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _ensure_schedule_access(user, doctor_id)
    schedule = db.scalar(select(StaffSchedule).where(StaffSchedule.user_id == doctor_id))
    if schedule is None:
        raise NotFoundError("Schedule", doctor_id)
    return schedule


@router.put("/{doctor_id}/schedule", response_model=StaffScheduleOut)
def put_schedule(
    doctor_id: int,
    payload: StaffScheduleIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    meta: dict = Depends(get_request_meta),
):
    _ensure_schedule_access(user, doctor_id)
    doctor = load_doctor(db, doctor_id)
    with transaction(db):
        schedule = db.scalar(select(StaffSchedule).where(StaffSchedule.user_id == doctor.id))
        before = snapshot_model(schedule) if schedule else None
        if schedule is None:
            schedule = StaffSchedule(user_id=doctor.id, staff_type=Role.doctor.value)
            db.add(schedule)
        for key, value in payload.model_dump().items():
            setattr(schedule, key, value)
        if schedule.department is None:
            schedule.department = doctor.department
        db.flush()
        action = "schedule.updated" if before else "schedule.created"
        log_entity_change(db, user, action, schedule, before=before, meta=meta)
    db.refresh(schedule)
    return schedule
