from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.clock import Clock
from uni_health.core.settings import parse_working_windows, settings
from uni_health.models.appointment import Appointment
from uni_health.models.calendar import AcademicHoliday, StaffSchedule
from uni_health.models.user import Role, User
from uni_health.services.appointment_status import OCCUPYING_STATUSES

logger = logging.getLogger("uni_health.availability")

# used when configured working hours cannot be read
DEFAULT_SLOTS = (
    "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
    "14:00", "14:30", "15:00", "15:30", "16:00", "16:30",
)
DEFAULT_WORKING_DAYS = (1, 2, 3, 4, 5)


@dataclass
class Availability:
    date: date
    doctor: User | None = None
    available_slots: list[str] = field(default_factory=list)
    booked_slots: list[str] = field(default_factory=list)
    closed_reason: str | None = None
    degraded: bool = False
    grid: list[time] = field(default_factory=list, repr=False)

    @property
    def total_available(self) -> int:
        return len(self.available_slots)


def format_slot(value: time) -> str:
    return value.strftime("%H:%M")


def slot_grid(windows: list[tuple[time, time]], slot_minutes: int | None = None) -> list[time]:
    """Start times of every whole slot that fits inside the windows."""
    step = timedelta(minutes=slot_minutes or settings.slot_minutes)
    anchor = date(2000, 1, 1)
    slots: list[time] = []
    for start, end in windows:
        cursor = datetime.combine(anchor, start)
        limit = datetime.combine(anchor, end)
        while cursor + step <= limit:
            slots.append(cursor.time())
            cursor += step
    return slots


def overlapping_slots(
    grid: list[time],
    start: time,
    duration_minutes: int,
    slot_minutes: int | None = None,
) -> set[time]:
    """Grid slots ``[s, s+slot)`` that intersect ``[start, start+duration)``."""
    step = timedelta(minutes=slot_minutes or settings.slot_minutes)
    anchor = date(2000, 1, 1)
    busy_start = datetime.combine(anchor, start)
    busy_end = busy_start + timedelta(minutes=duration_minutes or settings.slot_minutes)
    hits: set[time] = set()
    for slot in grid:
        slot_start = datetime.combine(anchor, slot)
        if busy_start < slot_start + step and busy_end > slot_start:
            hits.add(slot)
    return hits


def _default_grid() -> tuple[list[time], bool]:
    try:
        windows = parse_working_windows(settings.default_working_windows)
    except ValueError as exc:
        logger.warning(
            "Working hours unavailable (%s); serving built-in default slots", exc
        )
        return [time.fromisoformat(value) for value in DEFAULT_SLOTS], True
    return slot_grid(windows), False


def _schedule_grid(schedule: StaffSchedule | None) -> tuple[list[time], bool]:
    if schedule is None or not (schedule.working_hours_start and schedule.working_hours_end):
        return _default_grid()
    if schedule.working_hours_end <= schedule.working_hours_start:
        logger.warning(
            "Staff schedule %s for user %s has unusable hours %s-%s; serving built-in default slots",
            schedule.id,
            schedule.user_id,
            schedule.working_hours_start,
            schedule.working_hours_end,
        )
        return [time.fromisoformat(value) for value in DEFAULT_SLOTS], True
    grid = slot_grid([(schedule.working_hours_start, schedule.working_hours_end)])
    if not grid:
        return _default_grid()
    return grid, False


def get_schedule(db: Session, user_id: int) -> StaffSchedule | None:
    return db.scalar(
        select(StaffSchedule).where(StaffSchedule.user_id == user_id, StaffSchedule.is_active.is_(True))
    )


def find_blocking_holiday(
    db: Session,
    target: date,
    *,
    staff_type: str | None = None,
    department: str | None = None,
    practice_wide_only: bool = False,
) -> AcademicHoliday | None:
    stmt = (
        select(AcademicHoliday)
        .where(
            AcademicHoliday.is_active.is_(True),
            AcademicHoliday.blocks_appointments.is_(True),
            AcademicHoliday.start_date <= target,
            AcademicHoliday.end_date >= target,
        )
        .order_by(AcademicHoliday.start_date)
    )
    for holiday in db.scalars(stmt):
        if practice_wide_only:
            if holiday.is_practice_wide:
                return holiday
            continue
        if holiday.affects_staff(staff_type) and holiday.affects_department(department):
            return holiday
    return None


def _booked_appointments(
    db: Session,
    target: date,
    doctor_id: int | None,
    exclude_appointment_id: int | None,
) -> list[Appointment]:
    stmt = select(Appointment).where(
        Appointment.date == target,
        Appointment.status.in_(OCCUPYING_STATUSES),
    )
    if doctor_id is not None:
        stmt = stmt.where(Appointment.doctor_id == doctor_id)
    if exclude_appointment_id is not None:
        stmt = stmt.where(Appointment.id != exclude_appointment_id)
    return list(db.scalars(stmt).unique())


def resolve_availability(
    db: Session,
    target: date,
    *,
    clock: Clock,
    doctor: User | None = None,
    exclude_appointment_id: int | None = None,
    include_elapsed: bool = False,
) -> Availability:
    """Bookable grid slots for ``doctor`` on ``target``.

    Without a doctor the booked slots of every doctor on that date are
    pooled and the complement of the default grid is returned. Past dates
    and slots that already started are dropped unless ``include_elapsed``
    is set, which is how an existing appointment is re-checked in place.
    """
    result = Availability(date=target, doctor=doctor)

    if doctor is not None:
        schedule = get_schedule(db, doctor.id)
        if schedule is not None:
            working = schedule.is_working_day(target)
        else:
            working = target.isoweekday() in DEFAULT_WORKING_DAYS
        if not working:
            result.closed_reason = "Doctor does not work on this day."
            return result
        if schedule is None or schedule.follows_academic_calendar:
            holiday = find_blocking_holiday(
                db,
                target,
                staff_type=schedule.staff_type if schedule else Role.doctor.value,
                department=(schedule.department if schedule else None) or doctor.department,
            )
            if holiday:
                result.closed_reason = f"Academic holiday: {holiday.name}"
                return result
        grid, result.degraded = _schedule_grid(schedule)
    else:
        if target.isoweekday() not in DEFAULT_WORKING_DAYS:
            result.closed_reason = "The clinic is closed on this day."
            return result
        holiday = find_blocking_holiday(db, target, practice_wide_only=True)
        if holiday:
            result.closed_reason = f"Academic holiday: {holiday.name}"
            return result
        grid, result.degraded = _default_grid()

    result.grid = grid
    booked: set[time] = set()
    for appt in _booked_appointments(
        db, target, doctor.id if doctor else None, exclude_appointment_id
    ):
        booked |= overlapping_slots(grid, appt.time, appt.duration_minutes)

    now = clock.now()
    if target < now.date() and not include_elapsed:
        result.booked_slots = [format_slot(slot) for slot in grid if slot in booked]
        result.closed_reason = "Date is in the past."
        return result

    available = [slot for slot in grid if slot not in booked]
    if target == now.date() and not include_elapsed:
        available = [slot for slot in available if datetime.combine(target, slot) >= now]

    result.available_slots = [format_slot(slot) for slot in available]
    result.booked_slots = [format_slot(slot) for slot in grid if slot in booked]
    return result


def check_slot(
    db: Session,
    target: date,
    start: time,
    *,
    clock: Clock,
    doctor: User | None = None,
    duration_minutes: int | None = None,
    exclude_appointment_id: int | None = None,
    include_elapsed: bool = False,
) -> tuple[bool, str | None]:
    """Whether an appointment at ``start`` fits the availability of ``target``.

    Returns ``(ok, reason)`` with a user-facing reason on failure.
    """
    availability = resolve_availability(
        db,
        target,
        clock=clock,
        doctor=doctor,
        exclude_appointment_id=exclude_appointment_id,
        include_elapsed=include_elapsed,
    )
    if availability.closed_reason:
        return False, availability.closed_reason
    label = format_slot(start)
    if label in availability.booked_slots:
        return False, "This time slot is already booked"
    if label not in availability.available_slots:
        return False, "This time slot is not available"

    duration = duration_minutes or settings.slot_minutes
    needed = overlapping_slots(availability.grid, start, duration)
    if any(format_slot(slot) in availability.booked_slots for slot in needed):
        return False, "This time slot is already booked"
    if len(needed) * settings.slot_minutes < duration:
        return False, "Appointment runs past working hours"
    return True, None


def next_available_slot(
    db: Session,
    doctor: User,
    start: date,
    *,
    clock: Clock,
    days_ahead: int = 14,
) -> tuple[date, str] | None:
    for offset in range(days_ahead):
        target = start + timedelta(days=offset)
        availability = resolve_availability(db, target, clock=clock, doctor=doctor)
        if availability.available_slots:
            return target, availability.available_slots[0]
    return None


def count_booked_appointments(db: Session, target: date, doctor_id: int) -> int:
    return len(_booked_appointments(db, target, doctor_id, None))
