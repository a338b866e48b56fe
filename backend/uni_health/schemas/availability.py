from datetime import date, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DoctorSummary(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None


class AvailableSlotsOut(BaseModel):
    doctor: Optional[DoctorSummary] = None
    date: date
    available_slots: list[str]
    booked_slots: list[str]
    total_available: int
    closed_reason: Optional[str] = None


class AvailableDoctorOut(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None
    department: Optional[str] = None
    is_available: bool
    appointments_count: int
    available_slots_count: int
    next_available_slot: Optional[str] = None
    next_available_date: Optional[date] = None


class StaffScheduleIn(BaseModel):
    department: Optional[str] = None
    working_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    working_hours_start: Optional[time] = None
    working_hours_end: Optional[time] = None
    follows_academic_calendar: bool = True
    is_active: bool = True

    @field_validator("working_days")
    @classmethod
    def _valid_days(cls, value: list[int]) -> list[int]:
        if any(day < 1 or day > 7 for day in value):
            raise ValueError("working_days must use ISO weekdays 1-7")
        return sorted(set(value))


class StaffScheduleOut(StaffScheduleIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    staff_type: str
