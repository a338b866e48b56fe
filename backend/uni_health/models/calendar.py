from __future__ import annotations

import enum
from datetime import date, time

from sqlalchemy import JSON, Boolean, Date, Enum, ForeignKey, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from uni_health.models.base import Base, TimestampMixin


class HolidayType(str, enum.Enum):
    holiday = "holiday"
    exam_period = "exam_period"
    break_ = "break"
    closure = "closure"


ALL_STAFF = "all"


class AcademicHoliday(Base, TimestampMixin):
    __tablename__ = "academic_holidays"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    type: Mapped[HolidayType] = mapped_column(
        Enum(HolidayType, name="holiday_type", values_callable=lambda e: [m.value for m in e]),
        default=HolidayType.holiday,
        nullable=False,
    )
    affects_staff_type: Mapped[str] = mapped_column(String(50), default=ALL_STAFF, nullable=False)
    # empty list means every department
    affected_departments: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    blocks_appointments: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def affects_staff(self, staff_type: str | None) -> bool:
        if self.affects_staff_type == ALL_STAFF:
            return True
        return staff_type is not None and self.affects_staff_type == staff_type

    def affects_department(self, department: str | None) -> bool:
        if not self.affected_departments:
            return True
        return department is not None and department in self.affected_departments

    @property
    def is_practice_wide(self) -> bool:
        return self.affects_staff_type == ALL_STAFF and not self.affected_departments


class StaffSchedule(Base, TimestampMixin):
    __tablename__ = "staff_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    staff_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # ISO weekdays, 1=Monday .. 7=Sunday
    working_days: Mapped[list] = mapped_column(JSON, default=lambda: [1, 2, 3, 4, 5], nullable=False)
    working_hours_start: Mapped[time | None] = mapped_column(Time, nullable=True)
    working_hours_end: Mapped[time | None] = mapped_column(Time, nullable=True)
    follows_academic_calendar: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def is_working_day(self, target: date) -> bool:
        return target.isoweekday() in (self.working_days or [])
