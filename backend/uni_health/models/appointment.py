from __future__ import annotations

import enum
from datetime import date, datetime, time, timedelta

from sqlalchemy import JSON, Boolean, Date, DateTime, Enum, ForeignKey, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from uni_health.models.base import AuthoredMixin, Base


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    under_review = "under_review"
    assigned = "assigned"
    scheduled = "scheduled"
    confirmed = "confirmed"
    waiting = "waiting"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    rejected = "rejected"


class AppointmentPriority(str, enum.Enum):
    normal = "normal"
    high = "high"
    urgent = "urgent"

    @property
    def level(self) -> int:
        return PRIORITY_LEVELS[self]


PRIORITY_LEVELS = {
    AppointmentPriority.normal: 1,
    AppointmentPriority.high: 2,
    AppointmentPriority.urgent: 3,
}

WALK_IN_TYPE = "walk_in"


class Appointment(Base, AuthoredMixin):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    doctor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    type: Mapped[str] = mapped_column(String(50), default="consultation", nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    specialization: Mapped[str | None] = mapped_column(String(120), nullable=True)
    priority: Mapped[AppointmentPriority] = mapped_column(
        Enum(AppointmentPriority, name="appointment_priority"),
        default=AppointmentPriority.normal,
        nullable=False,
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status"),
        default=AppointmentStatus.pending,
        nullable=False,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_report: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    needs_reassignment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    patient = relationship("User", foreign_keys=[patient_id], lazy="joined")
    doctor = relationship("User", foreign_keys=[doctor_id], lazy="joined")

    @property
    def is_walk_in(self) -> bool:
        return self.type == WALK_IN_TYPE

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.time)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes or 30)
