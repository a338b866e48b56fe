from __future__ import annotations

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from uni_health.models.base import Base, TimestampMixin


class ClinicSettings(Base, TimestampMixin):
    """Single row of front-desk information shown to patients."""

    __tablename__ = "clinic_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # clinic_hours, appointment_tips and emergency_contacts
    settings_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
