from __future__ import annotations

import enum
from datetime import datetime
from sqlalchemy import JSON, Boolean, DateTime, Enum, String, func
from sqlalchemy.orm import Mapped, mapped_column

from uni_health.models.base import Base


class Role(str, enum.Enum):
    student = "student"
    academic_staff = "academic_staff"
    doctor = "doctor"
    clinical_staff = "clinical_staff"
    admin = "admin"


PATIENT_ROLES = frozenset({Role.student, Role.academic_staff})
STAFF_ROLES = frozenset({Role.clinical_staff, Role.admin})


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role_enum"), default=Role.student, nullable=False)
    # role-specific fields, shape checked by uni_health.schemas.user.RoleProfile
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def is_patient(self) -> bool:
        return self.role in PATIENT_ROLES

    @property
    def is_doctor(self) -> bool:
        return self.role == Role.doctor

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def specialization(self) -> str | None:
        return (self.profile or {}).get("specialization")

    @property
    def department(self) -> str | None:
        return (self.profile or {}).get("department")
