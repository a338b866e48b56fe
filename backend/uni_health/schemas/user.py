from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from uni_health.models.user import Role as RoleEnum


class StudentProfile(BaseModel):
    role: Literal["student"] = "student"
    student_id: str = Field(min_length=1, max_length=50)
    department: Optional[str] = None


class AcademicStaffProfile(BaseModel):
    role: Literal["academic_staff"] = "academic_staff"
    staff_no: str = Field(min_length=1, max_length=50)
    department: Optional[str] = None
    faculty: Optional[str] = None


class DoctorProfile(BaseModel):
    role: Literal["doctor"] = "doctor"
    specialization: str = Field(min_length=1, max_length=120)
    medical_license_number: str = Field(min_length=1, max_length=80)
    staff_no: Optional[str] = None
    department: Optional[str] = None


class ClinicalStaffProfile(BaseModel):
    role: Literal["clinical_staff"] = "clinical_staff"
    staff_no: str = Field(min_length=1, max_length=50)
    department: Optional[str] = None


class AdminProfile(BaseModel):
    role: Literal["admin"] = "admin"


RoleProfile = Annotated[
    Union[StudentProfile, AcademicStaffProfile, DoctorProfile, ClinicalStaffProfile, AdminProfile],
    Field(discriminator="role"),
]


class ActorOut(BaseModel):
    """Who did something, as embedded in appointments and audit entries."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    role: RoleEnum


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    full_name: str
    role: RoleEnum
    profile: dict
    is_active: bool
    created_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str = ""
    password: str = Field(min_length=8, max_length=72)
    profile: RoleProfile

    @property
    def role(self) -> RoleEnum:
        return RoleEnum(self.profile.role)


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    profile: Optional[RoleProfile] = None
    is_active: Optional[bool] = None


class DoctorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    email: EmailStr
    specialization: Optional[str] = None
    department: Optional[str] = None
