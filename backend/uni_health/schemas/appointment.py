from datetime import date, datetime, time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from uni_health.models.appointment import AppointmentPriority, AppointmentStatus
from uni_health.schemas.user import ActorOut


class AppointmentCreate(BaseModel):
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None
    date: date
    time: time
    reason: str = Field(min_length=3, max_length=1000)
    priority: Optional[AppointmentPriority] = None
    type: Optional[str] = Field(default=None, max_length=50)
    specialization: Optional[str] = Field(default=None, max_length=120)
    duration_minutes: Optional[int] = Field(default=None, ge=15, le=240)
    notes: Optional[str] = None


class WalkInCreate(BaseModel):
    patient_id: int
    doctor_id: Optional[int] = None
    reason: str = Field(min_length=3, max_length=1000)
    priority: Optional[AppointmentPriority] = None
    notes: Optional[str] = None


class AssignRequest(BaseModel):
    doctor_id: int
    notes: Optional[str] = Field(default=None, max_length=1000)


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class ConfirmRequest(BaseModel):
    method: Literal["sms", "email", "both"]
    custom_message: Optional[str] = Field(default=None, max_length=500)


class CompletionReport(BaseModel):
    diagnosis: str = Field(min_length=1)
    treatment: str = Field(min_length=1)
    notes: Optional[str] = None
    medications_prescribed: Optional[str] = None
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None


class StatusUpdate(BaseModel):
    status: AppointmentStatus
    completion_report: Optional[CompletionReport] = None
    notes: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=1000)


class RescheduleRequest(BaseModel):
    date: date
    time: time
    reason: Optional[str] = Field(default=None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)
    request_reassignment: bool = False


class PersonSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    specialization: Optional[str] = None


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    patient: Optional[PersonSummary] = None
    doctor_id: Optional[int] = None
    doctor: Optional[PersonSummary] = None
    date: date
    time: time
    duration_minutes: int
    type: str
    reason: Optional[str] = None
    specialization: Optional[str] = None
    priority: AppointmentPriority
    status: AppointmentStatus
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    assigned_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_report: Optional[dict] = None
    needs_reassignment: bool
    created_at: datetime
    updated_at: datetime
    created_by: ActorOut


class StatusUpdateOut(BaseModel):
    appointment: AppointmentOut
    medical_record_created: bool = False
    prescription_created: bool = False
    medical_record_id: Optional[int] = None
    prescription_id: Optional[int] = None


class BlockingAppointmentOut(BaseModel):
    id: int
    priority: AppointmentPriority
    status: AppointmentStatus
    type: str
    date: date
    time: str
    patient_id: int
    patient_name: Optional[str] = None
    reason: Optional[str] = None


class PriorityCheckOut(BaseModel):
    appointment_id: int
    priority: AppointmentPriority
    blocked: bool
    blocking_count: int
    blocking_appointments: list[BlockingAppointmentOut]
