from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from uni_health.models.clinical import MedicalRecordType, MedicationStatus, PrescriptionStatus


class MedicalRecordCreate(BaseModel):
    patient_id: int
    appointment_id: Optional[int] = None
    type: MedicalRecordType = MedicalRecordType.consultation
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None
    visit_date: Optional[date] = None
    blood_pressure: Optional[str] = Field(default=None, pattern=r"^\d{2,3}/\d{2,3}$")
    heart_rate: Optional[int] = Field(default=None, ge=20, le=250)
    temperature: Optional[float] = Field(default=None, ge=30, le=45)
    respiratory_rate: Optional[int] = Field(default=None, ge=5, le=80)
    oxygen_saturation: Optional[int] = Field(default=None, ge=50, le=100)
    weight: Optional[float] = Field(default=None, gt=0, le=500)
    height: Optional[float] = Field(default=None, gt=0, le=300)
    bmi: Optional[float] = Field(default=None, gt=0, le=100)

    @model_validator(mode="after")
    def _needs_content(self):
        if self.type == MedicalRecordType.vital_signs:
            if not any(
                getattr(self, name) is not None
                for name in ("blood_pressure", "heart_rate", "temperature", "respiratory_rate",
                             "oxygen_saturation", "weight", "height")
            ):
                raise ValueError("Vital signs records need at least one measurement")
        elif not (self.diagnosis or self.treatment or self.notes):
            raise ValueError("A diagnosis, treatment or note is required")
        return self


class MedicalRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: Optional[int] = None
    appointment_id: Optional[int] = None
    type: MedicalRecordType
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None
    visit_date: date
    blood_pressure: Optional[str] = None
    heart_rate: Optional[int] = None
    temperature: Optional[float] = None
    respiratory_rate: Optional[int] = None
    oxygen_saturation: Optional[int] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    bmi: Optional[float] = None
    created_by_user_id: int
    created_at: datetime


class MedicationIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    dosage: str = Field(min_length=1, max_length=120)
    frequency: str = Field(min_length=1, max_length=120)
    instructions: Optional[str] = None
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class PrescriptionCreate(BaseModel):
    patient_id: int
    appointment_id: Optional[int] = None
    notes: Optional[str] = None
    medications: list[MedicationIn] = Field(min_length=1)
    force: bool = False


class MedicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    dosage: str
    frequency: str
    instructions: str
    start_date: date
    end_date: Optional[date] = None
    status: MedicationStatus


class PrescriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    appointment_id: Optional[int] = None
    status: PrescriptionStatus
    notes: Optional[str] = None
    created_at: datetime
    medications: list[MedicationOut]


class PrescriptionCreateOut(BaseModel):
    prescription: PrescriptionOut
    actions_taken: list[str] = Field(default_factory=list)
