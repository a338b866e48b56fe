from uni_health.models.base import Base
from uni_health.models.user import Role, User
from uni_health.models.audit_log import AuditLog
from uni_health.models.appointment import Appointment, AppointmentPriority, AppointmentStatus
from uni_health.models.clinical import (
    MedicalRecord,
    MedicalRecordType,
    Medication,
    MedicationStatus,
    Prescription,
    PrescriptionStatus,
)
from uni_health.models.calendar import AcademicHoliday, HolidayType, StaffSchedule
from uni_health.models.clinic_settings import ClinicSettings

__all__ = [
    "Base",
    "Role",
    "User",
    "AuditLog",
    "Appointment",
    "AppointmentPriority",
    "AppointmentStatus",
    "MedicalRecord",
    "MedicalRecordType",
    "Medication",
    "MedicationStatus",
    "Prescription",
    "PrescriptionStatus",
    "AcademicHoliday",
    "HolidayType",
    "StaffSchedule",
    "ClinicSettings",
]
