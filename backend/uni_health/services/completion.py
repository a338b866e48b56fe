from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from uni_health.models.appointment import Appointment
from uni_health.models.clinical import MedicalRecord, MedicalRecordType, Prescription
from uni_health.models.user import User
from uni_health.services.clinical_records import MedicationLine, create_medical_record, create_prescription
from uni_health.services.medications import parse_medications


@dataclass
class CompletionResult:
    medical_record: MedicalRecord
    prescription: Prescription | None = None

    @property
    def prescription_created(self) -> bool:
        return self.prescription is not None


def complete_appointment(
    db: Session,
    *,
    actor: User,
    appointment: Appointment,
    report,
    visit_date: date,
) -> CompletionResult:
    """Write the records that a completed appointment leaves behind.

    Runs inside the caller's transaction: a failure here must undo the
    status change too.
    """
    appointment.completion_report = report.model_dump(mode="json")
    doctor_id = appointment.doctor_id or actor.id

    notes = report.notes
    if report.follow_up_required:
        follow_up = "Follow-up required"
        if report.follow_up_date:
            follow_up += f" on {report.follow_up_date.isoformat()}"
        follow_up += "."
        notes = f"{notes}\n{follow_up}" if notes else follow_up

    record = create_medical_record(
        db,
        actor=actor,
        patient_id=appointment.patient_id,
        doctor_id=doctor_id,
        appointment_id=appointment.id,
        record_type=MedicalRecordType.consultation,
        diagnosis=report.diagnosis,
        treatment=report.treatment,
        notes=notes,
        visit_date=visit_date,
    )

    parsed = parse_medications(report.medications_prescribed, visit_date)
    if not parsed:
        return CompletionResult(medical_record=record)

    prescription, _ = create_prescription(
        db,
        patient_id=appointment.patient_id,
        doctor_id=doctor_id,
        appointment_id=appointment.id,
        notes=f"Prescribed on completion of appointment #{appointment.id}",
        medications=[
            MedicationLine(
                name=item.name,
                dosage=item.dosage,
                frequency=item.frequency,
                instructions=item.instructions,
                start_date=item.start_date,
                end_date=item.end_date,
            )
            for item in parsed
        ],
    )
    return CompletionResult(medical_record=record, prescription=prescription)
