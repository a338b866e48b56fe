from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from uni_health.core.errors import PrescriptionConflictError
from uni_health.models.clinical import (
    MedicalRecord,
    MedicalRecordType,
    Medication,
    MedicationStatus,
    Prescription,
    PrescriptionStatus,
)
from uni_health.models.user import User

VITAL_FIELDS = (
    "blood_pressure",
    "heart_rate",
    "temperature",
    "respiratory_rate",
    "oxygen_saturation",
    "weight",
    "height",
    "bmi",
)


@dataclass
class MedicationLine:
    name: str
    dosage: str
    frequency: str
    instructions: str
    start_date: date
    end_date: date | None = None


def compute_bmi(weight_kg: float | None, height_cm: float | None) -> float | None:
    if not weight_kg or not height_cm:
        return None
    metres = height_cm / 100
    return round(weight_kg / (metres * metres), 1)


def create_medical_record(
    db: Session,
    *,
    actor: User,
    patient_id: int,
    visit_date: date,
    record_type: MedicalRecordType = MedicalRecordType.consultation,
    doctor_id: int | None = None,
    appointment_id: int | None = None,
    diagnosis: str | None = None,
    treatment: str | None = None,
    notes: str | None = None,
    vitals: dict[str, Any] | None = None,
) -> MedicalRecord:
    record = MedicalRecord(
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_id=appointment_id,
        type=record_type,
        diagnosis=diagnosis,
        treatment=treatment,
        notes=notes,
        visit_date=visit_date,
        created_by_user_id=actor.id,
    )
    for key, value in (vitals or {}).items():
        if key in VITAL_FIELDS and value is not None:
            setattr(record, key, value)
    if record.bmi is None:
        record.bmi = compute_bmi(record.weight, record.height)
    db.add(record)
    db.flush()
    return record


def overlap_type(
    existing_start: date,
    existing_end: date | None,
    new_start: date,
    new_end: date | None,
) -> str:
    if existing_end is None or new_end is None:
        return "unknown_overlap"
    if new_start <= existing_start and new_end >= existing_end:
        return "complete_overlap"
    if new_start >= existing_start and new_end <= existing_end:
        return "contained_within"
    if new_start < existing_start and existing_start <= new_end < existing_end:
        return "partial_start_overlap"
    if existing_start < new_start <= existing_end and new_end > existing_end:
        return "partial_end_overlap"
    return "unknown_overlap"


def _ranges_overlap(a_start: date, a_end: date | None, b_start: date, b_end: date | None) -> bool:
    return (a_end is None or a_end >= b_start) and (b_end is None or b_end >= a_start)


def find_prescription_conflicts(
    db: Session,
    *,
    patient_id: int,
    doctor_id: int,
    medications: Iterable[MedicationLine],
) -> tuple[list[Prescription], list[tuple[Medication, dict[str, Any]]]]:
    """Active prescriptions from this doctor and overlapping active medications."""
    existing = list(
        db.scalars(
            select(Prescription).where(
                Prescription.patient_id == patient_id,
                Prescription.doctor_id == doctor_id,
                Prescription.status == PrescriptionStatus.active,
            )
        )
    )
    overlaps: list[tuple[Medication, dict[str, Any]]] = []
    for line in medications:
        stmt = select(Medication).where(
            Medication.patient_id == patient_id,
            Medication.status == MedicationStatus.active,
            func.lower(Medication.name) == line.name.strip().lower(),
        )
        for med in db.scalars(stmt):
            if not _ranges_overlap(med.start_date, med.end_date, line.start_date, line.end_date):
                continue
            overlaps.append(
                (
                    med,
                    {
                        "existing_medication_id": med.id,
                        "prescription_id": med.prescription_id,
                        "name": med.name,
                        "dosage": med.dosage,
                        "start_date": med.start_date.isoformat(),
                        "end_date": med.end_date.isoformat() if med.end_date else None,
                        "new_medication": line.name,
                        "overlap_type": overlap_type(
                            med.start_date, med.end_date, line.start_date, line.end_date
                        ),
                    },
                )
            )
    return existing, overlaps


def _conflict_payload(
    existing: list[Prescription], overlaps: list[tuple[Medication, dict[str, Any]]]
) -> list[dict[str, Any]]:
    conflicts: list[dict[str, Any]] = [
        {
            "kind": "existing_prescription",
            "prescription_id": prescription.id,
            "created_at": prescription.created_at.isoformat() if prescription.created_at else None,
            "medications": [
                {"id": med.id, "name": med.name, "dosage": med.dosage, "status": med.status.value}
                for med in prescription.medications
            ],
        }
        for prescription in existing
    ]
    conflicts.extend({"kind": "medication_overlap", **detail} for _, detail in overlaps)
    return conflicts


def create_prescription(
    db: Session,
    *,
    patient_id: int,
    doctor_id: int,
    medications: list[MedicationLine],
    appointment_id: int | None = None,
    notes: str | None = None,
    check_conflicts: bool = False,
    force: bool = False,
) -> tuple[Prescription, list[str]]:
    """Create a prescription with its medication lines.

    With ``check_conflicts`` an existing active prescription from the same
    doctor, or an overlapping active medication, raises
    ``PrescriptionConflictError`` unless ``force`` is set, in which case the
    old entries are completed. Returns the prescription and the actions taken.
    """
    actions: list[str] = []
    if check_conflicts:
        existing, overlaps = find_prescription_conflicts(
            db, patient_id=patient_id, doctor_id=doctor_id, medications=medications
        )
        if existing or overlaps:
            if not force:
                raise PrescriptionConflictError(_conflict_payload(existing, overlaps))
            for prescription in existing:
                prescription.status = PrescriptionStatus.completed
                for med in prescription.medications:
                    if med.status == MedicationStatus.active:
                        med.status = MedicationStatus.completed
                actions.append(f"Completed prescription {prescription.id}")
            touched: dict[int, Prescription] = {}
            for med, _detail in overlaps:
                if med.status == MedicationStatus.active:
                    med.status = MedicationStatus.completed
                    actions.append(f"Completed overlapping medication {med.id}")
                    if med.prescription is not None:
                        touched[med.prescription.id] = med.prescription
            for prescription in touched.values():
                if prescription.status != PrescriptionStatus.active:
                    continue
                if all(med.status != MedicationStatus.active for med in prescription.medications):
                    prescription.status = PrescriptionStatus.completed
                    actions.append(f"Completed prescription {prescription.id}")

    prescription = Prescription(
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_id=appointment_id,
        status=PrescriptionStatus.active,
        notes=notes,
    )
    for line in medications:
        prescription.medications.append(
            Medication(
                patient_id=patient_id,
                name=line.name.strip(),
                dosage=line.dosage,
                frequency=line.frequency,
                instructions=line.instructions,
                start_date=line.start_date,
                end_date=line.end_date,
                status=MedicationStatus.active,
            )
        )
    db.add(prescription)
    db.flush()
    return prescription, actions
