from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.clock import Clock, get_clock
from uni_health.core.errors import AuthorizationError, ValidationError
from uni_health.db.session import get_db
from uni_health.deps import get_current_user, get_request_meta
from uni_health.models.clinical import MedicalRecord, MedicalRecordType, Prescription
from uni_health.models.user import Role, User
from uni_health.schemas.clinical import (
    MedicalRecordCreate,
    MedicalRecordOut,
    PrescriptionCreate,
    PrescriptionCreateOut,
    PrescriptionOut,
)
from uni_health.services.appointments import get_appointment_or_404, load_patient, transaction
from uni_health.services.attendance import ensure_can_attend
from uni_health.services.audit import log_entity_change, log_event
from uni_health.services.clinical_records import (
    VITAL_FIELDS,
    MedicationLine,
    create_medical_record,
    create_prescription,
)
from uni_health.services.medications import DEFAULT_INSTRUCTIONS

router = APIRouter(tags=["clinical"])

STAFF_RECORD_TYPES = {MedicalRecordType.vital_signs, MedicalRecordType.note}


def _ensure_chart_access(actor: User, patient_id: int) -> None:
    if actor.is_staff or actor.role == Role.doctor or actor.id == patient_id:
        return
    raise AuthorizationError("You do not have access to this patient's records")


def _attending_appointment(db: Session, *, actor: User, patient_id: int, appointment_id: int | None, clock: Clock):
    appointment = None
    if appointment_id is not None:
        appointment = get_appointment_or_404(db, appointment_id)
        if appointment.patient_id != patient_id:
            raise ValidationError.single("appointment_id", "The appointment belongs to another patient.")
    return ensure_can_attend(
        db,
        doctor_id=actor.id,
        patient_id=patient_id,
        now=clock.now(),
        appointment=appointment,
    )


@router.post("/medical-records", response_model=MedicalRecordOut, status_code=status.HTTP_201_CREATED)
def add_medical_record(
    payload: MedicalRecordCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    meta: dict = Depends(get_request_meta),
):
    load_patient(db, payload.patient_id)
    doctor_id = None
    appointment_id = payload.appointment_id
    if user.role == Role.doctor:
        appointment = _attending_appointment(
            db, actor=user, patient_id=payload.patient_id, appointment_id=appointment_id, clock=clock
        )
        doctor_id = user.id
        appointment_id = appointment.id
    elif user.is_staff:
        if payload.type not in STAFF_RECORD_TYPES:
            raise AuthorizationError("Clinical staff may only record vital signs and notes")
    else:
        raise AuthorizationError("Only doctors and clinical staff can add medical records")

    with transaction(db):
        record = create_medical_record(
            db,
            actor=user,
            patient_id=payload.patient_id,
            doctor_id=doctor_id,
            appointment_id=appointment_id,
            record_type=payload.type,
            diagnosis=payload.diagnosis,
            treatment=payload.treatment,
            notes=payload.notes,
            visit_date=payload.visit_date or clock.today(),
            vitals=payload.model_dump(include=set(VITAL_FIELDS)),
        )
        log_entity_change(db, user, "medical_record.created", record, meta=meta)
    db.refresh(record)
    return record


@router.get("/patients/{patient_id}/medical-records", response_model=list[MedicalRecordOut])
def list_medical_records(
    patient_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    record_type: MedicalRecordType | None = Query(default=None, alias="type"),
):
    _ensure_chart_access(user, patient_id)
    stmt = (
        select(MedicalRecord)
        .where(MedicalRecord.patient_id == patient_id)
        .order_by(MedicalRecord.visit_date.desc(), MedicalRecord.id.desc())
    )
    if record_type is not None:
        stmt = stmt.where(MedicalRecord.type == record_type)
    return list(db.scalars(stmt).unique())


@router.post("/prescriptions", response_model=PrescriptionCreateOut, status_code=status.HTTP_201_CREATED)
def add_prescription(
    payload: PrescriptionCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    meta: dict = Depends(get_request_meta),
):
    if user.role != Role.doctor:
        raise AuthorizationError("Only doctors can prescribe")
    load_patient(db, payload.patient_id)
    appointment = _attending_appointment(
        db, actor=user, patient_id=payload.patient_id, appointment_id=payload.appointment_id, clock=clock
    )
    lines = [
        MedicationLine(
            name=item.name.strip(),
            dosage=item.dosage,
            frequency=item.frequency,
            instructions=item.instructions or DEFAULT_INSTRUCTIONS,
            start_date=item.start_date,
            end_date=item.end_date,
        )
        for item in payload.medications
    ]
    with transaction(db):
        prescription, actions = create_prescription(
            db,
            patient_id=payload.patient_id,
            doctor_id=user.id,
            appointment_id=appointment.id,
            notes=payload.notes,
            medications=lines,
            check_conflicts=True,
            force=payload.force,
        )
        log_event(
            db,
            actor=user,
            action="prescription.created",
            entity_type="prescription",
            entity_id=str(prescription.id),
            after_data={
                "medications": [line.name for line in lines],
                "actions_taken": actions,
            },
            **meta,
        )
    db.refresh(prescription)
    return {"prescription": prescription, "actions_taken": actions}


@router.get("/patients/{patient_id}/prescriptions", response_model=list[PrescriptionOut])
def list_prescriptions(
    patient_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _ensure_chart_access(user, patient_id)
    stmt = (
        select(Prescription)
        .where(Prescription.patient_id == patient_id)
        .order_by(Prescription.created_at.desc(), Prescription.id.desc())
    )
    return list(db.scalars(stmt))
