from datetime import date, datetime, time

from sqlalchemy import select

from uni_health.models.appointment import Appointment, AppointmentStatus
from uni_health.models.clinical import MedicalRecord, Prescription
from uni_health.models.user import Role

DAY = "2026-03-02"


def _book(api_client, headers, **overrides):
    payload = {"date": DAY, "time": "10:00", "reason": "Persistent cough"}
    payload.update(overrides)
    return api_client.post("/appointments", json=payload, headers=headers)


def test_student_booking_starts_pending(api_client, auth_headers, student, event_bus):
    res = _book(api_client, auth_headers(student))

    assert res.status_code == 201, res.text
    body = res.json()
    assert body["status"] == "pending"
    assert body["type"] == "student_request"
    assert body["patient_id"] == student.id
    assert body["doctor_id"] is None
    assert body["priority"] == "normal"
    assert event_bus.names() == ["appointment.created", "dashboard.stats_updated"]


def test_booking_validation_errors(api_client, auth_headers, student):
    headers = auth_headers(student)

    misaligned = _book(api_client, headers, time="10:15")
    assert misaligned.status_code == 422
    assert "time" in misaligned.json()["errors"]

    past = _book(api_client, headers, date="2026-02-27")
    assert past.status_code == 422
    assert "date" in past.json()["errors"]

    missing = api_client.post("/appointments", json={"date": DAY}, headers=headers)
    assert missing.status_code == 422
    body = missing.json()
    assert body["message"] == "The given data was invalid."
    assert "time" in body["errors"]


def test_one_appointment_per_day(api_client, auth_headers, student):
    headers = auth_headers(student)
    assert _book(api_client, headers).status_code == 201

    res = _book(api_client, headers, time="14:00")

    assert res.status_code == 422
    assert res.json()["errors"]["date"] == ["Only one appointment per day is allowed."]


def test_doctors_cannot_book(api_client, auth_headers, doctor):
    res = _book(api_client, auth_headers(doctor))
    assert res.status_code == 403


def test_staff_booking_with_doctor_is_scheduled(api_client, auth_headers, staff, doctor, student):
    res = _book(api_client, auth_headers(staff), patient_id=student.id, doctor_id=doctor.id)

    assert res.status_code == 201, res.text
    body = res.json()
    assert body["status"] == "scheduled"
    assert body["doctor"]["id"] == doctor.id
    assert body["specialization"] == "General Practice"
    assert body["assigned_at"] is not None
    assert body["approved_at"] is not None


def test_double_booking_a_doctor_slot(api_client, auth_headers, staff, doctor, make_user):
    headers = auth_headers(staff)
    first = _book(api_client, headers, patient_id=make_user().id, doctor_id=doctor.id)
    assert first.status_code == 201

    second_patient = make_user()
    clash = _book(api_client, headers, patient_id=second_patient.id, doctor_id=doctor.id)
    assert clash.status_code == 422
    assert clash.json()["errors"]["time"] == ["This time slot is already booked"]

    cancel = api_client.put(
        f"/appointments/{first.json()['id']}/cancel", json={"reason": "Moved"}, headers=headers
    )
    assert cancel.status_code == 200, cancel.text

    retry = _book(api_client, headers, patient_id=second_patient.id, doctor_id=doctor.id)
    assert retry.status_code == 201, retry.text


def test_full_lifecycle_to_completion(api_client, auth_headers, db, clock, student, staff, doctor, event_bus):
    created = _book(api_client, auth_headers(student)).json()
    appt_id = created["id"]

    assigned = api_client.put(
        f"/appointments/{appt_id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff)
    )
    assert assigned.status_code == 200, assigned.text
    assert assigned.json()["status"] == "assigned"

    approved = api_client.put(f"/appointments/{appt_id}/approve", headers=auth_headers(staff))
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "scheduled"
    assert approved.json()["type"] == "approved_request"

    early = api_client.put(
        f"/appointments/{appt_id}/confirm", json={"method": "email"}, headers=auth_headers(doctor)
    )
    assert early.status_code == 403
    assert early.json()["reason"] == "too_early"
    assert early.json()["can_attend_from"] == "2026-03-02T09:45:00"

    clock.moment = datetime(2026, 3, 2, 9, 50)
    confirmed = api_client.put(
        f"/appointments/{appt_id}/confirm", json={"method": "email"}, headers=auth_headers(doctor)
    )
    assert confirmed.status_code == 200, confirmed.text
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["confirmed_at"] is not None

    completed = api_client.put(
        f"/appointments/{appt_id}/status",
        json={
            "status": "completed",
            "completion_report": {
                "diagnosis": "Upper respiratory infection",
                "treatment": "Rest and fluids",
                "medications_prescribed": "Paracetamol - 500mg - twice daily",
                "follow_up_required": True,
                "follow_up_date": "2026-03-09",
            },
        },
        headers=auth_headers(doctor),
    )
    assert completed.status_code == 200, completed.text
    body = completed.json()
    assert body["appointment"]["status"] == "completed"
    assert body["medical_record_created"] is True
    assert body["prescription_created"] is True

    db.expire_all()
    records = list(db.scalars(select(MedicalRecord).where(MedicalRecord.appointment_id == appt_id)))
    assert len(records) == 1
    assert records[0].diagnosis == "Upper respiratory infection"
    assert "Follow-up required on 2026-03-09." in records[0].notes
    prescriptions = list(db.scalars(select(Prescription).where(Prescription.appointment_id == appt_id)))
    assert len(prescriptions) == 1
    [medication] = prescriptions[0].medications
    assert (medication.name, medication.dosage, medication.frequency) == ("Paracetamol", "500mg", "Twice daily")

    assert "appointment.confirmed" in event_bus.names()
    assert event_bus.names()[-1] == "dashboard.stats_updated"


def test_completion_requires_a_report(api_client, auth_headers, doctor, make_user, make_appointment):
    appt = make_appointment(make_user(), doctor=doctor, status=AppointmentStatus.confirmed)

    res = api_client.put(
        f"/appointments/{appt.id}/status", json={"status": "completed"}, headers=auth_headers(doctor)
    )

    assert res.status_code == 422
    assert "completion_report" in res.json()["errors"]


def test_only_assigned_doctor_may_complete(api_client, auth_headers, staff, make_user, make_appointment):
    doctor = make_user(Role.doctor)
    other = make_user(Role.doctor)
    appt = make_appointment(make_user(), doctor=doctor, status=AppointmentStatus.confirmed)
    report = {"status": "completed", "completion_report": {"diagnosis": "x", "treatment": "y"}}

    assert api_client.put(f"/appointments/{appt.id}/status", json=report, headers=auth_headers(other)).status_code == 403
    assert api_client.put(f"/appointments/{appt.id}/status", json=report, headers=auth_headers(staff)).status_code == 403


def test_illegal_transition_is_a_conflict(api_client, auth_headers, staff, make_user, make_appointment):
    appt = make_appointment(make_user(), status=AppointmentStatus.completed)

    res = api_client.put(
        f"/appointments/{appt.id}/status", json={"status": "cancelled"}, headers=auth_headers(staff)
    )

    assert res.status_code == 400
    assert res.json()["current_status"] == "completed"


def test_doctor_hand_back_and_reassignment(
    api_client, auth_headers, db, staff, make_user, make_appointment, event_bus
):
    first = make_user(Role.doctor)
    second = make_user(Role.doctor)
    appt = make_appointment(make_user(), doctor=first, status=AppointmentStatus.scheduled)

    handed = api_client.put(
        f"/appointments/{appt.id}/cancel",
        json={"reason": "Conference leave", "request_reassignment": True},
        headers=auth_headers(first),
    )
    assert handed.status_code == 200, handed.text
    body = handed.json()
    assert body["status"] == "pending"
    assert body["doctor_id"] is None
    assert body["needs_reassignment"] is True
    assert event_bus.names() == ["appointment.needs_reassignment"]

    reassigned = api_client.put(
        f"/appointments/{appt.id}/assign", json={"doctor_id": second.id}, headers=auth_headers(staff)
    )
    assert reassigned.status_code == 200, reassigned.text
    assert reassigned.json()["doctor_id"] == second.id
    assert reassigned.json()["needs_reassignment"] is False
    assert event_bus.names()[-1] == "appointment.reassigned"


def test_patient_cannot_see_other_appointments(api_client, auth_headers, make_user, make_appointment):
    owner = make_user()
    stranger = make_user(Role.academic_staff)
    appt = make_appointment(owner)

    assert api_client.get(f"/appointments/{appt.id}", headers=auth_headers(owner)).status_code == 200
    assert api_client.get(f"/appointments/{appt.id}", headers=auth_headers(stranger)).status_code == 403

    listed = api_client.get("/appointments", headers=auth_headers(stranger))
    assert listed.status_code == 200
    assert listed.json() == []


def test_reject_and_reschedule(api_client, auth_headers, staff, student):
    headers = auth_headers(student)
    appt_id = _book(api_client, headers).json()["id"]

    moved = api_client.put(
        f"/appointments/{appt_id}/reschedule", json={"date": "2026-03-03", "time": "14:30"}, headers=headers
    )
    assert moved.status_code == 200, moved.text
    assert moved.json()["date"] == "2026-03-03"
    assert moved.json()["time"] == "14:30:00"

    rejected = api_client.put(
        f"/appointments/{appt_id}/reject", json={"reason": "Not urgent"}, headers=auth_headers(staff)
    )
    assert rejected.status_code == 200, rejected.text
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejection_reason"] == "Not urgent"

    again = api_client.put(
        f"/appointments/{appt_id}/reschedule", json={"date": "2026-03-04", "time": "09:00"}, headers=headers
    )
    assert again.status_code == 400


def test_walk_in_needs_staff_confirmation(api_client, auth_headers, staff, doctor, student):
    created = api_client.post(
        "/appointments/walk-in",
        json={"patient_id": student.id, "doctor_id": doctor.id, "reason": "Sprained ankle"},
        headers=auth_headers(staff),
    )
    assert created.status_code == 201, created.text
    walk_in = created.json()
    assert walk_in["status"] == "waiting"
    assert walk_in["priority"] == "urgent"
    assert walk_in["type"] == "walk_in"
    assert walk_in["time"] == "08:00:00"

    by_doctor = api_client.put(
        f"/appointments/{walk_in['id']}/confirm", json={"method": "sms"}, headers=auth_headers(doctor)
    )
    assert by_doctor.status_code == 403
    assert by_doctor.json()["reason"] == "awaiting_staff_confirmation"

    by_staff = api_client.put(
        f"/appointments/{walk_in['id']}/confirm", json={"method": "sms"}, headers=auth_headers(staff)
    )
    assert by_staff.status_code == 200, by_staff.text

    completed = api_client.put(
        f"/appointments/{walk_in['id']}/status",
        json={"status": "completed", "completion_report": {"diagnosis": "Sprain", "treatment": "Ice"}},
        headers=auth_headers(doctor),
    )
    assert completed.status_code == 200, completed.text
    assert completed.json()["prescription_created"] is False


def test_delete_writes_audit_entry(api_client, auth_headers, db, admin, make_user, make_appointment):
    appt = make_appointment(make_user())

    res = api_client.delete(f"/appointments/{appt.id}", headers=auth_headers(admin))
    assert res.status_code == 204

    assert db.scalar(select(Appointment.id).where(Appointment.id == appt.id)) is None
    audit = api_client.get(f"/audit/appointments/{appt.id}", headers=auth_headers(admin))
    assert audit.status_code == 200
    assert [entry["action"] for entry in audit.json()] == ["appointment.deleted"]


def test_appointment_audit_trail(api_client, auth_headers, staff, doctor, student):
    appt_id = _book(api_client, auth_headers(student)).json()["id"]
    api_client.put(f"/appointments/{appt_id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff))

    res = api_client.get(f"/appointments/{appt_id}/audit", headers=auth_headers(staff))

    assert res.status_code == 200, res.text
    entries = res.json()
    assert {entry["action"] for entry in entries} == {"appointment.created", "appointment.assigned"}
    assigned = next(entry for entry in entries if entry["action"] == "appointment.assigned")
    assert "status" in assigned["changed_fields"]
    assert "doctor_id" in assigned["changed_fields"]


def test_walk_in_without_doctor_gets_one_and_completes(api_client, auth_headers, staff, doctor, student, event_bus):
    created = api_client.post(
        "/appointments/walk-in",
        json={"patient_id": student.id, "reason": "Fever"},
        headers=auth_headers(staff),
    )
    assert created.status_code == 201, created.text
    walk_in_id = created.json()["id"]
    assert created.json()["doctor_id"] is None

    attached = api_client.put(
        f"/appointments/{walk_in_id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff)
    )
    assert attached.status_code == 200, attached.text
    assert attached.json()["status"] == "waiting"
    assert attached.json()["doctor_id"] == doctor.id
    assert attached.json()["assigned_at"] is not None
    assert event_bus.names()[-1] == "appointment.updated"

    confirmed = api_client.put(
        f"/appointments/{walk_in_id}/confirm", json={"method": "sms"}, headers=auth_headers(staff)
    )
    assert confirmed.status_code == 200, confirmed.text

    completed = api_client.put(
        f"/appointments/{walk_in_id}/status",
        json={"status": "completed", "completion_report": {"diagnosis": "Viral fever", "treatment": "Rest"}},
        headers=auth_headers(doctor),
    )
    assert completed.status_code == 200, completed.text
    assert completed.json()["appointment"]["status"] == "completed"


def test_confirmed_walk_in_can_still_get_a_doctor(api_client, auth_headers, staff, doctor, make_user, make_appointment):
    appt = make_appointment(
        make_user(), status=AppointmentStatus.confirmed, type="walk_in", at=time(8, 0)
    )

    res = api_client.put(f"/appointments/{appt.id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff))

    assert res.status_code == 200, res.text
    assert res.json()["status"] == "confirmed"
    assert res.json()["doctor_id"] == doctor.id


def test_assign_after_the_slot_has_started(api_client, auth_headers, clock, staff, doctor, make_user, make_appointment):
    appt = make_appointment(make_user(), at=time(9, 0))
    clock.moment = datetime(2026, 3, 2, 9, 5)

    res = api_client.put(f"/appointments/{appt.id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff))

    assert res.status_code == 200, res.text
    assert res.json()["status"] == "assigned"


def test_assign_overdue_appointment(api_client, auth_headers, staff, doctor, make_user, make_appointment):
    # Friday before the fixed clock's Monday
    appt = make_appointment(make_user(), at=time(14, 0), on=date(2026, 2, 27))

    res = api_client.put(f"/appointments/{appt.id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff))

    assert res.status_code == 200, res.text
    assert res.json()["doctor_id"] == doctor.id


def test_assign_still_refuses_a_taken_doctor_slot(api_client, auth_headers, clock, staff, doctor, make_user, make_appointment):
    make_appointment(make_user(), doctor=doctor, status=AppointmentStatus.scheduled, at=time(9, 0))
    appt = make_appointment(make_user(), at=time(9, 0))
    clock.moment = datetime(2026, 3, 2, 9, 5)

    res = api_client.put(f"/appointments/{appt.id}/assign", json={"doctor_id": doctor.id}, headers=auth_headers(staff))

    assert res.status_code == 422
    assert res.json()["errors"]["time"] == ["This time slot is already booked"]


def test_failed_completion_rolls_everything_back(
    api_client, auth_headers, db, clock, doctor, make_user, make_appointment, monkeypatch
):
    appt = make_appointment(make_user(), doctor=doctor, status=AppointmentStatus.confirmed)
    clock.moment = datetime(2026, 3, 2, 9, 50)

    def broken_prescription(*args, **kwargs):
        raise RuntimeError("prescription store unavailable")

    monkeypatch.setattr("uni_health.services.completion.create_prescription", broken_prescription)

    res = api_client.put(
        f"/appointments/{appt.id}/status",
        json={
            "status": "completed",
            "completion_report": {
                "diagnosis": "Tonsillitis",
                "treatment": "Antibiotics",
                "medications_prescribed": "Penicillin - 250mg - four times daily",
            },
        },
        headers=auth_headers(doctor),
    )

    assert res.status_code == 500
    db.expire_all()
    assert db.get(Appointment, appt.id).status == AppointmentStatus.confirmed
    assert db.get(Appointment, appt.id).completed_at is None
    assert db.scalars(select(MedicalRecord)).all() == []
    trail = api_client.get(f"/appointments/{appt.id}/audit", headers=auth_headers(make_user(Role.admin))).json()
    assert trail == []
