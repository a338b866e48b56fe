import os

# must be set before uni_health.db.session builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("NOTIFICATION_BACKEND", "memory")

from datetime import datetime, time  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from uni_health.core.clock import FixedClock, get_clock  # noqa: E402
from uni_health.core.security import create_access_token  # noqa: E402
from uni_health.core.settings import settings  # noqa: E402
from uni_health.db.session import SessionLocal, engine  # noqa: E402
from uni_health.main import app  # noqa: E402
from uni_health.models import Base  # noqa: E402
from uni_health.models.appointment import Appointment, AppointmentPriority, AppointmentStatus  # noqa: E402
from uni_health.models.user import Role  # noqa: E402
from uni_health.services.notifications import InMemoryEventBus, get_event_bus  # noqa: E402
from uni_health.services.users import create_user  # noqa: E402

# Monday; appointments in the tests default to later that morning
NOW = datetime(2026, 3, 2, 8, 0)

PROFILES = {
    Role.student: {"student_id": "S1000", "department": "Engineering"},
    Role.academic_staff: {"staff_no": "A200", "department": "History"},
    Role.doctor: {"specialization": "General Practice", "medical_license_number": "MD-1"},
    Role.clinical_staff: {"staff_no": "C300"},
    Role.admin: {},
}


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def event_bus():
    return InMemoryEventBus()


@pytest.fixture()
def api_client(db, clock, event_bus):
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role: Role = Role.student, **profile):
        counter["n"] += 1
        data = dict(PROFILES[role])
        data.update(profile)
        return create_user(
            db,
            email=f"{role.value}{counter['n']}@example.com",
            password="Password123!",
            full_name=f"{role.value.replace('_', ' ').title()} {counter['n']}",
            role=role,
            profile=data,
        )

    return _make


def token_headers(user) -> dict[str, str]:
    token, _ = create_access_token(
        user.id,
        user.role.value,
        secret=settings.secret_key,
        alg=settings.jwt_alg,
        expires_minutes=30,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers():
    return token_headers


@pytest.fixture()
def student(make_user):
    return make_user(Role.student)


@pytest.fixture()
def doctor(make_user):
    return make_user(Role.doctor)


@pytest.fixture()
def staff(make_user):
    return make_user(Role.clinical_staff)


@pytest.fixture()
def admin(make_user):
    return make_user(Role.admin)


@pytest.fixture()
def make_appointment(db):
    def _make(patient, *, doctor=None, status=AppointmentStatus.pending, priority=AppointmentPriority.normal,
              at=time(10, 0), on=None, type="consultation", duration_minutes=30):
        appt = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id if doctor else None,
            date=on or NOW.date(),
            time=at,
            duration_minutes=duration_minutes,
            type=type,
            reason="Check-up",
            priority=priority,
            status=status,
            created_by_user_id=patient.id,
        )
        db.add(appt)
        db.commit()
        db.refresh(appt)
        return appt

    return _make
