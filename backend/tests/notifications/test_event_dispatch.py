import logging
from datetime import date, time

import pytest

from uni_health.main import app
from uni_health.models.appointment import Appointment, AppointmentPriority, AppointmentStatus
from uni_health.services.notifications import (
    APPOINTMENT_CREATED,
    DASHBOARD_STATS_UPDATED,
    Event,
    InMemoryEventBus,
    LoggingEventBus,
    NullEventBus,
    appointment_event,
    build_event_bus,
    dashboard_event,
    dispatch_events,
    get_event_bus,
)


class ExplodingBus:
    def __init__(self):
        self.attempts = 0

    def publish(self, event):
        self.attempts += 1
        raise RuntimeError("broker offline")


def _appointment(doctor_id=None):
    return Appointment(
        id=7,
        patient_id=3,
        doctor_id=doctor_id,
        date=date(2026, 3, 2),
        time=time(10, 0),
        type="consultation",
        priority=AppointmentPriority.high,
        status=AppointmentStatus.pending,
        needs_reassignment=False,
    )


def test_appointment_event_channels_and_payload():
    event = appointment_event(APPOINTMENT_CREATED, _appointment(doctor_id=5), source="booking")

    assert event.channels == ["appointments", "clinical-staff", "user.3", "doctor.5"]
    assert event.payload["source"] == "booking"
    assert event.payload["appointment"]["time"] == "10:00"
    assert event.payload["appointment"]["priority"] == "high"


def test_unassigned_appointment_has_no_doctor_channel():
    event = appointment_event(APPOINTMENT_CREATED, _appointment())
    assert not any(channel.startswith("doctor.") for channel in event.channels)


def test_dashboard_event():
    event = dashboard_event("appointment_created")
    assert event.name == DASHBOARD_STATS_UPDATED
    assert event.channels == ["clinical-staff", "admin"]


def test_failing_bus_is_logged_not_raised(caplog):
    bus = ExplodingBus()
    events = [Event(name="a", channels=["x"]), Event(name="b", channels=["x"])]

    with caplog.at_level(logging.ERROR, logger="uni_health.notifications"):
        dispatch_events(bus, events)

    # every event is still attempted
    assert bus.attempts == 2
    assert "Failed to publish a" in caplog.text
    assert "Failed to publish b" in caplog.text


def test_dispatch_preserves_order():
    bus = InMemoryEventBus()
    dispatch_events(bus, [Event(name="first", channels=[]), Event(name="second", channels=[])])
    assert bus.names() == ["first", "second"]


@pytest.mark.parametrize(
    "backend,expected",
    [("memory", InMemoryEventBus), ("none", NullEventBus), ("log", LoggingEventBus), (" LOG ", LoggingEventBus)],
)
def test_build_event_bus(backend, expected):
    assert isinstance(build_event_bus(backend), expected)


def test_unknown_backend_falls_back_to_log(caplog):
    with caplog.at_level(logging.WARNING, logger="uni_health.notifications"):
        bus = build_event_bus("carrier-pigeon")

    assert isinstance(bus, LoggingEventBus)
    assert "carrier-pigeon" in caplog.text


def test_booking_still_succeeds_when_bus_fails(api_client, auth_headers, student):
    bus = ExplodingBus()
    app.dependency_overrides[get_event_bus] = lambda: bus

    res = api_client.post(
        "/appointments",
        json={"date": "2026-03-03", "time": "10:00", "reason": "Headache"},
        headers=auth_headers(student),
    )

    assert res.status_code == 201, res.text
    assert bus.attempts >= 1
