"""Outbound appointment events.

Events are published after the request's transaction has committed and are
delivered at most once: a failing bus is logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from uni_health.core.settings import settings
from uni_health.models.appointment import Appointment

logger = logging.getLogger("uni_health.notifications")

APPOINTMENT_CREATED = "appointment.created"
APPOINTMENT_UPDATED = "appointment.updated"
APPOINTMENT_CONFIRMED = "appointment.confirmed"
APPOINTMENT_NEEDS_REASSIGNMENT = "appointment.needs_reassignment"
APPOINTMENT_REASSIGNED = "appointment.reassigned"
PATIENT_WALKED_IN = "appointment.walk_in"
DASHBOARD_STATS_UPDATED = "dashboard.stats_updated"


@dataclass
class Event:
    name: str
    channels: list[str]
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventBus(Protocol):
    def publish(self, event: Event) -> None: ...


class LoggingEventBus:
    def publish(self, event: Event) -> None:
        logger.info("Event %s -> %s", event.name, ", ".join(event.channels))


class InMemoryEventBus:
    def __init__(self) -> None:
        self.events: list[Event] = []

    def publish(self, event: Event) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.name for event in self.events]


class NullEventBus:
    def publish(self, event: Event) -> None:
        return None


def build_event_bus(backend: str | None = None) -> EventBus:
    backend = (backend or settings.notification_backend).strip().lower()
    if backend == "memory":
        return InMemoryEventBus()
    if backend == "none":
        return NullEventBus()
    if backend != "log":
        logger.warning("Unknown notification backend %r, falling back to log", backend)
    return LoggingEventBus()


_event_bus = build_event_bus()


def get_event_bus() -> EventBus:
    return _event_bus


def appointment_payload(appt: Appointment) -> dict[str, Any]:
    return {
        "id": appt.id,
        "patient_id": appt.patient_id,
        "doctor_id": appt.doctor_id,
        "date": appt.date.isoformat(),
        "time": appt.time.strftime("%H:%M"),
        "status": appt.status.value,
        "priority": appt.priority.value,
        "type": appt.type,
        "specialization": appt.specialization,
        "reason": appt.reason,
        "needs_reassignment": appt.needs_reassignment,
    }


def appointment_channels(appt: Appointment) -> list[str]:
    channels = ["appointments", "clinical-staff", f"user.{appt.patient_id}"]
    if appt.doctor_id:
        channels.append(f"doctor.{appt.doctor_id}")
    return channels


def appointment_event(name: str, appt: Appointment, **extra: Any) -> Event:
    payload = {"appointment": appointment_payload(appt)}
    payload.update(extra)
    return Event(name=name, channels=appointment_channels(appt), payload=payload)


def dashboard_event(reason: str) -> Event:
    return Event(name=DASHBOARD_STATS_UPDATED, channels=["clinical-staff", "admin"], payload={"reason": reason})


def dispatch_events(bus: EventBus, events: list[Event]) -> None:
    for event in events:
        try:
            bus.publish(event)
        except Exception:
            logger.exception("Failed to publish %s; delivery dropped", event.name)
