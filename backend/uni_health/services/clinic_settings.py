from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.models.clinic_settings import ClinicSettings
from uni_health.models.user import User
from uni_health.schemas.clinic_settings import ClinicSettingsIn, ClinicSettingsOut
from uni_health.services.audit import log_entity_change, snapshot_model

logger = logging.getLogger("uni_health.clinic_settings")

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def default_settings() -> dict:
    hours = [
        {"day": day, "open_time": "08:00", "close_time": "17:00", "is_closed": False}
        for day in WEEKDAYS[:5]
    ]
    hours.append({"day": "Saturday", "open_time": "09:00", "close_time": "13:00", "is_closed": False})
    hours.append({"day": "Sunday", "open_time": None, "close_time": None, "is_closed": True})
    return {
        "clinic_hours": hours,
        "appointment_tips": [
            {"title": "Arrive early", "description": "Please arrive 15 minutes before your scheduled time.", "order": 1},
            {"title": "Bring documents", "description": "Bring your student or staff ID card.", "order": 2},
            {
                "title": "Cancellation",
                "description": "Cancel at least 24 hours in advance if you cannot attend.",
                "order": 3,
            },
        ],
        "emergency_contacts": [
            {"name": "Campus Emergency", "phone": "+90 392 630 1010", "order": 1},
            {"name": "Ambulance", "phone": "112", "order": 2},
            {"name": "Clinic Reception", "phone": "+90 392 630 1234", "order": 3},
        ],
    }


def _ordered(data: ClinicSettingsIn) -> dict:
    payload = data.model_dump(mode="json")
    payload["clinic_hours"].sort(key=lambda entry: WEEKDAYS.index(entry["day"]))
    payload["appointment_tips"].sort(key=lambda entry: entry["order"])
    payload["emergency_contacts"].sort(key=lambda entry: entry["order"])
    return payload


def get_settings_row(db: Session) -> ClinicSettings | None:
    return db.scalar(select(ClinicSettings).order_by(ClinicSettings.id).limit(1))


def load_clinic_settings(db: Session) -> ClinicSettingsOut:
    row = get_settings_row(db)
    if row is None:
        return ClinicSettingsOut(**default_settings(), is_default=True)
    return ClinicSettingsOut(**row.settings_data, updated_at=row.updated_at)


def save_clinic_settings(db: Session, *, actor: User, payload: ClinicSettingsIn, meta: dict) -> ClinicSettings:
    """Replace the stored settings; caller owns the transaction."""
    row = get_settings_row(db)
    before = snapshot_model(row)
    if row is None:
        logger.info("Creating clinic settings (user %s)", actor.id)
        row = ClinicSettings(settings_data={})
        db.add(row)
    row.settings_data = _ordered(payload)
    row.updated_by_user_id = actor.id
    db.flush()
    log_entity_change(db, actor, "clinic_settings.updated", row, before=before, meta=meta)
    return row
