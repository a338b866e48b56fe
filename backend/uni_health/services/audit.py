from __future__ import annotations

from datetime import date, datetime, time
from typing import Any

from fastapi import Request
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from uni_health.models.audit_log import AuditLog
from uni_health.models.user import User

# never copied into audit snapshots
REDACTED_COLUMNS = frozenset({"hashed_password"})


def _jsonable(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def snapshot_model(obj: Any | None) -> dict | None:
    """Column values of an ORM instance as JSON-safe data."""
    if obj is None:
        return None
    return {
        column.key: _jsonable(getattr(obj, column.key))
        for column in inspect(obj).mapper.columns
        if column.key not in REDACTED_COLUMNS
    }


def request_meta(request: Request | None) -> dict[str, str | None]:
    if request is None:
        return {"request_id": None, "ip_address": None}
    return {
        "request_id": request.headers.get("x-request-id"),
        "ip_address": request.client.host if request.client else None,
    }


def log_event(
    db: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id: str,
    before_obj: Any | None = None,
    after_obj: Any | None = None,
    before_data: dict | None = None,
    after_data: dict | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Queue an audit row on the caller's session; it commits with the change."""
    if before_data is None:
        before_data = snapshot_model(before_obj)
    if after_data is None:
        after_data = snapshot_model(after_obj)
    entry = AuditLog(
        actor_user_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        actor_role=actor.role.value if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        request_id=request_id,
        ip_address=ip_address,
        before_json=before_data,
        after_json=after_data,
    )
    db.add(entry)
    return entry


def log_entity_change(
    db: Session,
    actor: User | None,
    action: str,
    entity: Any,
    *,
    before: dict | None = None,
    deleted: bool = False,
    meta: dict | None = None,
) -> AuditLog:
    """Audit ``entity`` under its table's singular name, e.g. ``appointment``."""
    return log_event(
        db,
        actor=actor,
        action=action,
        entity_type=entity.__tablename__.removesuffix("s"),
        entity_id=str(entity.id),
        before_data=before,
        after_obj=None if deleted else entity,
        **(meta or {}),
    )
