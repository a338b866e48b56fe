from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from uni_health.db.session import get_db
from uni_health.deps import require_admin, require_staff
from uni_health.models.audit_log import AuditLog
from uni_health.models.user import User
from uni_health.schemas.audit_log import AuditLogOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditLogOut])
def list_audit(
    db: Session = Depends(get_db),
    _user: User = Depends(require_admin),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    stmt = AuditLog.newest_first(entity_type, entity_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    return list(db.scalars(stmt.limit(limit).offset(offset)))


@router.get("/appointments/{appointment_id}", response_model=list[AuditLogOut])
def appointment_audit(
    appointment_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_staff),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    stmt = AuditLog.newest_first("appointment", str(appointment_id)).limit(limit).offset(offset)
    return list(db.scalars(stmt))
