from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.core.errors import NotFoundError, ValidationError
from uni_health.db.session import get_db
from uni_health.deps import get_current_user, get_request_meta, require_staff
from uni_health.models.calendar import AcademicHoliday
from uni_health.models.user import User
from uni_health.schemas.calendar import HolidayIn, HolidayOut, HolidayUpdate
from uni_health.services.appointments import transaction
from uni_health.services.audit import log_entity_change, snapshot_model

router = APIRouter(prefix="/holidays", tags=["holidays"])


def _get_holiday_or_404(db: Session, holiday_id: int) -> AcademicHoliday:
    holiday = db.get(AcademicHoliday, holiday_id)
    if holiday is None:
        raise NotFoundError("Holiday", holiday_id)
    return holiday


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationError.single("end_date", "The end date must be on or after the start date.")


@router.get("", response_model=list[HolidayOut])
def list_holidays(
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
    active: bool | None = Query(default=None),
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
):
    stmt = select(AcademicHoliday).order_by(AcademicHoliday.start_date, AcademicHoliday.id)
    if active is not None:
        stmt = stmt.where(AcademicHoliday.is_active.is_(active))
    if date_from is not None:
        stmt = stmt.where(AcademicHoliday.end_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(AcademicHoliday.start_date <= date_to)
    return list(db.scalars(stmt))


@router.post("", response_model=HolidayOut, status_code=status.HTTP_201_CREATED)
def create_holiday(
    payload: HolidayIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
    meta: dict = Depends(get_request_meta),
):
    _check_range(payload.start_date, payload.end_date)
    with transaction(db):
        holiday = AcademicHoliday(**payload.model_dump())
        db.add(holiday)
        db.flush()
        log_entity_change(db, user, "holiday.created", holiday, meta=meta)
    db.refresh(holiday)
    return holiday


@router.put("/{holiday_id}", response_model=HolidayOut)
def update_holiday(
    holiday_id: int,
    payload: HolidayUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
    meta: dict = Depends(get_request_meta),
):
    holiday = _get_holiday_or_404(db, holiday_id)
    changes = payload.model_dump(exclude_unset=True)
    _check_range(changes.get("start_date", holiday.start_date), changes.get("end_date", holiday.end_date))
    with transaction(db):
        before = snapshot_model(holiday)
        for key, value in changes.items():
            setattr(holiday, key, value)
        log_entity_change(db, user, "holiday.updated", holiday, before=before, meta=meta)
    db.refresh(holiday)
    return holiday


@router.delete("/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holiday(
    holiday_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
    meta: dict = Depends(get_request_meta),
):
    holiday = _get_holiday_or_404(db, holiday_id)
    with transaction(db):
        log_entity_change(
            db, user, "holiday.deleted", holiday, before=snapshot_model(holiday), deleted=True, meta=meta
        )
        db.delete(holiday)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
