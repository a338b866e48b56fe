from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from uni_health.db.session import get_db
from uni_health.deps import get_current_user, get_request_meta, require_admin
from uni_health.models.user import User
from uni_health.schemas.clinic_settings import ClinicSettingsIn, ClinicSettingsOut
from uni_health.services.appointments import transaction
from uni_health.services.clinic_settings import load_clinic_settings, save_clinic_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/clinic", response_model=ClinicSettingsOut)
def get_clinic_settings(
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return load_clinic_settings(db)


@router.put("/clinic", response_model=ClinicSettingsOut)
def update_clinic_settings(
    payload: ClinicSettingsIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    meta: dict = Depends(get_request_meta),
):
    with transaction(db):
        save_clinic_settings(db, actor=user, payload=payload, meta=meta)
    return load_clinic_settings(db)
