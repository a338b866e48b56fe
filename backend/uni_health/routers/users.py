from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from uni_health.db.session import get_db
from uni_health.deps import get_request_meta, require_admin
from uni_health.models.user import Role, User
from uni_health.schemas.user import UserCreate, UserOut, UserUpdate
from uni_health.services.audit import log_event, snapshot_model
from uni_health.services.users import create_user, get_user_by_email

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserOut])
def list_users(
    db: Session = Depends(get_db),
    _=Depends(require_admin),
    role: Role | None = None,
):
    stmt = select(User).order_by(User.id)
    if role is not None:
        stmt = stmt.where(User.role == role)
    return list(db.scalars(stmt))


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    meta: dict = Depends(get_request_meta),
):
    if get_user_by_email(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    user = create_user(
        db,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        role=payload.role,
        profile=payload.profile.model_dump(exclude={"role"}),
        commit=False,
    )
    log_event(
        db,
        actor=admin,
        action="user.created",
        entity_type="user",
        entity_id=str(user.id),
        after_data={"email": user.email, "role": user.role.value},
        **meta,
    )
    db.commit()
    db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.patch("/{user_id}", response_model=UserOut)
def patch_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    meta: dict = Depends(get_request_meta),
):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    before = snapshot_model(user)
    if payload.full_name is not None:
        user.full_name = payload.full_name
    if payload.profile is not None:
        user.role = Role(payload.profile.role)
        user.profile = payload.profile.model_dump(exclude={"role"})
    if payload.is_active is not None:
        if user.id == admin.id and not payload.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot disable yourself")
        user.is_active = payload.is_active
    log_event(
        db,
        actor=admin,
        action="user.updated",
        entity_type="user",
        entity_id=str(user.id),
        before_data=before,
        after_obj=user,
        **meta,
    )
    db.commit()
    db.refresh(user)
    return user
