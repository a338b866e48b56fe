import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from uni_health.core.security import create_access_token, hash_password, password_needs_rehash, verify_password
from uni_health.core.settings import settings
from uni_health.db.session import get_db
from uni_health.deps import get_current_user, get_request_meta
from uni_health.models.user import User
from uni_health.schemas.auth import LoginRequest, Token
from uni_health.schemas.user import UserOut
from uni_health.services.audit import log_event
from uni_health.services.users import get_user_by_email

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("uni_health.auth")


@router.post("/login", response_model=Token)
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    meta: dict = Depends(get_request_meta),
):
    user = get_user_by_email(db, payload.email)
    if user and not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    if not user or not verify_password(payload.password, user.hashed_password):
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if password_needs_rehash(user.hashed_password):
        user.hashed_password = hash_password(payload.password)
    token, expires_at = create_access_token(
        user.id,
        user.role.value,
        secret=settings.secret_key,
        alg=settings.jwt_alg,
        expires_minutes=settings.access_token_expire_minutes,
    )
    log_event(
        db,
        actor=user,
        action="auth.login",
        entity_type="user",
        entity_id=str(user.id),
        **meta,
    )
    db.commit()
    return Token(access_token=token, expires_at=expires_at, role=user.role)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user
