from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError
from sqlalchemy.orm import Session

from uni_health.core.security import read_access_token
from uni_health.core.settings import settings
from uni_health.db.session import get_db
from uni_health.models.user import Role, User
from uni_health.services.audit import request_meta


def get_current_user(
    db: Session = Depends(get_db), authorization: str | None = Header(default=None)
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        claims = read_access_token(token, secret=settings.secret_key, alg=settings.jwt_alg)
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.get(User, claims.user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def require_roles(*roles: Role):
    allowed = {Role(role) for role in roles}

    def _inner(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _inner


require_admin = require_roles(Role.admin)
require_staff = require_roles(Role.clinical_staff, Role.admin)


def get_request_meta(request: Request) -> dict:
    return request_meta(request)
