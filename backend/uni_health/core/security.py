from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def password_needs_rehash(hashed_password: str) -> bool:
    return pwd_context.needs_update(hashed_password)


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str | None
    expires_at: datetime


def create_access_token(
    user_id: int,
    role: str,
    *,
    secret: str,
    alg: str,
    expires_minutes: int,
) -> tuple[str, datetime]:
    """Sign a bearer token for ``user_id``; returns the token and its expiry."""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=expires_minutes)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=alg), expires_at


def read_access_token(token: str, *, secret: str, alg: str) -> TokenClaims:
    """Verify ``token`` and return its claims.

    Raises ``jose.JWTError`` for bad signatures or expired tokens and
    ``ValueError`` when the subject is missing or not a user id.
    """
    payload = jwt.decode(token, secret, algorithms=[alg])
    subject = payload.get("sub")
    if not subject:
        raise ValueError("token has no subject")
    return TokenClaims(
        user_id=int(subject),
        role=payload.get("role"),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
