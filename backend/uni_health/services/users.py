from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from uni_health.core.security import hash_password
from uni_health.models.user import Role, User


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower().strip()))


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str = "",
    role: Role = Role.student,
    profile: dict | None = None,
    is_active: bool = True,
    commit: bool = True,
) -> User:
    user = User(
        email=email.lower().strip(),
        full_name=full_name,
        role=role,
        profile=profile or {},
        is_active=is_active,
        hashed_password=hash_password(password),
    )
    db.add(user)
    if commit:
        db.commit()
        db.refresh(user)
    else:
        db.flush()
    return user


def user_count(db: Session) -> int:
    return int(db.scalar(select(func.count(User.id))) or 0)


def seed_initial_admin(db: Session, *, email: str, password: str) -> bool:
    if user_count(db) > 0:
        return False
    create_user(db, email=email, password=password, full_name="Admin", role=Role.admin)
    return True


def list_doctors(db: Session, *, specialization: str | None = None, active_only: bool = True) -> list[User]:
    stmt = select(User).where(User.role == Role.doctor).order_by(User.full_name)
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    doctors = list(db.scalars(stmt))
    if specialization:
        wanted = specialization.strip().lower()
        doctors = [doc for doc in doctors if (doc.specialization or "").lower() == wanted]
    return doctors
