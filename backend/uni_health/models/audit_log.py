from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Select, String, func, select
from sqlalchemy.orm import Mapped, mapped_column, relationship

from uni_health.models.base import Base


class AuditLog(Base):
    """One row per mutation, holding JSON snapshots of the entity before and after."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    # kept even if the user row is later removed
    actor_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    action: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    request_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    before_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    actor = relationship("User", lazy="joined")

    @property
    def changed_fields(self) -> list[str]:
        before = self.before_json or {}
        after = self.after_json or {}
        return sorted(key for key in before.keys() | after.keys() if before.get(key) != after.get(key))

    @classmethod
    def newest_first(cls, entity_type: str | None = None, entity_id: str | None = None) -> Select:
        stmt = select(cls).order_by(cls.created_at.desc(), cls.id.desc())
        if entity_type:
            stmt = stmt.where(cls.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(cls.entity_id == entity_id)
        return stmt
