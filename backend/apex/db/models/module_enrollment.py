"""Module enrollment ORM model (owns streak and freeze state)."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from apex.db.base import Base


class ModuleEnrollment(Base):
    __tablename__ = "module_enrollment"
    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_module_enrollment_user_module"),
        Index("ix_module_enrollment_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    module_id = Column(String(length=120), nullable=False)
    is_primary = Column(Boolean, nullable=False, server_default=sa_text("false"))
    current_streak = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    longest_streak = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    last_active_date = Column(Date, nullable=True)
    streak_freeze_available = Column(Boolean, nullable=False, default=True, server_default=sa_text("true"))
    streak_freeze_used_date = Column(Date, nullable=True)
    progress_pct = Column(Float, nullable=False, default=0.0, server_default=sa_text("0"))
    enrolled_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
