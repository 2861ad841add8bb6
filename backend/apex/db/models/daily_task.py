"""Daily task ORM model written by the nightly scheduler."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from apex.db.base import Base


class DailyTask(Base):
    __tablename__ = "daily_tasks"
    __table_args__ = (
        # task_key = "<protocol_id>_<YYYY-MM-DD>" is the only duplication guard.
        UniqueConstraint("user_id", "task_key", name="uq_daily_tasks_user_task_key"),
        Index("ix_daily_tasks_user_date", "user_id", "task_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    task_key = Column(String(length=160), nullable=False)
    task_date = Column(Date, nullable=False)
    protocol_id = Column(String(length=120), nullable=False)
    module_id = Column(String(length=120), nullable=True)
    title = Column(Text, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    emphasis = Column(String(length=20), nullable=False, server_default=sa_text("'normal'"))
    status = Column(String(length=20), nullable=False, server_default=sa_text("'pending'"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
