"""Live nudge ORM model for streak maintenance events."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, String, Text, UniqueConstraint, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from apex.db.base import Base


class Nudge(Base):
    __tablename__ = "live_nudges"
    __table_args__ = (
        UniqueConstraint("user_id", "nudge_key", name="uq_live_nudges_user_nudge_key"),
        Index("ix_live_nudges_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    nudge_key = Column(String(length=200), nullable=False)
    module_id = Column(String(length=120), nullable=False)
    # streak_preserved | lapse_recovery
    type = Column(String(length=50), nullable=False)
    category = Column(String(length=50), nullable=False, server_default=sa_text("'streak_maintenance'"))
    title = Column(Text, nullable=False)
    nudge_text = Column(Text, nullable=False)
    reasoning = Column(Text, nullable=True)
    confidence_score = Column(Float, nullable=True)
    priority = Column(String(length=20), nullable=False, server_default=sa_text("'medium'"))
    status = Column(String(length=20), nullable=False, server_default=sa_text("'pending'"))
    source = Column(String(length=50), nullable=False, server_default=sa_text("'streak_maintenance'"))
    delivery_status = Column(String(length=20), nullable=True)
    delivery_reason = Column(Text, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
