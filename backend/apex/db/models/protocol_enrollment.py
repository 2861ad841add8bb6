"""Protocol-level enrollment ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from apex.db.base import Base


class ProtocolEnrollment(Base):
    __tablename__ = "user_protocol_enrollment"
    __table_args__ = (
        # Reactivation overwrites this row instead of inserting a second one.
        UniqueConstraint("user_id", "protocol_id", name="uq_user_protocol_enrollment_user_protocol"),
        Index("ix_user_protocol_enrollment_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    protocol_id = Column(String(length=120), nullable=False)
    module_id = Column(String(length=120), nullable=True)
    # HH:MM, UTC
    default_time_utc = Column(String(length=5), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=sa_text("true"))
    enrolled_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
