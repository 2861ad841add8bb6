"""Protocol completion log ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import UUID

from apex.db.base import Base
from apex.db.types import JSONBCompat


class ProtocolLog(Base):
    __tablename__ = "protocol_logs"
    __table_args__ = (Index("ix_protocol_logs_user_module", "user_id", "module_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    module_id = Column(String(length=120), nullable=False)
    protocol_id = Column(String(length=120), nullable=False)
    module_enrollment_id = Column(UUID(as_uuid=True), nullable=True)
    source = Column(String(length=50), nullable=False, default="manual")
    status = Column(String(length=50), nullable=False, default="completed")
    logged_at = Column(DateTime(timezone=True), nullable=False)
    # Column named "metadata" but attribute renamed to avoid Base.metadata collisions.
    metadata_json = Column("metadata", JSONBCompat, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
