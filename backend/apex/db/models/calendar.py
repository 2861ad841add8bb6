"""Calendar integration and daily meeting-load ORM models.

Only busy-time aggregates are stored. Titles, attendees and locations never
reach this schema.
"""
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
    Text,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from apex.db.base import Base


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_calendar_integrations_user_provider"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(length=50), nullable=False)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_status = Column(String(length=20), nullable=False, server_default=sa_text("'pending'"))
    last_sync_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class DailyCalendarMetrics(Base):
    __tablename__ = "daily_calendar_metrics"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_calendar_metrics_user_date"),
        Index("ix_daily_calendar_metrics_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    meeting_hours = Column(Float, nullable=False, default=0.0)
    meeting_count = Column(Integer, nullable=False, default=0)
    back_to_back_count = Column(Integer, nullable=False, default=0)
    density = Column(Float, nullable=False, default=0.0)
    heavy_day = Column(Boolean, nullable=False, server_default=sa_text("false"))
    overload = Column(Boolean, nullable=False, server_default=sa_text("false"))
    mvd_activated = Column(Boolean, nullable=False, server_default=sa_text("false"))
    provider = Column(String(length=50), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
