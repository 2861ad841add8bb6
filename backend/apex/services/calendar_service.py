"""Calendar sync: persist meeting-load metrics per user per day."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apex.db.models.calendar import CalendarIntegration, DailyCalendarMetrics
from apex.observability.metrics import log_metric
from apex.observability.tracing import trace
from apex.services.meeting_load import MeetingLoadMetrics, calculate_meeting_load
from apex.services.timeutils import as_utc, parse_date, utcnow
from apex.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

CALENDAR_PROVIDERS = ("device", "google_calendar")


@dataclass
class SyncResult:
    success: bool
    metrics: Optional[MeetingLoadMetrics]
    mvd_should_activate: bool


@dataclass
class IntegrationStatus:
    is_connected: bool
    provider: Optional[str]
    last_sync_at: Optional[datetime]


def sync_device_calendar(
    db: Session,
    user_id: UUID,
    busy_blocks: Iterable[Any] | None,
    day: date | str,
    *,
    provider: str = "device",
) -> SyncResult:
    """Classify one day of busy blocks and upsert the metrics row for (user, day)."""
    if provider not in CALENDAR_PROVIDERS:
        raise ValueError(f"Unknown calendar provider: {provider}")
    metrics = calculate_meeting_load(busy_blocks, day)

    with trace(
        "calendar.sync",
        metadata={"provider": provider, "date": metrics.date.isoformat()},
        user_id=str(user_id),
    ):
        try:
            get_or_create_user(db, user_id)
            integration = _get_or_create_integration(db, user_id, provider)
            upsert_daily_metrics(db, user_id, metrics, provider=provider)
            integration.last_sync_at = utcnow()
            integration.last_sync_status = "success"
            integration.last_sync_error = None
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Calendar sync failed for user %s on %s", user_id, metrics.date)
            _record_sync_failure(db, user_id, provider, str(exc))
            raise

    log_metric("calendar.sync.success", 1, metadata={"provider": provider})
    logger.info(
        "Calendar synced for user %s on %s: %.2fh across %s blocks (%s)",
        user_id,
        metrics.date,
        metrics.total_hours,
        metrics.meeting_count,
        metrics.load.value,
    )
    return SyncResult(success=True, metrics=metrics, mvd_should_activate=metrics.heavy_day)


def upsert_daily_metrics(
    db: Session,
    user_id: UUID,
    metrics: MeetingLoadMetrics,
    *,
    provider: str,
) -> DailyCalendarMetrics:
    """Insert or overwrite the (user, date) metrics row. Flushes only.

    An ``mvd_activated`` flag already recorded for the day is kept so a
    re-sync cannot un-mark a decision the gate has made.
    """
    row = get_daily_metrics(db, user_id, metrics.date)
    if row is None:
        row = DailyCalendarMetrics(user_id=user_id, date=metrics.date, mvd_activated=False)
        db.add(row)
    row.meeting_hours = metrics.total_hours
    row.meeting_count = metrics.meeting_count
    row.back_to_back_count = metrics.back_to_back_count
    row.density = metrics.density
    row.heavy_day = metrics.heavy_day
    row.overload = metrics.overload
    row.provider = provider
    db.flush()
    return row


def get_daily_metrics(db: Session, user_id: UUID, day: date | str) -> Optional[DailyCalendarMetrics]:
    target = parse_date(day)
    if target is None:
        return None
    return (
        db.query(DailyCalendarMetrics)
        .filter(DailyCalendarMetrics.user_id == user_id, DailyCalendarMetrics.date == target)
        .one_or_none()
    )


def get_recent_metrics(db: Session, user_id: UUID, days: int = 14) -> List[DailyCalendarMetrics]:
    return (
        db.query(DailyCalendarMetrics)
        .filter(DailyCalendarMetrics.user_id == user_id)
        .order_by(desc(DailyCalendarMetrics.date))
        .limit(days)
        .all()
    )


def get_average_meeting_hours(db: Session, user_id: UUID, days: int = 14) -> Optional[float]:
    rows = get_recent_metrics(db, user_id, days)
    if not rows:
        return None
    return round(sum(row.meeting_hours or 0.0 for row in rows) / len(rows), 2)


def count_heavy_days(db: Session, user_id: UUID, days: int = 30, *, today: date | None = None) -> int:
    end = today or utcnow().date()
    start = end - timedelta(days=days)
    return (
        db.query(DailyCalendarMetrics)
        .filter(
            DailyCalendarMetrics.user_id == user_id,
            DailyCalendarMetrics.date > start,
            DailyCalendarMetrics.date <= end,
            DailyCalendarMetrics.heavy_day.is_(True),
        )
        .count()
    )


def mark_mvd_activated(db: Session, user_id: UUID, day: date) -> bool:
    """Flag the day's metrics row as having triggered MVD. Flushes only."""
    row = get_daily_metrics(db, user_id, day)
    if row is None:
        return False
    if not row.mvd_activated:
        row.mvd_activated = True
        db.flush()
    return True


def get_integration_status(db: Session, user_id: UUID) -> IntegrationStatus:
    """Most recently synced successful integration, if any."""
    integration = (
        db.query(CalendarIntegration)
        .filter(CalendarIntegration.user_id == user_id, CalendarIntegration.last_sync_status == "success")
        .order_by(desc(CalendarIntegration.last_sync_at))
        .first()
    )
    if integration is None:
        return IntegrationStatus(is_connected=False, provider=None, last_sync_at=None)
    return IntegrationStatus(
        is_connected=True,
        provider=integration.provider,
        last_sync_at=as_utc(integration.last_sync_at),
    )


def _get_or_create_integration(db: Session, user_id: UUID, provider: str) -> CalendarIntegration:
    integration = (
        db.query(CalendarIntegration)
        .filter(CalendarIntegration.user_id == user_id, CalendarIntegration.provider == provider)
        .one_or_none()
    )
    if integration is None:
        integration = CalendarIntegration(user_id=user_id, provider=provider, last_sync_status="pending")
        db.add(integration)
        db.flush()
    return integration


def _record_sync_failure(db: Session, user_id: UUID, provider: str, message: str) -> None:
    try:
        get_or_create_user(db, user_id)
        integration = _get_or_create_integration(db, user_id, provider)
        integration.last_sync_at = utcnow()
        integration.last_sync_status = "failed"
        integration.last_sync_error = message[:500]
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not record calendar sync failure for user %s", user_id, exc_info=True)
    log_metric("calendar.sync.failed", 1, metadata={"provider": provider})
