"""Streak state machine: completion events, nightly sweep, freeze replenishment."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from time import perf_counter
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apex.core.config import settings
from apex.db.models.module_enrollment import ModuleEnrollment
from apex.db.models.nudge import Nudge
from apex.db.models.protocol_log import ProtocolLog
from apex.observability.metrics import log_metric
from apex.observability.tracing import trace
from apex.services.notifications.hooks import notify_streak_nudge
from apex.services.timeutils import parse_instant, utcnow
from apex.services.user_service import grant_badge

logger = logging.getLogger(__name__)

STREAK_BADGES: Dict[int, str] = {7: "streak-7", 30: "streak-30", 100: "streak-100"}

NUDGE_STREAK_PRESERVED = "streak_preserved"
NUDGE_LAPSE_RECOVERY = "lapse_recovery"
NUDGE_CATEGORY = "streak_maintenance"


@dataclass
class CompletionEvent:
    user_id: Optional[UUID]
    module_id: Optional[str]
    protocol_id: Optional[str]
    logged_at: Any = None
    source: str = "manual"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    previous_streak: int
    current_streak: int
    longest_streak: int
    last_active_date: date
    progress_pct: float
    badges_awarded: List[str] = field(default_factory=list)


@dataclass
class SweepResult:
    run_date: date
    enrollments_checked: int = 0
    freezes_consumed: int = 0
    streaks_reset: int = 0
    nudges_created: int = 0
    failures: int = 0


@dataclass
class FreezeResetResult:
    enrollments_updated: int


def compute_next_streak(last_active: Optional[date], current: int, log_date: date) -> int:
    """Next streak value for a completion on ``log_date``. Never decreases."""
    current = max(current or 0, 0)
    if last_active is None:
        return current + 1
    if log_date == last_active + timedelta(days=1):
        return current + 1
    # Same day re-log, a gap, or a late event: only the nightly sweep resets.
    # Any completion counts as at least a one-day streak, so a zero becomes 1.
    return max(current, 1)


def record_protocol_completion(db: Session, event: CompletionEvent) -> Optional[CompletionResult]:
    """Persist a completion log and advance the module enrollment's streak.

    Returns None when the event is rejected (missing identifiers, bad
    timestamp or no matching module enrollment).
    """
    if not event.user_id or not event.module_id or not event.protocol_id:
        logger.warning(
            "Rejecting completion event with missing identifiers (user=%s module=%s protocol=%s)",
            event.user_id,
            event.module_id,
            event.protocol_id,
        )
        return None
    logged_at = utcnow() if event.logged_at is None else parse_instant(event.logged_at)
    if logged_at is None:
        logger.warning("Rejecting completion event with unparsable timestamp %r", event.logged_at)
        return None

    enrollment = (
        db.query(ModuleEnrollment)
        .filter(ModuleEnrollment.user_id == event.user_id, ModuleEnrollment.module_id == event.module_id)
        .one_or_none()
    )
    if enrollment is None:
        logger.warning("No module enrollment for user %s module %s; completion ignored", event.user_id, event.module_id)
        return None

    log_date = logged_at.date()
    try:
        db.add(
            ProtocolLog(
                user_id=event.user_id,
                module_id=event.module_id,
                protocol_id=event.protocol_id,
                module_enrollment_id=enrollment.id,
                source=event.source,
                status="completed",
                logged_at=logged_at,
                metadata_json=event.metadata or None,
            )
        )
        db.flush()

        previous = enrollment.current_streak or 0
        next_streak = compute_next_streak(enrollment.last_active_date, previous, log_date)
        enrollment.current_streak = next_streak
        enrollment.longest_streak = max(enrollment.longest_streak or 0, next_streak)
        if enrollment.last_active_date is None or log_date > enrollment.last_active_date:
            enrollment.last_active_date = log_date

        completed = (
            db.query(ProtocolLog)
            .filter(ProtocolLog.user_id == event.user_id, ProtocolLog.module_id == event.module_id)
            .count()
        )
        enrollment.progress_pct = min(1.0, completed / max(settings.progress_target, 1))

        awarded: List[str] = []
        badge = STREAK_BADGES.get(next_streak)
        if badge and grant_badge(db, event.user_id, badge):
            awarded.append(badge)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record completion for user %s module %s", event.user_id, event.module_id)
        raise

    log_metric("streaks.completion", 1, metadata={"module_id": event.module_id})
    for badge in awarded:
        log_metric("streaks.badge_awarded", 1, metadata={"badge": badge})
    return CompletionResult(
        previous_streak=previous,
        current_streak=next_streak,
        longest_streak=enrollment.longest_streak,
        last_active_date=enrollment.last_active_date,
        progress_pct=enrollment.progress_pct,
        badges_awarded=awarded,
    )


def build_nudge_key(enrollment_id: UUID, run_at: datetime) -> str:
    stamp = run_at.isoformat().replace(":", "-").replace(".", "-")
    return f"{enrollment_id}-{stamp}"


def module_label(module_id: str) -> str:
    return module_id.replace("_", " ").replace("-", " ").strip().title() or "Module"


def run_streak_sweep(
    db: Session,
    run_date: Optional[date] = None,
    *,
    run_at: Optional[datetime] = None,
    user_ids: Optional[Iterable[UUID]] = None,
) -> SweepResult:
    """Preserve (via freeze) or reset every live streak that missed a day."""
    run_at = run_at or utcnow()
    target = run_date or run_at.date()
    result = SweepResult(run_date=target)
    start = perf_counter()

    query = db.query(ModuleEnrollment).filter(ModuleEnrollment.current_streak > 0)
    if user_ids is not None:
        query = query.filter(ModuleEnrollment.user_id.in_(list(dict.fromkeys(user_ids))))
    enrollment_ids = [row.id for row in query.order_by(ModuleEnrollment.user_id, ModuleEnrollment.module_id).all()]

    with trace("jobs.streak_sweep", metadata={"run_date": target.isoformat(), "enrollments": len(enrollment_ids)}):
        for enrollment_id in enrollment_ids:
            result.enrollments_checked += 1
            try:
                nudge = _sweep_enrollment(db, enrollment_id, target, run_at, result)
            except Exception:
                db.rollback()
                logger.exception("Streak sweep failed for enrollment %s", enrollment_id)
                result.failures += 1
                continue
            if nudge is None:
                continue
            result.nudges_created += 1
            try:
                notify_streak_nudge(db, nudge)
            except Exception:
                db.rollback()
                logger.exception("Nudge dispatch failed for enrollment %s", enrollment_id)

    log_metric("jobs.streak_sweep.freezes_consumed", result.freezes_consumed)
    log_metric("jobs.streak_sweep.streaks_reset", result.streaks_reset)
    log_metric("jobs.streak_sweep.duration_ms", (perf_counter() - start) * 1000)
    return result


def _sweep_enrollment(
    db: Session,
    enrollment_id: UUID,
    run_date: date,
    run_at: datetime,
    result: SweepResult,
) -> Optional[Nudge]:
    enrollment = db.get(ModuleEnrollment, enrollment_id)
    if enrollment is None or (enrollment.current_streak or 0) <= 0:
        return None

    last_active = enrollment.last_active_date
    days_since = (run_date - last_active).days if last_active else math.inf
    if days_since <= 1:
        return None

    label = module_label(enrollment.module_id)
    streak = enrollment.current_streak
    if enrollment.streak_freeze_available:
        enrollment.streak_freeze_available = False
        enrollment.streak_freeze_used_date = run_date
        enrollment.last_active_date = run_date - timedelta(days=1)
        nudge = _upsert_nudge(
            db,
            enrollment,
            run_at,
            nudge_type=NUDGE_STREAK_PRESERVED,
            title="Streak Preserved",
            text=f"Your {label} streak of {streak} days is safe. We used your weekly streak freeze.",
            reasoning=f"Missed {label} activity; streak freeze consumed to keep the {streak}-day streak.",
            priority="medium",
        )
        result.freezes_consumed += 1
        logger.info("Streak freeze consumed for enrollment %s (%s days)", enrollment.id, streak)
    else:
        enrollment.current_streak = 0
        nudge = _upsert_nudge(
            db,
            enrollment,
            run_at,
            nudge_type=NUDGE_LAPSE_RECOVERY,
            title="Fresh Start",
            text=f"Your {label} streak has reset. Log one protocol today to start a new one.",
            reasoning=f"Missed {label} activity with no streak freeze left; streak of {streak} days reset.",
            priority="high",
        )
        result.streaks_reset += 1
        logger.info("Streak reset for enrollment %s after %s days", enrollment.id, streak)
    db.commit()
    return nudge


def _upsert_nudge(
    db: Session,
    enrollment: ModuleEnrollment,
    run_at: datetime,
    *,
    nudge_type: str,
    title: str,
    text: str,
    reasoning: str,
    priority: str,
) -> Nudge:
    key = build_nudge_key(enrollment.id, run_at)
    nudge = (
        db.query(Nudge)
        .filter(Nudge.user_id == enrollment.user_id, Nudge.nudge_key == key)
        .one_or_none()
    )
    if nudge is None:
        nudge = Nudge(user_id=enrollment.user_id, nudge_key=key)
        db.add(nudge)
    nudge.module_id = enrollment.module_id
    nudge.type = nudge_type
    nudge.category = NUDGE_CATEGORY
    nudge.title = title
    nudge.nudge_text = text
    nudge.reasoning = reasoning
    nudge.confidence_score = 1.0
    nudge.priority = priority
    nudge.status = "pending"
    nudge.source = NUDGE_CATEGORY
    nudge.generated_at = run_at
    db.flush()
    return nudge


def replenish_streak_freezes(db: Session, *, user_ids: Optional[Iterable[UUID]] = None) -> FreezeResetResult:
    """Give every enrollment its weekly freeze back."""
    query = db.query(ModuleEnrollment)
    if user_ids is not None:
        query = query.filter(ModuleEnrollment.user_id.in_(list(dict.fromkeys(user_ids))))
    updated = query.update(
        {
            ModuleEnrollment.streak_freeze_available: True,
            ModuleEnrollment.streak_freeze_used_date: None,
        },
        synchronize_session=False,
    )
    db.commit()
    log_metric("jobs.freeze_reset.enrollments_updated", updated)
    logger.info("Streak freezes replenished for %s enrollments", updated)
    return FreezeResetResult(enrollments_updated=updated)
