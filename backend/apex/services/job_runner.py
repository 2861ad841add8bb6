"""Batch job runners for the nightly schedule, streak sweep and freeze reset."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from apex.core.context import job_context
from apex.db.models.user import User
from apex.services.daily_scheduler import run_daily_schedules
from apex.services.streaks import replenish_streak_freezes, run_streak_sweep
from apex.services.timeutils import start_of_day, utcnow

logger = logging.getLogger(__name__)

JOB_DAILY_SCHEDULE = "daily_schedule"
JOB_STREAK_SWEEP = "streak_sweep"
JOB_FREEZE_RESET = "freeze_reset"
JOB_NAMES = (JOB_DAILY_SCHEDULE, JOB_STREAK_SWEEP, JOB_FREEZE_RESET)


@dataclass
class JobRunResult:
    job: str
    run_date: date
    users_processed: int = 0
    failures: int = 0
    counts: Dict[str, int] = field(default_factory=dict)


def run_daily_schedule_job(
    db: Session,
    *,
    run_date: Optional[date] = None,
    user_ids: Optional[Iterable[UUID]] = None,
) -> JobRunResult:
    target = run_date or utcnow().date()
    with job_context(JOB_DAILY_SCHEDULE, target.isoformat()):
        result = run_daily_schedules(db, target, user_ids=_normalize_user_ids(user_ids))
        logger.info(
            "Daily schedule job complete: users=%s failed=%s tasks=%s mvd_users=%s",
            result.users_processed,
            result.users_failed,
            result.tasks_written,
            result.users_in_mvd,
        )
    return JobRunResult(
        job=JOB_DAILY_SCHEDULE,
        run_date=target,
        users_processed=result.users_processed,
        failures=result.users_failed,
        counts={
            "tasks_written": result.tasks_written,
            "tasks_filtered_by_mvd": result.tasks_filtered_by_mvd,
            "users_in_mvd": result.users_in_mvd,
        },
    )


def run_streak_sweep_job(
    db: Session,
    *,
    run_date: Optional[date] = None,
    user_ids: Optional[Iterable[UUID]] = None,
) -> JobRunResult:
    run_at = start_of_day(run_date) if run_date else utcnow()
    target = run_at.date()
    with job_context(JOB_STREAK_SWEEP, target.isoformat()):
        result = run_streak_sweep(db, target, run_at=run_at, user_ids=_normalize_user_ids(user_ids))
        logger.info(
            "Streak sweep complete: checked=%s preserved=%s reset=%s failures=%s",
            result.enrollments_checked,
            result.freezes_consumed,
            result.streaks_reset,
            result.failures,
        )
    return JobRunResult(
        job=JOB_STREAK_SWEEP,
        run_date=target,
        users_processed=result.enrollments_checked,
        failures=result.failures,
        counts={
            "freezes_consumed": result.freezes_consumed,
            "streaks_reset": result.streaks_reset,
            "nudges_created": result.nudges_created,
        },
    )


def run_freeze_reset_job(db: Session, *, user_ids: Optional[Iterable[UUID]] = None) -> JobRunResult:
    target = utcnow().date()
    with job_context(JOB_FREEZE_RESET, target.isoformat()):
        result = replenish_streak_freezes(db, user_ids=_normalize_user_ids(user_ids))
        logger.info("Freeze reset complete: enrollments=%s", result.enrollments_updated)
    return JobRunResult(
        job=JOB_FREEZE_RESET,
        run_date=target,
        users_processed=result.enrollments_updated,
        counts={"enrollments_updated": result.enrollments_updated},
    )


def run_job(
    db: Session,
    job: str,
    *,
    run_date: Optional[date] = None,
    user_id: Optional[UUID] = None,
) -> JobRunResult:
    """Run one named job, optionally scoped to a single existing user."""
    if job not in JOB_NAMES:
        raise ValueError(f"Unknown job: {job}")
    user_ids = None
    if user_id is not None:
        if db.get(User, user_id) is None:
            raise ValueError(f"User not found: {user_id}")
        user_ids = [user_id]
    if job == JOB_DAILY_SCHEDULE:
        return run_daily_schedule_job(db, run_date=run_date, user_ids=user_ids)
    if job == JOB_STREAK_SWEEP:
        return run_streak_sweep_job(db, run_date=run_date, user_ids=user_ids)
    return run_freeze_reset_job(db, user_ids=user_ids)


def _normalize_user_ids(user_ids: Optional[Iterable[UUID]]) -> Optional[List[UUID]]:
    if user_ids is None:
        return None
    return list(dict.fromkeys(user_ids))
