"""Dedicated APScheduler worker process for the nightly engagement jobs."""
from __future__ import annotations

import logging
import signal
import threading
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from apex.core.config import settings
from apex.core.logging import configure_logging
from apex.db.session import SessionLocal
from apex.services.job_runner import (
    JOB_DAILY_SCHEDULE,
    JOB_FREEZE_RESET,
    JOB_STREAK_SWEEP,
    JobRunResult,
    run_daily_schedule_job,
    run_freeze_reset_job,
    run_streak_sweep_job,
)

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging(log_level=settings.log_level)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        register_jobs(scheduler)
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running jobs once on startup")
            _run_daily_schedule_job()
            _run_streak_sweep_job()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        _run_daily_schedule_job,
        trigger="cron",
        hour=settings.daily_schedule_hour,
        minute=settings.daily_schedule_minute,
        id=f"{JOB_DAILY_SCHEDULE}_job",
        replace_existing=True,
    )
    scheduler.add_job(
        _run_streak_sweep_job,
        trigger="cron",
        hour=settings.streak_sweep_hour,
        minute=settings.streak_sweep_minute,
        id=f"{JOB_STREAK_SWEEP}_job",
        replace_existing=True,
    )
    scheduler.add_job(
        _run_freeze_reset_job,
        trigger="cron",
        day_of_week=str(settings.freeze_reset_day),
        hour=settings.freeze_reset_hour,
        minute=settings.freeze_reset_minute,
        id=f"{JOB_FREEZE_RESET}_job",
        replace_existing=True,
    )
    logger.info(
        "Registered scheduler jobs (schedule=%02d:%02d, sweep=%02d:%02d, freeze reset day=%s %02d:%02d %s)",
        settings.daily_schedule_hour,
        settings.daily_schedule_minute,
        settings.streak_sweep_hour,
        settings.streak_sweep_minute,
        settings.freeze_reset_day,
        settings.freeze_reset_hour,
        settings.freeze_reset_minute,
        settings.scheduler_timezone,
    )


def _run_with_session(job: str, runner: Callable[[Session], JobRunResult]) -> None:
    session = SessionLocal()
    try:
        result = runner(session)
        logger.info(
            "%s job complete: processed=%s failures=%s counts=%s",
            job,
            result.users_processed,
            result.failures,
            result.counts,
        )
    except Exception:  # pragma: no cover - defensive guard
        logger.exception("%s job failed", job)
    finally:
        session.close()


def _run_daily_schedule_job() -> None:
    _run_with_session(JOB_DAILY_SCHEDULE, run_daily_schedule_job)


def _run_streak_sweep_job() -> None:
    _run_with_session(JOB_STREAK_SWEEP, run_streak_sweep_job)


def _run_freeze_reset_job() -> None:
    _run_with_session(JOB_FREEZE_RESET, run_freeze_reset_job)


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
