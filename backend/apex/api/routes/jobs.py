"""Operational endpoints for scheduler jobs."""
from __future__ import annotations

from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from apex.api.schemas.jobs import JobRunRequest, JobRunResponse
from apex.core.config import settings
from apex.db.deps import get_db
from apex.observability.metrics import log_metric
from apex.observability.tracing import trace
from apex.services.daily_scheduler import ScheduleWriteError
from apex.services.job_runner import run_job

router = APIRouter()


@router.get("/jobs", tags=["jobs"])
def get_jobs_config(request: Request) -> dict:
    request_id = getattr(request.state, "request_id", None)
    with trace("jobs.config", metadata={"request_id": request_id}, request_id=request_id):
        data = {
            "scheduler_enabled": settings.scheduler_enabled,
            "schedule": {
                "timezone": settings.scheduler_timezone,
                "daily_schedule_time": f"{settings.daily_schedule_hour:02d}:{settings.daily_schedule_minute:02d}",
                "streak_sweep_time": f"{settings.streak_sweep_hour:02d}:{settings.streak_sweep_minute:02d}",
                "freeze_reset_day": settings.freeze_reset_day,
                "freeze_reset_time": f"{settings.freeze_reset_hour:02d}:{settings.freeze_reset_minute:02d}",
            },
            "schedule_batch_size": settings.schedule_batch_size,
        }
    return {**data, "request_id": request_id or ""}


@router.post("/jobs/run-now", response_model=JobRunResponse, tags=["jobs"])
def run_job_now(
    request: Request,
    payload: JobRunRequest,
    db: Session = Depends(get_db),
) -> JobRunResponse:
    if not settings.debug:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Run-now only allowed in debug mode")

    request_id = getattr(request.state, "request_id", None)
    metadata = {"job": payload.job, "request_id": request_id}
    start = perf_counter()
    with trace("jobs.run_now", metadata=metadata, request_id=request_id):
        try:
            result = run_job(db, payload.job, run_date=payload.run_date, user_id=payload.user_id)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        except ScheduleWriteError:
            log_metric("jobs.run_now.failure", 1, metadata={"job": payload.job})
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Schedule write failed")

    latency_ms = (perf_counter() - start) * 1000
    log_metric("jobs.run_now.success", 1, metadata={"job": payload.job})
    log_metric("jobs.run_now.latency_ms", latency_ms, metadata={"job": payload.job})

    return JobRunResponse(
        job=result.job,
        run_date=result.run_date,
        users_processed=result.users_processed,
        failures=result.failures,
        counts=result.counts,
        request_id=request_id or "",
    )
