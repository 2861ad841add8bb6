"""Schemas for job operations endpoints."""
from __future__ import annotations

from datetime import date
from typing import Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel


class JobRunRequest(BaseModel):
    job: Literal["daily_schedule", "streak_sweep", "freeze_reset"]
    user_id: Optional[UUID] = None
    run_date: Optional[date] = None


class JobRunResponse(BaseModel):
    job: str
    run_date: date
    users_processed: int
    failures: int
    counts: Dict[str, int]
    request_id: str
