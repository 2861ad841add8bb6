"""Minimum Viable Day gate.

Decides, per user and schedule date, whether MVD is in force and which type
applies. Heavy calendar days activate ``heavy_calendar`` automatically; the
other types are asserted by external detectors (or the user) through
:func:`assert_mvd_state` and simply honoured here while unexpired.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from apex.db.models.mvd_state import MVDHistory, MVDState
from apex.observability.metrics import log_metric
from apex.services.calendar_service import get_daily_metrics, mark_mvd_activated
from apex.services.mvd_protocols import MVD_ALLOW_LISTS, MVDType, is_protocol_allowed, outranks
from apex.services.timeutils import as_utc, next_midnight, start_of_day, utcnow
from apex.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

HEAVY_CALENDAR_EXIT = "Calendar load drops below 4 hours"


@dataclass(frozen=True)
class MVDVerdict:
    active: bool
    mvd_type: Optional[MVDType] = None
    expires_at: Optional[datetime] = None

    def allows(self, protocol_id: str, category) -> bool:
        if not self.active:
            return True
        return is_protocol_allowed(protocol_id, category, self.mvd_type)


INACTIVE = MVDVerdict(active=False)


def get_mvd_state(db: Session, user_id: UUID) -> Optional[MVDState]:
    return db.get(MVDState, user_id)


def effective_verdict(state: Optional[MVDState], at: datetime) -> MVDVerdict:
    """Read a stored state as of ``at``; expired or unknown types are inactive."""
    if state is None or not state.mvd_active:
        return INACTIVE
    mvd_type = MVDType.parse(state.mvd_type)
    if mvd_type is None:
        logger.warning("Ignoring unknown MVD type %r for user %s", state.mvd_type, state.user_id)
        return INACTIVE
    expires_at = as_utc(state.expires_at)
    if expires_at is not None and expires_at <= at:
        return INACTIVE
    return MVDVerdict(active=True, mvd_type=mvd_type, expires_at=expires_at)


def resolve_mvd(db: Session, user_id: UUID, run_date: date) -> MVDVerdict:
    """Decide the MVD verdict for one user's schedule on ``run_date``.

    Commits only when a heavy calendar day newly activates MVD. A stored state
    that belongs to a later date is neither applied nor overwritten; the
    earlier date is judged from its own calendar metrics alone.
    """
    state = get_mvd_state(db, user_id)
    if _belongs_to_later_date(state, run_date):
        logger.info("MVD state for user %s postdates %s; not applied", user_id, run_date)
        return _metrics_verdict(db, user_id, run_date)

    current = effective_verdict(state, start_of_day(run_date))
    if current.active and not outranks(MVDType.HEAVY_CALENDAR, current.mvd_type):
        return current

    metrics = get_daily_metrics(db, user_id, run_date)
    if metrics is None or not metrics.heavy_day:
        return current

    state = _activate(
        db,
        user_id,
        MVDType.HEAVY_CALENDAR,
        expires_at=next_midnight(run_date),
        exit_condition=HEAVY_CALENDAR_EXIT,
    )
    mark_mvd_activated(db, user_id, run_date)
    db.commit()
    log_metric("mvd.activated", 1, metadata={"mvd_type": MVDType.HEAVY_CALENDAR.value})
    logger.info(
        "MVD heavy_calendar activated for user %s on %s (%.2fh of meetings)",
        user_id,
        run_date,
        metrics.meeting_hours,
    )
    return MVDVerdict(active=True, mvd_type=MVDType.HEAVY_CALENDAR, expires_at=as_utc(state.expires_at))


def _belongs_to_later_date(state: Optional[MVDState], run_date: date) -> bool:
    if state is None or not state.mvd_active or state.mvd_type != MVDType.HEAVY_CALENDAR.value:
        return False
    # heavy_calendar covers exactly the day that ends at its expiry.
    expires_at = as_utc(state.expires_at)
    return expires_at is not None and expires_at > next_midnight(run_date)


def _metrics_verdict(db: Session, user_id: UUID, run_date: date) -> MVDVerdict:
    metrics = get_daily_metrics(db, user_id, run_date)
    if metrics is None or not metrics.heavy_day:
        return INACTIVE
    return MVDVerdict(active=True, mvd_type=MVDType.HEAVY_CALENDAR, expires_at=next_midnight(run_date))


def assert_mvd_state(
    db: Session,
    user_id: UUID,
    mvd_type: MVDType | str,
    *,
    expires_at: Optional[datetime] = None,
    exit_condition: Optional[str] = None,
) -> MVDState:
    """Record an externally detected (or manual) MVD trigger and commit.

    A lower-priority trigger never displaces a higher-priority one that is
    still in force.
    """
    parsed = MVDType.parse(mvd_type)
    if parsed is None:
        raise ValueError(f"Unknown MVD type: {mvd_type}")
    get_or_create_user(db, user_id)

    state = get_mvd_state(db, user_id)
    current = effective_verdict(state, utcnow())
    if current.active and current.mvd_type is not parsed and not outranks(parsed, current.mvd_type):
        logger.info(
            "MVD %s for user %s ignored: %s already active",
            parsed.value,
            user_id,
            current.mvd_type.value,
        )
        return state

    state = _activate(db, user_id, parsed, expires_at=as_utc(expires_at), exit_condition=exit_condition)
    db.commit()
    log_metric("mvd.activated", 1, metadata={"mvd_type": parsed.value})
    return state


def clear_mvd_state(db: Session, user_id: UUID, reason: str) -> bool:
    """Deactivate MVD for a user and close the open history row."""
    state = get_mvd_state(db, user_id)
    if state is None or not state.mvd_active:
        return False
    now = utcnow()
    _close_history(db, user_id, now)
    state.mvd_active = False
    state.mvd_type = None
    state.expires_at = None
    state.exit_condition = None
    state.last_checked_at = now
    state.last_deactivation_reason = reason
    db.commit()
    log_metric("mvd.deactivated", 1, metadata={"reason": reason})
    logger.info("MVD cleared for user %s: %s", user_id, reason)
    return True


def get_mvd_status_summary(db: Session, user_id: UUID) -> str:
    verdict = effective_verdict(get_mvd_state(db, user_id), utcnow())
    if not verdict.active:
        return "Full protocol schedule"
    description = MVD_ALLOW_LISTS[verdict.mvd_type].description
    if verdict.expires_at is not None:
        return f"MVD active ({verdict.mvd_type.value}) until {verdict.expires_at.isoformat()}: {description}"
    return f"MVD active ({verdict.mvd_type.value}): {description}"


def _activate(
    db: Session,
    user_id: UUID,
    mvd_type: MVDType,
    *,
    expires_at: Optional[datetime],
    exit_condition: Optional[str],
) -> MVDState:
    now = utcnow()
    state = get_mvd_state(db, user_id)
    if state is None:
        state = MVDState(user_id=user_id, mvd_active=False)
        db.add(state)

    current = effective_verdict(state, now)
    if current.mvd_type is not mvd_type:
        if state.mvd_active:
            previous_expiry = as_utc(state.expires_at)
            _close_history(db, user_id, min(now, previous_expiry) if previous_expiry else now)
        db.add(MVDHistory(user_id=user_id, mvd_type=mvd_type.value, activated_at=now))
        state.activated_at = now

    state.mvd_active = True
    state.mvd_type = mvd_type.value
    state.expires_at = expires_at
    state.exit_condition = exit_condition
    state.last_checked_at = now
    state.last_deactivation_reason = None
    db.flush()
    return state


def _close_history(db: Session, user_id: UUID, at: datetime) -> None:
    open_rows = (
        db.query(MVDHistory)
        .filter(MVDHistory.user_id == user_id, MVDHistory.deactivated_at.is_(None))
        .all()
    )
    for row in open_rows:
        row.deactivated_at = at
        row.duration_hours = round(max((at - as_utc(row.activated_at)).total_seconds(), 0) / 3600, 2)
