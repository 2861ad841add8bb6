"""Nightly daily-task scheduler.

For each enrolled user: resolve the MVD verdict, merge protocol-level and
module-level enrollments into one deduplicated plan for the run date, then
upsert the plan keyed by ``(user_id, "<protocol_id>_<YYYY-MM-DD>")`` in
bounded commit chunks.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from time import perf_counter
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from apex.core.config import settings
from apex.db.models.daily_task import DailyTask
from apex.db.models.module_enrollment import ModuleEnrollment
from apex.db.models.protocol import ModuleProtocolMap, Protocol
from apex.db.models.protocol_enrollment import ProtocolEnrollment
from apex.observability.metrics import log_metric
from apex.observability.tracing import trace
from apex.services.mvd_gate import MVDVerdict, resolve_mvd
from apex.services.mvd_protocols import ProtocolCategory
from apex.services.timeutils import at_utc, parse_hhmm, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Wellness Protocol"
DEFAULT_DURATION_MINUTES = 10
MORNING_SLOT = (8, 0)
MIDDAY_SLOT = (12, 0)
EVENING_SLOT = (20, 0)


class ScheduleWriteError(RuntimeError):
    """A chunk of daily tasks could not be committed."""


def build_task_key(protocol_id: str, day: date) -> str:
    return f"{protocol_id}_{day.isoformat()}"


@dataclass
class ScheduledTask:
    protocol_id: str
    module_id: Optional[str]
    task_date: date
    title: str
    scheduled_for: datetime
    duration_minutes: int
    emphasis: str
    source: str

    @property
    def task_key(self) -> str:
        return build_task_key(self.protocol_id, self.task_date)


@dataclass
class UserSchedule:
    user_id: UUID
    run_date: date
    mvd: MVDVerdict
    tasks: List[ScheduledTask] = field(default_factory=list)
    filtered_protocol_ids: Set[str] = field(default_factory=set)
    skipped_missing_protocol: int = 0

    @property
    def filtered_by_mvd(self) -> int:
        return len(self.filtered_protocol_ids)


@dataclass
class ScheduleRunResult:
    run_date: date
    users_processed: int = 0
    users_failed: int = 0
    users_in_mvd: int = 0
    tasks_written: int = 0
    tasks_filtered_by_mvd: int = 0
    failed_user_ids: List[UUID] = field(default_factory=list)


def heuristic_slot(protocol: Protocol) -> Tuple[int, int]:
    """Time slot for module-derived protocols, which carry no stored time."""
    name = (protocol.name or "").lower()
    slot = MIDDAY_SLOT
    if ProtocolCategory.parse(protocol.category) is ProtocolCategory.FOUNDATION or "morning" in name:
        slot = MORNING_SLOT
    if "evening" in name or "sleep" in name:
        slot = EVENING_SLOT
    return slot


def _task_for(
    protocol: Protocol,
    run_date: date,
    slot: Tuple[int, int],
    *,
    module_id: Optional[str],
    source: str,
) -> ScheduledTask:
    is_foundation = ProtocolCategory.parse(protocol.category) is ProtocolCategory.FOUNDATION
    return ScheduledTask(
        protocol_id=protocol.id,
        module_id=module_id,
        task_date=run_date,
        title=protocol.name or DEFAULT_TITLE,
        scheduled_for=at_utc(run_date, *slot),
        duration_minutes=protocol.duration_minutes or DEFAULT_DURATION_MINUTES,
        emphasis="high" if is_foundation else "normal",
        source=source,
    )


def generate_daily_schedule_for_user(db: Session, user_id: UUID, run_date: date) -> UserSchedule:
    """Build (but do not write) one user's task plan for ``run_date``."""
    verdict = resolve_mvd(db, user_id, run_date)
    schedule = UserSchedule(user_id=user_id, run_date=run_date, mvd=verdict)
    seen: Set[str] = set()
    protocols: Dict[str, Optional[Protocol]] = {}

    def lookup(protocol_id: str) -> Optional[Protocol]:
        if protocol_id not in protocols:
            protocols[protocol_id] = db.get(Protocol, protocol_id)
        return protocols[protocol_id]

    protocol_enrollments = (
        db.query(ProtocolEnrollment)
        .filter(ProtocolEnrollment.user_id == user_id, ProtocolEnrollment.is_active.is_(True))
        .order_by(ProtocolEnrollment.protocol_id)
        .all()
    )
    for enrollment in protocol_enrollments:
        protocol = lookup(enrollment.protocol_id)
        if protocol is None:
            logger.warning("Skipping enrollment for unknown protocol %s (user %s)", enrollment.protocol_id, user_id)
            schedule.skipped_missing_protocol += 1
            continue
        if not verdict.allows(protocol.id, protocol.category):
            schedule.filtered_protocol_ids.add(protocol.id)
            continue
        if protocol.id in seen:
            continue
        slot = parse_hhmm(enrollment.default_time_utc)
        if slot is None:
            logger.warning(
                "Invalid default time %r for protocol %s (user %s); using heuristic slot",
                enrollment.default_time_utc,
                protocol.id,
                user_id,
            )
            slot = heuristic_slot(protocol)
        schedule.tasks.append(_task_for(protocol, run_date, slot, module_id=enrollment.module_id, source="protocol"))
        seen.add(protocol.id)

    module_enrollments = (
        db.query(ModuleEnrollment)
        .filter(ModuleEnrollment.user_id == user_id)
        .order_by(ModuleEnrollment.is_primary.desc(), ModuleEnrollment.module_id)
        .all()
    )
    for enrollment in module_enrollments:
        mappings = (
            db.query(ModuleProtocolMap)
            .filter(ModuleProtocolMap.module_id == enrollment.module_id)
            .order_by(ModuleProtocolMap.protocol_id)
            .all()
        )
        for mapping in mappings:
            if mapping.protocol_id in seen:
                continue
            protocol = lookup(mapping.protocol_id)
            if protocol is None:
                logger.warning(
                    "Module %s maps to unknown protocol %s; skipping",
                    enrollment.module_id,
                    mapping.protocol_id,
                )
                schedule.skipped_missing_protocol += 1
                continue
            if not verdict.allows(protocol.id, protocol.category):
                schedule.filtered_protocol_ids.add(protocol.id)
                continue
            schedule.tasks.append(
                _task_for(protocol, run_date, heuristic_slot(protocol), module_id=enrollment.module_id, source="module")
            )
            seen.add(protocol.id)

    schedule.tasks.sort(key=lambda task: (task.scheduled_for, task.protocol_id))
    return schedule


class TaskBatchWriter:
    """Upserts daily tasks, committing every ``batch_size`` rows.

    A rejected chunk is rolled back and written again one user at a time so
    only the offending user's rows are lost. Users whose rows still fail end
    up in :attr:`failed_user_ids`. An unreachable store raises
    :class:`ScheduleWriteError`.
    """

    def __init__(self, db: Session, batch_size: int) -> None:
        self.db = db
        self.batch_size = max(1, batch_size)
        self.pending: List[Tuple[UUID, ScheduledTask]] = []
        self.written = 0
        self.chunks_committed = 0
        self.failed_user_ids: List[UUID] = []

    def add(self, user_id: UUID, task: ScheduledTask) -> None:
        self.pending.append((user_id, task))
        if len(self.pending) >= self.batch_size:
            self.flush()

    def flush(self) -> int:
        if not self.pending:
            return 0
        chunk, self.pending = self.pending, []
        try:
            self._commit(chunk)
        except (OperationalError, DisconnectionError) as exc:
            self._unavailable(chunk, exc)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Daily task chunk of %s rows rejected; retrying per user", len(chunk))
            written = self._commit_per_user(chunk)
        else:
            written = len(chunk)
        self.written += written
        self.chunks_committed += 1
        logger.debug("Committed daily task chunk %s (%s rows)", self.chunks_committed, written)
        return written

    def _commit(self, rows: List[Tuple[UUID, ScheduledTask]]) -> None:
        for user_id, task in rows:
            self._upsert(user_id, task)
        self.db.commit()

    def _commit_per_user(self, chunk: List[Tuple[UUID, ScheduledTask]]) -> int:
        by_user: Dict[UUID, List[Tuple[UUID, ScheduledTask]]] = {}
        for user_id, task in chunk:
            by_user.setdefault(user_id, []).append((user_id, task))
        written = 0
        for user_id, rows in by_user.items():
            try:
                self._commit(rows)
            except (OperationalError, DisconnectionError) as exc:
                self._unavailable(rows, exc)
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception("Daily task write failed for user %s", user_id)
                if user_id not in self.failed_user_ids:
                    self.failed_user_ids.append(user_id)
                continue
            written += len(rows)
        return written

    def _unavailable(self, rows: List[Tuple[UUID, ScheduledTask]], exc: Exception) -> None:
        self.db.rollback()
        raise ScheduleWriteError(
            f"Failed to commit {len(rows)} daily tasks after {self.chunks_committed} committed chunks"
        ) from exc

    def _upsert(self, user_id: UUID, task: ScheduledTask) -> DailyTask:
        row = (
            self.db.query(DailyTask)
            .filter(DailyTask.user_id == user_id, DailyTask.task_key == task.task_key)
            .one_or_none()
        )
        if row is None:
            row = DailyTask(user_id=user_id, task_key=task.task_key, status="pending")
            self.db.add(row)
        # Status is left alone on existing rows; clients move it past pending.
        row.task_date = task.task_date
        row.protocol_id = task.protocol_id
        row.module_id = task.module_id
        row.title = task.title
        row.scheduled_for = task.scheduled_for
        row.duration_minutes = task.duration_minutes
        row.emphasis = task.emphasis
        return row


def scheduled_user_ids(db: Session) -> List[UUID]:
    """Users with at least one active protocol enrollment or any module enrollment."""
    protocol_users = (
        db.query(ProtocolEnrollment.user_id).filter(ProtocolEnrollment.is_active.is_(True)).distinct().all()
    )
    module_users = db.query(ModuleEnrollment.user_id).distinct().all()
    ids = {row[0] for row in protocol_users} | {row[0] for row in module_users}
    return sorted(ids, key=str)


def run_daily_schedules(
    db: Session,
    run_date: Optional[date] = None,
    *,
    user_ids: Optional[Iterable[UUID]] = None,
) -> ScheduleRunResult:
    """Generate and write every user's tasks for ``run_date``.

    One user's failure, including a rejected write of that user's rows, is
    logged and counted. An unreachable store raises
    :class:`ScheduleWriteError` and leaves earlier chunks in place.
    """
    target = run_date or utcnow().date()
    ids = list(dict.fromkeys(user_ids)) if user_ids is not None else scheduled_user_ids(db)
    result = ScheduleRunResult(run_date=target)
    writer = TaskBatchWriter(db, settings.schedule_batch_size)
    planned: Dict[UUID, UserSchedule] = {}
    start = perf_counter()

    with trace("jobs.daily_schedule", metadata={"run_date": target.isoformat(), "users": len(ids)}):
        for uid in ids:
            try:
                schedule = generate_daily_schedule_for_user(db, uid, target)
            except Exception:
                db.rollback()
                logger.exception("Daily schedule failed for user %s", uid)
                result.failed_user_ids.append(uid)
                continue
            planned[uid] = schedule
            for task in schedule.tasks:
                writer.add(uid, task)
        writer.flush()

    for uid in writer.failed_user_ids:
        planned.pop(uid, None)
        result.failed_user_ids.append(uid)
    result.users_failed = len(result.failed_user_ids)
    result.users_processed = len(planned)
    for schedule in planned.values():
        result.tasks_filtered_by_mvd += schedule.filtered_by_mvd
        if schedule.mvd.active:
            result.users_in_mvd += 1
    result.tasks_written = writer.written
    log_metric("jobs.daily_schedule.tasks_written", result.tasks_written)
    log_metric("jobs.daily_schedule.duration_ms", (perf_counter() - start) * 1000)
    if result.users_failed:
        log_metric("jobs.daily_schedule.users_failed", result.users_failed)
    return result


def get_tasks_for_day(db: Session, user_id: UUID, day: date) -> List[DailyTask]:
    return (
        db.query(DailyTask)
        .filter(DailyTask.user_id == user_id, DailyTask.task_date == day)
        .order_by(DailyTask.scheduled_for, DailyTask.protocol_id)
        .all()
    )
