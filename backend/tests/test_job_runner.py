from __future__ import annotations

import logging
from datetime import date, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from apex.core.context import get_request_id
from apex.db.models.calendar import CalendarIntegration, DailyCalendarMetrics
from apex.db.models.daily_task import DailyTask
from apex.db.models.module_enrollment import ModuleEnrollment
from apex.db.models.mvd_state import MVDHistory, MVDState
from apex.db.models.nudge import Nudge
from apex.db.models.protocol import ModuleProtocolMap, Protocol
from apex.db.models.protocol_enrollment import ProtocolEnrollment
from apex.db.models.protocol_log import ProtocolLog
from apex.db.models.user import User
from apex.services import daily_scheduler
from apex.services.job_runner import (
    run_daily_schedule_job,
    run_freeze_reset_job,
    run_job,
    run_streak_sweep_job,
)

RUN_DATE = date(2025, 3, 10)


def _session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    for model in (
        User,
        Protocol,
        ModuleProtocolMap,
        ModuleEnrollment,
        ProtocolEnrollment,
        ProtocolLog,
        DailyTask,
        CalendarIntegration,
        DailyCalendarMetrics,
        MVDState,
        MVDHistory,
        Nudge,
    ):
        model.__table__.create(bind=engine)
    return TestingSession


def _seed_user(db_session, *, streak=0, last_active=None, freeze=True):
    session = db_session()
    try:
        user_id = uuid4()
        session.add(User(id=user_id))
        session.flush()
        session.add(
            ModuleEnrollment(
                user_id=user_id,
                module_id="focus",
                current_streak=streak,
                last_active_date=last_active,
                streak_freeze_available=freeze,
            )
        )
        session.commit()
        return user_id
    finally:
        session.close()


def _seed_catalog(db_session):
    session = db_session()
    try:
        session.add(Protocol(id="morning_light", name="Morning Light", category="foundation", duration_minutes=10))
        session.add(Protocol(id="deep_work", name="Deep Work", category="performance", duration_minutes=60))
        session.add(ModuleProtocolMap(module_id="focus", protocol_id="morning_light", is_starter_protocol=True))
        session.add(ModuleProtocolMap(module_id="focus", protocol_id="deep_work", is_starter_protocol=False))
        session.commit()
    finally:
        session.close()


def test_daily_schedule_job_counts_tasks():
    Session = _session()
    _seed_catalog(Session)
    _seed_user(Session)
    _seed_user(Session)
    db = Session()
    try:
        result = run_daily_schedule_job(db, run_date=RUN_DATE)

        assert result.job == "daily_schedule"
        assert result.run_date == RUN_DATE
        assert result.users_processed == 2
        assert result.failures == 0
        assert result.counts["tasks_written"] == 4
        assert result.counts["users_in_mvd"] == 0
    finally:
        db.close()


def test_job_logs_carry_run_id(monkeypatch, caplog):
    Session = _session()
    _seed_catalog(Session)
    _seed_user(Session)
    seen = []
    original = daily_scheduler.generate_daily_schedule_for_user

    def _recording(db, user_id, run_date):
        seen.append(get_request_id())
        return original(db, user_id, run_date)

    monkeypatch.setattr(daily_scheduler, "generate_daily_schedule_for_user", _recording)
    db = Session()
    try:
        with caplog.at_level(logging.INFO, logger="apex.services.job_runner"):
            run_daily_schedule_job(db, run_date=RUN_DATE)
        assert seen == ["daily_schedule:2025-03-10"]
        assert get_request_id() is None
        assert "Daily schedule job complete" in caplog.text
    finally:
        db.close()


def test_streak_sweep_job_scoped_to_user():
    Session = _session()
    lapsed = _seed_user(Session, streak=4, last_active=RUN_DATE - timedelta(days=3), freeze=False)
    other = _seed_user(Session, streak=4, last_active=RUN_DATE - timedelta(days=3), freeze=False)
    db = Session()
    try:
        result = run_streak_sweep_job(db, run_date=RUN_DATE, user_ids=[lapsed, lapsed])

        assert result.users_processed == 1
        assert result.counts["streaks_reset"] == 1
        streaks = {
            row.user_id: row.current_streak
            for row in db.query(ModuleEnrollment).all()
        }
        assert streaks[lapsed] == 0
        assert streaks[other] == 4
    finally:
        db.close()


def test_freeze_reset_job():
    Session = _session()
    _seed_user(Session, freeze=False)
    _seed_user(Session, freeze=True)
    db = Session()
    try:
        result = run_freeze_reset_job(db)
        assert result.counts["enrollments_updated"] == 2
        assert all(row.streak_freeze_available for row in db.query(ModuleEnrollment).all())
    finally:
        db.close()


def test_run_job_validates_name_and_user():
    Session = _session()
    db = Session()
    try:
        with pytest.raises(ValueError):
            run_job(db, "weekly_digest")
        with pytest.raises(ValueError):
            run_job(db, "streak_sweep", user_id=uuid4())
    finally:
        db.close()
