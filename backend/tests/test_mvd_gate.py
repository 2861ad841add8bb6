from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from apex.db.models.calendar import CalendarIntegration, DailyCalendarMetrics
from apex.db.models.mvd_state import MVDHistory, MVDState
from apex.db.models.user import User
from apex.services.calendar_service import get_daily_metrics, sync_device_calendar
from apex.services.mvd_gate import (
    assert_mvd_state,
    clear_mvd_state,
    get_mvd_state,
    get_mvd_status_summary,
    resolve_mvd,
)
from apex.services.mvd_protocols import (
    MVD_ALLOW_LISTS,
    MVD_PRIORITY,
    MVDType,
    is_protocol_allowed,
)

DAY = date(2025, 3, 10)


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
    User.__table__.create(bind=engine)
    CalendarIntegration.__table__.create(bind=engine)
    DailyCalendarMetrics.__table__.create(bind=engine)
    MVDState.__table__.create(bind=engine)
    MVDHistory.__table__.create(bind=engine)
    return TestingSession


def _sync_hours(db, user_id, day: date, hours: int) -> None:
    start = datetime(day.year, day.month, day.day, 9, tzinfo=timezone.utc)
    blocks = [
        {"start": start + timedelta(hours=offset), "end": start + timedelta(hours=offset + 1)}
        for offset in range(hours)
    ]
    sync_device_calendar(db, user_id, blocks, day)


def test_every_mvd_type_is_configured():
    assert set(MVD_ALLOW_LISTS) == set(MVDType)
    assert set(MVD_PRIORITY) == set(MVDType)
    ranked = sorted(MVDType, key=lambda item: MVD_PRIORITY[item], reverse=True)
    assert ranked == [
        MVDType.MANUAL,
        MVDType.TRAVEL,
        MVDType.LOW_RECOVERY,
        MVDType.HEAVY_CALENDAR,
        MVDType.CONSISTENCY_DROP,
    ]


@pytest.mark.parametrize(
    "protocol_id,category,mvd_type,allowed",
    [
        ("deep_work_block", "performance", None, True),
        ("deep_work_block", "performance", MVDType.HEAVY_CALENDAR, False),
        ("box_breathing", "Foundation", MVDType.HEAVY_CALENDAR, True),
        ("proto_morning_light", "optimization", MVDType.HEAVY_CALENDAR, True),
        ("PROTO_SLEEP_OPTIMIZATION", "recovery", MVDType.MANUAL, True),
        ("walking_breaks", "performance", MVDType.HEAVY_CALENDAR, False),
        ("walking_breaks", "performance", MVDType.CONSISTENCY_DROP, True),
        ("caffeine_timing", "optimization", MVDType.TRAVEL, True),
        ("box_breathing", "foundation", MVDType.TRAVEL, False),
    ],
)
def test_allow_list(protocol_id, category, mvd_type, allowed):
    assert is_protocol_allowed(protocol_id, category, mvd_type) is allowed


def test_no_metrics_resolves_inactive_without_writing():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        db.add(User(id=user_id))
        db.commit()

        verdict = resolve_mvd(db, user_id, DAY)

        assert verdict.active is False
        assert verdict.mvd_type is None
        assert get_mvd_state(db, user_id) is None
    finally:
        db.close()


def test_light_day_resolves_inactive():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        _sync_hours(db, user_id, DAY, 2)
        assert resolve_mvd(db, user_id, DAY).active is False
    finally:
        db.close()


def test_heavy_day_activates_heavy_calendar_and_is_stable():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        _sync_hours(db, user_id, DAY, 7)

        first = resolve_mvd(db, user_id, DAY)
        second = resolve_mvd(db, user_id, DAY)

        assert first == second
        assert first.active is True
        assert first.mvd_type is MVDType.HEAVY_CALENDAR
        state = get_mvd_state(db, user_id)
        assert state.mvd_type == "heavy_calendar"
        assert state.expires_at.replace(tzinfo=None) == datetime(2025, 3, 11)
        assert get_daily_metrics(db, user_id, DAY).mvd_activated is True
        assert db.query(MVDHistory).filter(MVDHistory.user_id == user_id).count() == 1
    finally:
        db.close()


def test_heavy_calendar_expires_next_day():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        _sync_hours(db, user_id, DAY, 5)
        assert resolve_mvd(db, user_id, DAY).active is True

        next_day = DAY + timedelta(days=1)
        _sync_hours(db, user_id, next_day, 1)
        assert resolve_mvd(db, user_id, next_day).active is False
    finally:
        db.close()


def test_heavy_calendar_for_later_date_does_not_apply_to_earlier_run():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        next_day = DAY + timedelta(days=1)
        _sync_hours(db, user_id, next_day, 6)
        assert resolve_mvd(db, user_id, next_day).active is True

        _sync_hours(db, user_id, DAY, 1)
        assert resolve_mvd(db, user_id, DAY).active is False

        _sync_hours(db, user_id, DAY, 5)
        earlier = resolve_mvd(db, user_id, DAY)
        assert earlier.active is True
        assert earlier.expires_at.replace(tzinfo=None) == datetime(2025, 3, 11)

        state = get_mvd_state(db, user_id)
        assert state.expires_at.replace(tzinfo=None) == datetime(2025, 3, 12)
        assert get_daily_metrics(db, user_id, DAY).mvd_activated is False
        assert db.query(MVDHistory).filter(MVDHistory.user_id == user_id).count() == 1
    finally:
        db.close()


def test_higher_priority_external_trigger_wins():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        _sync_hours(db, user_id, DAY, 7)
        assert_mvd_state(db, user_id, "travel", exit_condition="Back home")

        verdict = resolve_mvd(db, user_id, DAY)

        assert verdict.mvd_type is MVDType.TRAVEL
        assert get_daily_metrics(db, user_id, DAY).mvd_activated is False
    finally:
        db.close()


def test_heavy_calendar_replaces_consistency_drop():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        _sync_hours(db, user_id, DAY, 6)
        assert_mvd_state(db, user_id, MVDType.CONSISTENCY_DROP)

        verdict = resolve_mvd(db, user_id, DAY)

        assert verdict.mvd_type is MVDType.HEAVY_CALENDAR
        history = db.query(MVDHistory).filter(MVDHistory.user_id == user_id).all()
        closed = [row for row in history if row.deactivated_at is not None]
        assert len(history) == 2
        assert [row.mvd_type for row in closed] == ["consistency_drop"]
    finally:
        db.close()


def test_lower_priority_assertion_does_not_displace_active_state():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        assert_mvd_state(db, user_id, MVDType.MANUAL)
        state = assert_mvd_state(db, user_id, MVDType.LOW_RECOVERY)

        assert state.mvd_type == "manual"
        assert db.query(MVDHistory).filter(MVDHistory.user_id == user_id).count() == 1
    finally:
        db.close()


def test_expired_external_state_is_inactive():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        assert_mvd_state(
            db,
            user_id,
            MVDType.LOW_RECOVERY,
            expires_at=datetime(2025, 3, 9, 18, tzinfo=timezone.utc),
        )
        assert resolve_mvd(db, user_id, DAY).active is False
    finally:
        db.close()


def test_unknown_type_rejected():
    Session = _session()
    db = Session()
    try:
        with pytest.raises(ValueError):
            assert_mvd_state(db, uuid4(), "vacation")
    finally:
        db.close()


def test_clear_closes_history_and_updates_summary():
    Session = _session()
    user_id = uuid4()
    db = Session()
    try:
        assert get_mvd_status_summary(db, user_id) == "Full protocol schedule"
        assert_mvd_state(db, user_id, MVDType.MANUAL)
        assert get_mvd_status_summary(db, user_id).startswith("MVD active (manual)")

        assert clear_mvd_state(db, user_id, "user toggled off") is True
        assert clear_mvd_state(db, user_id, "again") is False

        state = get_mvd_state(db, user_id)
        assert state.mvd_active is False
        assert state.last_deactivation_reason == "user toggled off"
        history = db.query(MVDHistory).filter(MVDHistory.user_id == user_id).one()
        assert history.deactivated_at is not None
        assert history.duration_hours >= 0
        assert get_mvd_status_summary(db, user_id) == "Full protocol schedule"
    finally:
        db.close()
