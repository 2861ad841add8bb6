from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler

from apex.worker import scheduler_main


def test_register_jobs_adds_three_cron_jobs(monkeypatch) -> None:
    monkeypatch.setattr(scheduler_main.settings, "daily_schedule_hour", 1)
    monkeypatch.setattr(scheduler_main.settings, "daily_schedule_minute", 5)
    monkeypatch.setattr(scheduler_main.settings, "freeze_reset_day", 0)
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler_main.register_jobs(scheduler)

    jobs = {job.id: job for job in scheduler.get_jobs()}
    assert set(jobs) == {"daily_schedule_job", "streak_sweep_job", "freeze_reset_job"}
    daily_fields = {field.name: str(field) for field in jobs["daily_schedule_job"].trigger.fields}
    assert daily_fields["hour"] == "1"
    assert daily_fields["minute"] == "5"
    freeze_fields = {field.name: str(field) for field in jobs["freeze_reset_job"].trigger.fields}
    assert freeze_fields["day_of_week"] == "0"


def test_job_wrapper_closes_session_on_failure(monkeypatch) -> None:
    closed = []

    class _Session:
        def close(self):
            closed.append(True)

    def _boom(session):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(scheduler_main, "SessionLocal", _Session)

    scheduler_main._run_with_session("daily_schedule", _boom)

    assert closed == [True]
