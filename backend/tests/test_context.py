from __future__ import annotations

import logging

from apex.core.context import get_request_id, job_context
from apex.core.logging import RequestIdFilter


def test_job_context_sets_and_resets_run_id() -> None:
    assert get_request_id() is None
    with job_context("daily_schedule", "2025-03-10") as run_id:
        assert run_id == "daily_schedule:2025-03-10"
        assert get_request_id() == run_id
    assert get_request_id() is None


def test_request_id_filter_stamps_records() -> None:
    record = logging.LogRecord("apex.test", logging.INFO, __file__, 1, "hello", None, None)
    log_filter = RequestIdFilter()

    with job_context("freeze_reset", "2025-03-10"):
        assert log_filter.filter(record) is True
    assert record.request_id == "freeze_reset:2025-03-10"

    log_filter.filter(record)
    assert record.request_id == "-"
