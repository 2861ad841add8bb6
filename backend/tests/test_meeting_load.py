from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from apex.services.meeting_load import (
    BusyBlock,
    MeetingLoad,
    calculate_meeting_load,
    classify_meeting_load,
)

DAY = date(2025, 3, 10)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 10, hour, minute, tzinfo=timezone.utc)


def _block(start_hour: float, hours: float) -> dict:
    start = datetime(2025, 3, 10, tzinfo=timezone.utc) + timedelta(hours=start_hour)
    return {"start": start.isoformat(), "end": (start + timedelta(hours=hours)).isoformat()}


def test_empty_day_returns_zero_metrics() -> None:
    metrics = calculate_meeting_load([], DAY)

    assert metrics.date == DAY
    assert metrics.total_hours == 0
    assert metrics.meeting_count == 0
    assert metrics.back_to_back_count == 0
    assert metrics.density == 0
    assert metrics.heavy_day is False
    assert metrics.overload is False
    assert metrics.load is MeetingLoad.LIGHT


def test_none_blocks_treated_as_empty_day() -> None:
    metrics = calculate_meeting_load(None, "2025-03-10")
    assert metrics.meeting_count == 0
    assert metrics.date == DAY


def test_invalid_date_raises() -> None:
    with pytest.raises(ValueError):
        calculate_meeting_load([], "not-a-date")


@pytest.mark.parametrize(
    "hours,expected",
    [
        (0, MeetingLoad.LIGHT),
        (1.99, MeetingLoad.LIGHT),
        (2, MeetingLoad.MODERATE),
        (3.99, MeetingLoad.MODERATE),
        (4, MeetingLoad.HEAVY),
        (5.99, MeetingLoad.HEAVY),
        (6, MeetingLoad.OVERLOAD),
        (11, MeetingLoad.OVERLOAD),
    ],
)
def test_classification_boundaries(hours, expected) -> None:
    assert classify_meeting_load(hours) is expected


def test_classification_is_monotonic() -> None:
    order = [MeetingLoad.LIGHT, MeetingLoad.MODERATE, MeetingLoad.HEAVY, MeetingLoad.OVERLOAD]
    tiers = [order.index(classify_meeting_load(step / 4)) for step in range(0, 48)]
    assert tiers == sorted(tiers)


def test_adding_blocks_never_decreases_total_or_tier() -> None:
    order = [MeetingLoad.LIGHT, MeetingLoad.MODERATE, MeetingLoad.HEAVY, MeetingLoad.OVERLOAD]
    blocks = []
    previous_hours = 0.0
    previous_tier = 0
    for start in range(8, 18):
        blocks.append(_block(start, 0.75))
        metrics = calculate_meeting_load(blocks, DAY)
        assert metrics.total_hours >= previous_hours
        assert order.index(metrics.load) >= previous_tier
        if metrics.overload:
            assert metrics.heavy_day
        previous_hours = metrics.total_hours
        previous_tier = order.index(metrics.load)


def test_seven_hours_back_to_back_is_overload() -> None:
    blocks = [_block(9 + offset, 1) for offset in range(7)]

    metrics = calculate_meeting_load(blocks, DAY)

    assert metrics.total_hours == 7
    assert metrics.meeting_count == 7
    assert metrics.back_to_back_count == 6
    assert metrics.overload is True
    assert metrics.heavy_day is True
    assert metrics.load is MeetingLoad.OVERLOAD
    assert metrics.density == round(7 / 9, 2)


def test_four_hours_marks_heavy_but_not_overload() -> None:
    metrics = calculate_meeting_load([_block(9, 2), _block(13, 2)], DAY)

    assert metrics.total_hours == 4
    assert metrics.heavy_day is True
    assert metrics.overload is False
    assert metrics.back_to_back_count == 0


@pytest.mark.parametrize(
    "seconds_short, total, heavy, overload, load",
    [
        (10, 4.0, True, False, MeetingLoad.HEAVY),
        (60, 3.98, False, False, MeetingLoad.MODERATE),
    ],
)
def test_flags_follow_rounded_total_below_four_hours(seconds_short, total, heavy, overload, load) -> None:
    start = _at(9)
    end = start + timedelta(hours=4) - timedelta(seconds=seconds_short)
    metrics = calculate_meeting_load([{"start": start.isoformat(), "end": end.isoformat()}], DAY)

    assert metrics.total_hours == total
    assert metrics.heavy_day is heavy
    assert metrics.overload is overload
    assert metrics.load is load


def test_flags_follow_rounded_total_below_six_hours() -> None:
    start = _at(8)
    end = start + timedelta(hours=6) - timedelta(seconds=10)
    metrics = calculate_meeting_load([{"start": start.isoformat(), "end": end.isoformat()}], DAY)

    assert metrics.total_hours == 6.0
    assert metrics.heavy_day is True
    assert metrics.overload is True
    assert metrics.load is MeetingLoad.OVERLOAD


def test_unsorted_blocks_are_sorted_before_gap_counting() -> None:
    blocks = [_block(11, 1), _block(9, 1), _block(10.1, 0.5)]

    metrics = calculate_meeting_load(blocks, DAY)

    # 09:00-10:00 -> 10:06 (6 min gap), 10:36 -> 11:00 (24 min gap)
    assert metrics.back_to_back_count == 1
    assert metrics.meeting_count == 3


def test_gap_of_exactly_fifteen_minutes_is_not_back_to_back() -> None:
    blocks = [
        BusyBlock(start=_at(9), end=_at(10)),
        BusyBlock(start=_at(10, 15), end=_at(11)),
    ]
    assert calculate_meeting_load(blocks, DAY).back_to_back_count == 0


def test_malformed_and_inverted_blocks_are_skipped() -> None:
    blocks = [
        {"start": "garbage", "end": "2025-03-10T10:00:00Z"},
        {"start": "2025-03-10T12:00:00Z", "end": "2025-03-10T11:00:00Z"},
        {"start": "2025-03-10T12:00:00Z", "end": "2025-03-10T12:00:00Z"},
        {"end": "2025-03-10T12:00:00Z"},
        {"start": "2025-03-10T09:00:00Z", "end": "2025-03-10T10:30:00Z"},
    ]

    metrics = calculate_meeting_load(blocks, DAY)

    assert metrics.meeting_count == 1
    assert metrics.total_hours == 1.5


def test_attribute_objects_are_accepted() -> None:
    class _Event:
        def __init__(self, start, end):
            self.start = start
            self.end = end
            self.title = "Board review"

    metrics = calculate_meeting_load([_Event(_at(9), _at(11))], DAY)

    assert metrics.total_hours == 2
    assert not hasattr(metrics, "title")
