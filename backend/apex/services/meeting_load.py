"""Meeting-load classification from calendar busy blocks.

Pure computation: turns a day's busy intervals into aggregate metrics and a
severity tier. Blocks carry start/end only; nothing else about a meeting is
ever read or kept.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Mapping

from apex.services.timeutils import parse_date, parse_instant, utcnow

logger = logging.getLogger(__name__)

LIGHT_MAX_HOURS = 2
MODERATE_MAX_HOURS = 4
OVERLOAD_HOURS = 6
BACK_TO_BACK_GAP_MINUTES = 15
WORKDAY_HOURS = 9


class MeetingLoad(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"
    OVERLOAD = "overload"


@dataclass(frozen=True)
class BusyBlock:
    start: datetime
    end: datetime

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


@dataclass
class MeetingLoadMetrics:
    date: date
    total_hours: float
    meeting_count: int
    back_to_back_count: int
    density: float
    heavy_day: bool
    overload: bool
    load: MeetingLoad = MeetingLoad.LIGHT
    calculated_at: datetime = field(default_factory=utcnow)


def classify_meeting_load(total_hours: float) -> MeetingLoad:
    if total_hours < LIGHT_MAX_HOURS:
        return MeetingLoad.LIGHT
    if total_hours < MODERATE_MAX_HOURS:
        return MeetingLoad.MODERATE
    if total_hours < OVERLOAD_HOURS:
        return MeetingLoad.HEAVY
    return MeetingLoad.OVERLOAD


def empty_meeting_load_metrics(day: date) -> MeetingLoadMetrics:
    """Metrics for a day with no calendar data."""
    return MeetingLoadMetrics(
        date=day,
        total_hours=0.0,
        meeting_count=0,
        back_to_back_count=0,
        density=0.0,
        heavy_day=False,
        overload=False,
    )


def parse_busy_blocks(raw_blocks: Iterable[Any] | None) -> List[BusyBlock]:
    """Parse raw blocks, dropping unparsable or inverted ones."""
    blocks: List[BusyBlock] = []
    for raw in raw_blocks or []:
        if isinstance(raw, BusyBlock):
            start, end = raw.start, raw.end
        elif isinstance(raw, Mapping):
            start, end = parse_instant(raw.get("start")), parse_instant(raw.get("end"))
        else:
            start = parse_instant(getattr(raw, "start", None))
            end = parse_instant(getattr(raw, "end", None))
        if start is None or end is None:
            logger.warning("Skipping busy block with unparsable timestamps")
            continue
        if end <= start:
            logger.warning("Skipping inverted busy block (%s -> %s)", start.isoformat(), end.isoformat())
            continue
        blocks.append(BusyBlock(start=start, end=end))
    return blocks


def calculate_meeting_load(raw_blocks: Iterable[Any] | None, day: date | str) -> MeetingLoadMetrics:
    """Aggregate one day's busy blocks into meeting-load metrics."""
    target_day = parse_date(day)
    if target_day is None:
        raise ValueError(f"Invalid metrics date: {day!r}")

    blocks = sorted(parse_busy_blocks(raw_blocks), key=lambda block: block.start)
    if not blocks:
        return empty_meeting_load_metrics(target_day)

    # Classify the stored value so heavy_day and overload always agree with it.
    total_hours = round(sum(block.minutes for block in blocks) / 60, 2)
    back_to_back = sum(
        1
        for previous, current in zip(blocks, blocks[1:])
        if (current.start - previous.end).total_seconds() / 60 < BACK_TO_BACK_GAP_MINUTES
    )
    tier = classify_meeting_load(total_hours)
    return MeetingLoadMetrics(
        date=target_day,
        total_hours=total_hours,
        meeting_count=len(blocks),
        back_to_back_count=back_to_back,
        density=round(len(blocks) / WORKDAY_HOURS, 2),
        heavy_day=tier in (MeetingLoad.HEAVY, MeetingLoad.OVERLOAD),
        overload=tier is MeetingLoad.OVERLOAD,
        load=tier,
    )
