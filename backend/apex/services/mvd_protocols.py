"""Minimum Viable Day types and the per-type protocol allow-lists."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class MVDType(str, Enum):
    MANUAL = "manual"
    LOW_RECOVERY = "low_recovery"
    TRAVEL = "travel"
    HEAVY_CALENDAR = "heavy_calendar"
    CONSISTENCY_DROP = "consistency_drop"

    @classmethod
    def parse(cls, value) -> Optional["MVDType"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class ProtocolCategory(str, Enum):
    FOUNDATION = "foundation"
    PERFORMANCE = "performance"
    RECOVERY = "recovery"
    OPTIMIZATION = "optimization"
    META = "meta"

    @classmethod
    def parse(cls, value) -> Optional["ProtocolCategory"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


# Higher wins when two triggers compete for the same day.
MVD_PRIORITY: Dict[MVDType, int] = {
    MVDType.MANUAL: 50,
    MVDType.TRAVEL: 40,
    MVDType.LOW_RECOVERY: 30,
    MVDType.HEAVY_CALENDAR: 20,
    MVDType.CONSISTENCY_DROP: 10,
}

ESSENTIAL_PROTOCOLS: Tuple[str, ...] = (
    "morning_light",
    "morning_light_exposure",
    "hydration_electrolytes",
    "sleep_optimization",
)

SEMI_ACTIVE_PROTOCOLS: Tuple[str, ...] = ESSENTIAL_PROTOCOLS + (
    "walking_breaks",
    "evening_light",
    "evening_light_management",
)

TRAVEL_PROTOCOLS: Tuple[str, ...] = (
    "morning_light",
    "morning_light_exposure",
    "hydration_electrolytes",
    "caffeine_timing",
    "evening_light",
    "evening_light_management",
)


@dataclass(frozen=True)
class MVDAllowList:
    categories: FrozenSet[ProtocolCategory]
    protocol_ids: Tuple[str, ...]
    description: str


MVD_ALLOW_LISTS: Dict[MVDType, MVDAllowList] = {
    MVDType.MANUAL: MVDAllowList(
        categories=frozenset({ProtocolCategory.FOUNDATION}),
        protocol_ids=ESSENTIAL_PROTOCOLS,
        description="Tough day: foundation protocols plus light, hydration and sleep essentials",
    ),
    MVDType.LOW_RECOVERY: MVDAllowList(
        categories=frozenset({ProtocolCategory.FOUNDATION}),
        protocol_ids=ESSENTIAL_PROTOCOLS,
        description="Low recovery: foundation protocols plus light, hydration and sleep essentials",
    ),
    MVDType.HEAVY_CALENDAR: MVDAllowList(
        categories=frozenset({ProtocolCategory.FOUNDATION}),
        protocol_ids=ESSENTIAL_PROTOCOLS,
        description="Heavy calendar: foundation protocols plus light, hydration and sleep essentials",
    ),
    MVDType.TRAVEL: MVDAllowList(
        categories=frozenset(),
        protocol_ids=TRAVEL_PROTOCOLS,
        description="Circadian reset: light exposure, hydration and caffeine timing",
    ),
    MVDType.CONSISTENCY_DROP: MVDAllowList(
        categories=frozenset({ProtocolCategory.FOUNDATION}),
        protocol_ids=SEMI_ACTIVE_PROTOCOLS,
        description="Consistency reset: essentials plus walking breaks and evening light",
    ),
}

_uncovered = set(MVDType) - set(MVD_ALLOW_LISTS)
_unranked = set(MVDType) - set(MVD_PRIORITY)
if _uncovered or _unranked:  # pragma: no cover - import-time guard
    raise RuntimeError(f"MVD types missing configuration: {sorted(t.value for t in _uncovered | _unranked)}")


def normalize_protocol_id(protocol_id: str) -> str:
    """Lower-case and drop the legacy ``proto_`` prefix."""
    value = (protocol_id or "").strip().lower()
    if value.startswith("proto_"):
        value = value[len("proto_"):]
    return value


def is_protocol_allowed(protocol_id: str, category, mvd_type: Optional[MVDType]) -> bool:
    """True when the protocol survives the given MVD type (None = MVD off)."""
    if mvd_type is None:
        return True
    allow_list = MVD_ALLOW_LISTS[mvd_type]
    parsed_category = ProtocolCategory.parse(category)
    if parsed_category is not None and parsed_category in allow_list.categories:
        return True
    return normalize_protocol_id(protocol_id) in allow_list.protocol_ids


def outranks(candidate: MVDType, current: Optional[MVDType]) -> bool:
    if current is None:
        return True
    return MVD_PRIORITY[candidate] > MVD_PRIORITY[current]
