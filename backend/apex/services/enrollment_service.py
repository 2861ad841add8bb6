"""Protocol-level enrollment upserts and default scheduling times."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from apex.db.models.protocol import Protocol
from apex.db.models.protocol_enrollment import ProtocolEnrollment
from apex.services.timeutils import parse_hhmm, utcnow
from apex.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

# Checked in order against the lower-cased protocol id.
_TIME_BY_KEYWORD = (
    (("morning_light", "foundation", "sunlight", "wake"), "07:00"),
    (("exercise", "cold"), "10:00"),
    (("breathwork", "meditation", "nsdr", "yoga_nidra", "cyclic_sigh"), "13:00"),
    (("wind_down", "sleep", "evening", "magnesium", "blue_light"), "21:00"),
)
_TIME_BY_CATEGORY = {"foundation": "07:00", "recovery": "21:00"}
FALLBACK_TIME = "12:00"


def default_time_for_protocol(protocol_id: str, category: Optional[str] = None) -> str:
    key = (protocol_id or "").lower()
    for keywords, value in _TIME_BY_KEYWORD:
        if any(keyword in key for keyword in keywords):
            return value
    return _TIME_BY_CATEGORY.get((category or "").lower(), FALLBACK_TIME)


def get_protocol_enrollment(db: Session, user_id: UUID, protocol_id: str) -> Optional[ProtocolEnrollment]:
    return (
        db.query(ProtocolEnrollment)
        .filter(ProtocolEnrollment.user_id == user_id, ProtocolEnrollment.protocol_id == protocol_id)
        .one_or_none()
    )


def enroll_protocol(
    db: Session,
    user_id: UUID,
    protocol_id: str,
    module_id: Optional[str] = None,
    time: Optional[str] = None,
) -> ProtocolEnrollment:
    """Enroll a user in a protocol, reactivating a soft-removed row in place."""
    protocol = db.get(Protocol, protocol_id)
    if protocol is None:
        raise ValueError(f"Unknown protocol: {protocol_id}")
    if time is not None and parse_hhmm(time) is None:
        raise ValueError(f"Invalid time of day (expected HH:MM): {time}")

    get_or_create_user(db, user_id)
    default_time = time or default_time_for_protocol(protocol.id, protocol.category)

    enrollment = get_protocol_enrollment(db, user_id, protocol_id)
    if enrollment is None:
        enrollment = ProtocolEnrollment(user_id=user_id, protocol_id=protocol_id)
        db.add(enrollment)
    enrollment.module_id = module_id
    enrollment.default_time_utc = default_time
    enrollment.is_active = True
    enrollment.enrolled_at = utcnow()
    db.commit()
    db.refresh(enrollment)
    logger.info("User %s enrolled in protocol %s at %s UTC", user_id, protocol_id, default_time)
    return enrollment


def unenroll_protocol(db: Session, user_id: UUID, protocol_id: str) -> bool:
    """Soft-remove an enrollment; the row and its history stay."""
    enrollment = get_protocol_enrollment(db, user_id, protocol_id)
    if enrollment is None or not enrollment.is_active:
        return False
    enrollment.is_active = False
    db.commit()
    logger.info("User %s unenrolled from protocol %s", user_id, protocol_id)
    return True
