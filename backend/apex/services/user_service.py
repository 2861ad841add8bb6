"""Helpers for working with users and their badge sets."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apex.db.models.user import User

logger = logging.getLogger(__name__)


def get_or_create_user(db: Session, user_id: UUID) -> User:
    """Fetch an existing user or create a new row safely."""
    user = db.get(User, user_id)
    if user:
        return user

    user = User(id=user_id, earned_badges=[])
    db.add(user)
    try:
        db.flush()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise


def grant_badge(db: Session, user_id: UUID, badge_id: str) -> bool:
    """Append a badge to the user's set unless already held. Flushes only."""
    user = db.get(User, user_id)
    if not user:
        logger.warning("Cannot grant badge %s: user %s not found", badge_id, user_id)
        return False
    earned = [str(item) for item in (user.earned_badges or [])]
    if badge_id in earned:
        return False
    # Reassign so the JSON column is marked dirty.
    user.earned_badges = [*earned, badge_id]
    db.flush()
    logger.info("Badge %s granted to user %s", badge_id, user_id)
    return True
