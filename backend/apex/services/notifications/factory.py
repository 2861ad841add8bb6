"""Notification service factory."""
from __future__ import annotations

import logging
from functools import lru_cache

from apex.core.config import settings
from apex.services.notifications.base import NotificationService
from apex.services.notifications.noop import NoopNotificationService

logger = logging.getLogger(__name__)

NOTIFICATION_PROVIDERS = ("noop",)


@lru_cache
def get_notification_service() -> NotificationService:
    provider = settings.notifications_provider.lower()
    if provider not in NOTIFICATION_PROVIDERS:
        logger.warning("Unknown notification provider %r; falling back to noop", provider)
    return NoopNotificationService()
