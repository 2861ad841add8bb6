"""No-op notification provider (logs only)."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from apex.services.notifications.base import NotificationResult, NotificationService

logger = logging.getLogger(__name__)


class NoopNotificationService(NotificationService):
    def send_push(
        self,
        *,
        user_id: UUID,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        request_id: str | None = None,
    ) -> NotificationResult:
        logger.info(
            "Notification queued (noop) user=%s title=%r type=%s",
            user_id,
            title,
            (data or {}).get("type"),
        )
        return NotificationResult(status="noop", reason="notification provider is noop")
