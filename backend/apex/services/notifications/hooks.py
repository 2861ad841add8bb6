"""Dispatch stored streak nudges to the push provider."""
from __future__ import annotations

import logging
from time import perf_counter

from sqlalchemy.orm import Session

from apex.core.config import settings
from apex.db.models.nudge import Nudge
from apex.observability.metrics import log_metric
from apex.observability.tracing import trace
from apex.services.notifications.base import NotificationResult
from apex.services.notifications.factory import get_notification_service

logger = logging.getLogger(__name__)


def notify_streak_nudge(db: Session, nudge: Nudge, request_id: str | None = None) -> NotificationResult:
    """Send one nudge (when enabled) and record the outcome on its row."""
    if not settings.notifications_enabled:
        result = NotificationResult(status="skipped", reason="notifications disabled")
        _record_delivery(db, nudge, result)
        return result

    service = get_notification_service()
    data = {
        "type": nudge.type,
        "category": nudge.category,
        "module_id": nudge.module_id,
        "nudge_id": str(nudge.id),
    }
    start = perf_counter()
    with trace(
        f"notifications.{nudge.type}",
        metadata={"provider": settings.notifications_provider, **data},
        user_id=str(nudge.user_id),
        request_id=request_id,
    ) as notification_trace:
        result = service.send_push(
            user_id=nudge.user_id,
            title=nudge.title,
            body=nudge.nudge_text,
            data=data,
            request_id=request_id,
        )
    if notification_trace:
        notification_trace.update({"llm_output_text": f"{nudge.type}: {result.reason or result.status}"[:500]})
    log_metric("notifications.sent", 1, metadata={"type": nudge.type, "provider": settings.notifications_provider})
    log_metric("notifications.duration_ms", (perf_counter() - start) * 1000, metadata={"type": nudge.type})
    _record_delivery(db, nudge, result)
    return result


def _record_delivery(db: Session, nudge: Nudge, result: NotificationResult) -> None:
    if result.status == "skipped":
        log_metric("notifications.skipped", 1, metadata={"type": nudge.type})
    nudge.delivery_status = result.status
    nudge.delivery_reason = result.reason
    db.commit()
    logger.debug("Nudge %s delivery %s: %s", nudge.nudge_key, result.status, result.reason)
