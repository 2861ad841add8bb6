"""Notification configuration routes."""
from __future__ import annotations

from fastapi import APIRouter, Request

from apex.core.config import settings
from apex.observability.metrics import log_metric
from apex.observability.tracing import trace
from apex.services.notifications.factory import NOTIFICATION_PROVIDERS
from apex.services.streaks import NUDGE_LAPSE_RECOVERY, NUDGE_STREAK_PRESERVED

router = APIRouter()


@router.get("/notifications/config", tags=["notifications"])
def get_notifications_config(request: Request) -> dict:
    request_id = getattr(request.state, "request_id", None)
    provider = settings.notifications_provider
    with trace("notifications.config", metadata={"provider": provider}, request_id=request_id):
        log_metric("notifications.config.success", 1, metadata={"provider": provider})
        return {
            "enabled": settings.notifications_enabled,
            "provider": provider,
            "supported_providers": list(NOTIFICATION_PROVIDERS),
            "nudge_types": [NUDGE_STREAK_PRESERVED, NUDGE_LAPSE_RECOVERY],
            "request_id": request_id or "",
        }
