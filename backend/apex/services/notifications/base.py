"""Notification service interface."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID


@dataclass
class NotificationResult:
    status: str
    reason: str


class NotificationService:
    """Base interface for push providers. Payloads are title/body/data only."""

    def send_push(
        self,
        *,
        user_id: UUID,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        request_id: str | None = None,
    ) -> NotificationResult:
        raise NotImplementedError
