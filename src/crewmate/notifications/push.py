"""Publish gated notifications over Redis pub/sub for per-user delivery."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import structlog

from crewmate.notifications.preferences import PreferenceGate

logger = structlog.get_logger()


class NotificationPublisher:
    """Checks the preference gate, then publishes to ``ws:user:{user_id}``.

    The push transport subscribes to ``ws:user:*`` and fans the message out to
    the user's devices. A failed publish is logged and never raised.
    """

    def __init__(self, redis: Any | None, gate: PreferenceGate) -> None:  # noqa: ANN401
        self.redis = redis
        self.gate = gate

    async def notify(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        body: str = "",
        data: dict[str, Any] | None = None,
    ) -> bool:
        """Return True when the notification was published."""
        if not await self.gate.is_notification_enabled(user_id, notification_type):
            return False
        if self.redis is None:
            return False

        payload = {
            "event": "notification",
            "data": {
                "type": notification_type,
                "title": title,
                "body": body,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **(data or {}),
            },
        }
        try:
            await self.redis.publish(f"ws:user:{user_id}", json.dumps(payload))
        except Exception:
            logger.warning("notification_publish_failed", user_id=user_id, notification_type=notification_type,
                           exc_info=True)
            return False
        return True
