"""Notification preference gate.

Stored shape (matches the mobile NotificationSettingsPanel)::

    {"pushEnabled": true, "categories": {"social": true, "plans": false, ...}}

Preferences are merged with defaults on every read, so a category added after
a user saved their settings is delivered until they opt out of it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from crewmate.engagement.policy import LookupKind, default_for, resolve_flag
from crewmate.store import StatsStore

logger = structlog.get_logger()

CATEGORIES = ("social", "crewfies", "spots", "nearby", "badges", "plans")

DEFAULT_PREFERENCES: dict[str, Any] = {
    "pushEnabled": True,
    "categories": {category: True for category in CATEGORIES},
}

# Map notification type -> preference category
NOTIFICATION_TYPE_TO_CATEGORY: dict[str, str] = {
    "connection_request": "social",
    "connection_accepted": "social",
    "message": "social",
    "crewfie_like": "crewfies",
    "crewfie_comment": "crewfies",
    "spot_approved": "spots",
    "spot_rejected": "spots",
    "city_approved": "spots",
    "city_rejected": "spots",
    "nearby_crew": "nearby",
    "badge_earned": "badges",
    "plan_starting": "plans",
    "plan_join": "plans",
    "plan_message": "plans",
    "plan_cancel": "plans",
}

# Operational alerts bypass every preference
ADMIN_NOTIFICATION_TYPES = frozenset({
    "admin_new_user",
    "admin_new_spot",
    "admin_new_city_request",
    "admin_delete_request",
    "admin_spot_reported",
})


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    push_enabled: bool = Field(True, alias="pushEnabled")
    categories: dict[str, bool] = Field(default_factory=dict)

    @field_validator("push_enabled", mode="before")
    @classmethod
    def _normalise_push(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else default_for(LookupKind.NOTIFICATION_CATEGORY)

    @field_validator("categories", mode="before")
    @classmethod
    def _normalise_categories(cls, value: Any) -> dict[str, bool]:
        if not isinstance(value, dict):
            return {}
        return {str(key): flag for key, flag in value.items() if isinstance(flag, bool)}

    def to_stored(self) -> dict[str, Any]:
        return {"pushEnabled": self.push_enabled, "categories": dict(self.categories)}


def merge_with_defaults(stored: Mapping[str, Any] | None) -> NotificationPreferences:
    """User values override defaults; missing or malformed entries take the default."""
    user = NotificationPreferences.model_validate(stored or {})
    categories = dict(DEFAULT_PREFERENCES["categories"])
    categories.update(user.categories)
    return NotificationPreferences(push_enabled=user.push_enabled, categories=categories)


def should_deliver(preferences: NotificationPreferences, notification_type: str) -> bool:
    """Decide delivery for already-merged preferences."""
    if notification_type in ADMIN_NOTIFICATION_TYPES:
        return True
    if not preferences.push_enabled:
        return False
    category = NOTIFICATION_TYPE_TO_CATEGORY.get(notification_type)
    if category is None:
        return default_for(LookupKind.NOTIFICATION_TYPE)
    return resolve_flag(preferences.categories, category, LookupKind.NOTIFICATION_CATEGORY)


class PreferenceGate:
    """Store-backed admission control for outbound notifications."""

    def __init__(self, store: StatsStore) -> None:
        self.store = store

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        user = await self.store.get_user_snapshot(user_id)
        return merge_with_defaults(user.notification_preferences)

    async def save_preferences(self, user_id: str, preferences: NotificationPreferences) -> None:
        await self.store.apply_field_updates(user_id, {"notification_preferences": preferences.to_stored()})
        logger.info("notification_preferences_saved", user_id=user_id, push_enabled=preferences.push_enabled)

    async def is_notification_enabled(self, user_id: str, notification_type: str) -> bool:
        # Admin alerts never need the user record
        if notification_type in ADMIN_NOTIFICATION_TYPES:
            return True
        preferences = await self.get_preferences(user_id)
        enabled = should_deliver(preferences, notification_type)
        if not enabled:
            logger.debug("notification_suppressed", user_id=user_id, notification_type=notification_type)
        return enabled
