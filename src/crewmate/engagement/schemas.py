"""Pydantic request/response models for engagement endpoints."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from crewmate.engagement.scoring import ActionType

# --- Actions ---


class ActionRequest(BaseModel):
    action_type: ActionType
    metadata: dict[str, Any] = Field(default_factory=dict)


class ActionResponse(BaseModel):
    points_awarded: int
    total_points: int | None = None
    leveled_up: bool
    old_level: str | None = None
    new_level: str | None = None
    new_badge_ids: list[str] = []
    already_completed: bool = False
    badge_check_failed: bool = False


# --- Streaks ---


class StreakCheckInRequest(BaseModel):
    today: date | None = None


class StreakResponse(BaseModel):
    streak_days: int
    longest_streak: int
    bonus_points: int
    advanced: bool
    leveled_up: bool
    new_level: str | None = None
    new_badge_ids: list[str] = []
    badge_check_failed: bool = False


# --- Badges ---


class BadgeProgressEntry(BaseModel):
    id: str
    name: str
    category: str
    rarity: str
    points_value: int
    earned: bool
    progress: str
    percent: int


class BadgeProgressResponse(BaseModel):
    user_id: str
    total_earned: int
    total_available: int
    badges: list[BadgeProgressEntry]


# --- Levels ---


class LevelEntry(BaseModel):
    id: str
    name: str
    min_points: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


# --- Referrals ---


class AttributeReferralRequest(BaseModel):
    new_user_id: str
    referrer_id: str


class AttributionResponse(BaseModel):
    accepted: bool
    rejection: str | None = None


class CreditResponse(BaseModel):
    credited: bool
    referrer_id: str | None = None
    reason: str | None = None
    missing_fields: list[str] = []
    new_badge_ids: list[str] = []
    claim_triggered: bool = False


class PendingReferralEntry(BaseModel):
    user_id: str
    display_name: str
    missing: list[str]


class RecountResponse(BaseModel):
    total_referred: int
    completed: int
    pending: int
    newly_credited: int
    pending_details: list[PendingReferralEntry] = []
    badges_awarded: list[str] = []
    claim_triggered: bool = False


# --- Notifications ---


class NotificationDecisionResponse(BaseModel):
    user_id: str
    notification_type: str
    enabled: bool
