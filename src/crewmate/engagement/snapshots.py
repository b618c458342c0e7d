"""Typed user snapshots built at the store boundary.

Stored user documents are loosely shaped: counters can be missing, negative,
strings, or keyed by the mobile client's camelCase paths. Everything is
normalised here, once, so the rules downstream never guess at defaults.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crewmate.engagement.streaks import StreakState


def _as_count(value: Any) -> int:
    """Coerce a stored counter to a non-negative int; anything unusable is 0."""
    if isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


def _as_count_map(value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    return {str(key): _as_count(raw) for key, raw in value.items()}


def _as_date(value: Any) -> date | None:
    """Parse a stored streak date; malformed values read as unset."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


COUNTER_FIELDS = (
    "total_check_ins",
    "cities_visited_count",
    "current_streak",
    "longest_streak",
    "plans_completed",
    "plans_completed_with_attendees",
    "plans_joined",
    "connections_count",
    "reviews_written",
    "review_helpful_count",
    "photos_uploaded",
    "night_plans",
    "morning_plans",
    "weekend_plans",
    "successful_referrals",
    "points",
)

MAP_FIELDS = ("continent_check_ins", "city_check_in_counts", "spot_type_visits")


class UserStatsSnapshot(BaseModel):
    """Read-only counters for one user, as of one store read."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_check_ins: int = Field(0, alias="totalCheckIns")
    cities_visited_count: int = Field(0, alias="citiesVisitedCount")
    continent_check_ins: dict[str, int] = Field(default_factory=dict, alias="continentCheckIns")
    city_check_in_counts: dict[str, int] = Field(default_factory=dict, alias="cityCheckInCounts")
    current_streak: int = Field(0, alias="currentStreak")
    longest_streak: int = Field(0, alias="longestStreak")
    plans_completed: int = Field(0, alias="plansCompleted")
    plans_completed_with_attendees: int = Field(0, alias="plansCompletedWithAttendees")
    plans_joined: int = Field(0, alias="plansJoined")
    connections_count: int = Field(0, alias="connectionsCount")
    reviews_written: int = Field(0, alias="reviewsWritten")
    review_helpful_count: int = Field(0, alias="reviewHelpfulCount")
    photos_uploaded: int = Field(0, alias="photosUploaded")
    spot_type_visits: dict[str, int] = Field(default_factory=dict, alias="spotTypeVisits")
    night_plans: int = Field(0, alias="nightPlans")
    morning_plans: int = Field(0, alias="morningPlans")
    weekend_plans: int = Field(0, alias="weekendPlans")
    successful_referrals: int = Field(0, alias="successfulReferrals")
    points: int = 0
    level: str = "rookie"

    @field_validator(*COUNTER_FIELDS, mode="before")
    @classmethod
    def _normalise_counter(cls, value: Any) -> int:
        return _as_count(value)

    @field_validator(*MAP_FIELDS, mode="before")
    @classmethod
    def _normalise_map(cls, value: Any) -> dict[str, int]:
        return _as_count_map(value)

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else "rookie"

    @classmethod
    def from_counter_rows(cls, rows: dict[str, int], **extra: Any) -> UserStatsSnapshot:
        """Build a snapshot from flat counter paths such as ``continentCheckIns.Europe``."""
        data: dict[str, Any] = {}
        for path, value in rows.items():
            head, _, key = path.partition(".")
            if key:
                data.setdefault(head, {})[key] = value
            else:
                data[head] = value
        data.update(extra)
        return cls.model_validate(data)


class UserSnapshot(BaseModel):
    """Everything the engine reads about one user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str | None = None
    photo_url: str | None = None
    airline: str | None = None
    base: str | None = None
    created_at: datetime | None = None
    is_founding_member: bool = False
    badges: frozenset[str] = frozenset()
    referred_by: str | None = None
    referral_credited: bool = False
    reward_claim_requested_at: datetime | None = None
    streak: StreakState = StreakState()
    notification_preferences: dict[str, Any] | None = None
    stats: UserStatsSnapshot = UserStatsSnapshot()

    @field_validator("badges", mode="before")
    @classmethod
    def _normalise_badges(cls, value: Any) -> frozenset[str]:
        if not value:
            return frozenset()
        return frozenset(str(badge_id) for badge_id in value)

    @field_validator("streak", mode="before")
    @classmethod
    def _normalise_streak(cls, value: Any) -> StreakState:
        if isinstance(value, StreakState):
            return value
        if not isinstance(value, dict):
            return StreakState()
        current = _as_count(value.get("current_streak", value.get("currentStreak")))
        longest = _as_count(value.get("longest_streak", value.get("longestStreak")))
        last = _as_date(value.get("last_action_date", value.get("lastActionDate")))
        return StreakState(
            current_streak=current,
            longest_streak=max(longest, current),
            last_action_date=last,
        )

    @field_validator("notification_preferences", mode="before")
    @classmethod
    def _normalise_preferences(cls, value: Any) -> dict[str, Any] | None:
        return value if isinstance(value, dict) else None
