"""CrewMate Scoring (CMS) rules and point computation.

Every function here is pure: identical inputs always give identical points.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crewmate.config import Settings


class ActionType(str, Enum):
    CHECK_IN = "check_in"
    PLAN_HOSTED = "plan_hosted"
    PLAN_JOINED = "plan_joined"
    REVIEW = "review"
    CONNECTION_ACCEPTED = "connection_accepted"
    SPOT_ADDED = "spot_added"
    PHOTO_ADDED = "photo_added"
    REVIEW_HELPFUL_VOTE = "review_helpful_vote"


@dataclass(frozen=True)
class ScoreModifiers:
    """Facts about the actor and the action that adjust the base amount."""

    is_new_user: bool = False
    is_new_city: bool = False
    is_first_time_in_continent: bool = False
    is_international: bool = False
    is_founding_member: bool = False
    attendee_count: int = 0
    has_photo: bool = False
    word_count: int = 0
    is_first_review_in_city: bool = False


@dataclass(frozen=True)
class ScoringRules:
    check_in_base: int = 10
    new_user_bonus: int = 15
    new_city_bonus: int = 5
    new_continent_bonus: int = 10
    international_bonus: int = 15
    founding_member_multiplier: float = 1.1
    plan_hosted_base: int = 25
    plan_attendee_steps: tuple[tuple[int, int], ...] = ((5, 50), (10, 100))
    plan_joined_points: int = 10
    review_base: int = 15
    review_photo_bonus: int = 10
    review_long_bonus: int = 10
    review_long_min_words: int = 100
    review_first_in_city_bonus: int = 25
    review_helpful_vote_points: int = 3
    connection_accepted_points: int = 5
    spot_added_points: int = 10
    photo_added_points: int = 5
    streak_per_day_bonus: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> ScoringRules:
        return cls(
            check_in_base=settings.check_in_base,
            new_user_bonus=settings.new_user_bonus,
            new_city_bonus=settings.new_city_bonus,
            new_continent_bonus=settings.new_continent_bonus,
            international_bonus=settings.international_bonus,
            founding_member_multiplier=settings.founding_member_multiplier,
            plan_hosted_base=settings.plan_hosted_base,
            plan_attendee_steps=tuple(sorted((int(m), int(b)) for m, b in settings.plan_attendee_steps)),
            plan_joined_points=settings.plan_joined_points,
            review_base=settings.review_base,
            review_photo_bonus=settings.review_photo_bonus,
            review_long_bonus=settings.review_long_bonus,
            review_long_min_words=settings.review_long_min_words,
            review_first_in_city_bonus=settings.review_first_in_city_bonus,
            review_helpful_vote_points=settings.review_helpful_vote_points,
            connection_accepted_points=settings.connection_accepted_points,
            spot_added_points=settings.spot_added_points,
            photo_added_points=settings.photo_added_points,
            streak_per_day_bonus=settings.streak_per_day_bonus,
        )


def attendee_bonus(attendee_count: int, rules: ScoringRules) -> int:
    """Capped step function: the highest step reached wins, nothing above the last step."""
    bonus = 0
    for minimum, amount in rules.plan_attendee_steps:
        if attendee_count >= minimum:
            bonus = amount
    return bonus


def _apply_status(total: int, modifiers: ScoreModifiers, rules: ScoringRules) -> int:
    """Add the new-user bonus, then apply the founding-member multiplier last."""
    if modifiers.is_new_user:
        total += rules.new_user_bonus
    if modifiers.is_founding_member:
        scaled = Decimal(total) * Decimal(str(rules.founding_member_multiplier))
        total = int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return max(0, total)


def check_in_points(modifiers: ScoreModifiers, rules: ScoringRules) -> int:
    total = rules.check_in_base
    if modifiers.is_new_city:
        total += rules.new_city_bonus
    if modifiers.is_first_time_in_continent:
        total += rules.new_continent_bonus
    if modifiers.is_international:
        total += rules.international_bonus
    return _apply_status(total, modifiers, rules)


def plan_hosted_points(modifiers: ScoreModifiers, rules: ScoringRules) -> int:
    total = rules.plan_hosted_base + attendee_bonus(modifiers.attendee_count, rules)
    return _apply_status(total, modifiers, rules)


def review_points(modifiers: ScoreModifiers, rules: ScoringRules) -> int:
    total = rules.review_base
    if modifiers.has_photo:
        total += rules.review_photo_bonus
    if modifiers.word_count >= rules.review_long_min_words:
        total += rules.review_long_bonus
    if modifiers.is_first_review_in_city:
        total += rules.review_first_in_city_bonus
    return _apply_status(total, modifiers, rules)


def compute_points(
    action_type: ActionType | str,
    modifiers: ScoreModifiers | None = None,
    rules: ScoringRules | None = None,
) -> int:
    """Compute the CMS points for one action. Never negative.

    Raises:
        ValueError: If the action type is not a scored action.
    """
    action = ActionType(action_type)
    modifiers = modifiers or ScoreModifiers()
    rules = rules or ScoringRules()

    if action is ActionType.CHECK_IN:
        return check_in_points(modifiers, rules)
    if action is ActionType.PLAN_HOSTED:
        return plan_hosted_points(modifiers, rules)
    if action is ActionType.REVIEW:
        return review_points(modifiers, rules)

    flat = {
        ActionType.PLAN_JOINED: rules.plan_joined_points,
        ActionType.CONNECTION_ACCEPTED: rules.connection_accepted_points,
        ActionType.SPOT_ADDED: rules.spot_added_points,
        ActionType.PHOTO_ADDED: rules.photo_added_points,
        ActionType.REVIEW_HELPFUL_VOTE: rules.review_helpful_vote_points,
    }
    return max(0, flat[action])
