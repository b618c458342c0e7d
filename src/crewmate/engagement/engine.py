"""Engagement engine: turns validated user actions into points, levels, badges and streaks.

Each report is handled in three steps:
1. compute points and counter deltas from one user snapshot (pure)
2. apply them through the effect applier (atomic increments; one-time
   completions commit their guard in the same transaction)
3. re-check badges against a fresh snapshot and apply what was earned

Step 3 runs after points are committed. A store failure there is logged
and reported on the result instead of failing the whole action.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog

from crewmate.engagement.badges import check_new_badges
from crewmate.engagement.config import EngagementConfig
from crewmate.engagement.continents import CONTINENTS, continent_for_city
from crewmate.engagement.effects import (
    AppliedEffects,
    AwardBadges,
    AwardPoints,
    Effect,
    EffectApplier,
    GuardedIncrement,
    IncrementCounters,
    TriggerClaim,
)
from crewmate.engagement.scoring import ActionType, ScoreModifiers, compute_points
from crewmate.engagement.snapshots import UserSnapshot
from crewmate.engagement.streaks import advance_streak, streak_bonus
from crewmate.exceptions import ConcurrentUpdateError, StoreUnavailableError
from crewmate.store import CompareAndSet, SetOnce, StatsStore

logger = structlog.get_logger()

# Plans with at least this many attendees count toward Plan Master
PLAN_MASTER_MIN_ATTENDEES = 2


@dataclass(frozen=True)
class ActionResult:
    points_awarded: int = 0
    total_points: int | None = None
    leveled_up: bool = False
    old_level: str | None = None
    new_level: str | None = None
    new_badge_ids: tuple[str, ...] = ()
    already_completed: bool = False
    badge_check_failed: bool = False


@dataclass(frozen=True)
class StreakResult:
    streak_days: int
    longest_streak: int
    bonus_points: int = 0
    advanced: bool = False
    leveled_up: bool = False
    new_level: str | None = None
    new_badge_ids: tuple[str, ...] = ()
    badge_check_failed: bool = False


@dataclass
class _Outcome:
    """Points and counters one action will produce."""

    points: int = 0
    counters: dict[str, int] = field(default_factory=dict)
    guard: SetOnce | None = None

    def bump(self, name: str, amount: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + amount

    def effects(self, user_id: str, reason: str) -> list[Effect]:
        if self.guard is not None:
            return [GuardedIncrement(self.guard, user_id, self.points, self.counters, reason)]
        return [IncrementCounters(user_id, self.counters), AwardPoints(user_id, self.points, reason)]


def _as_datetime(value: Any) -> datetime | None:  # noqa: ANN401
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def plan_time_buckets(starts_at: datetime) -> list[str]:
    """Counters a joined plan feeds: night (22:00-05:00), morning (05:00-09:00), weekend."""
    buckets = []
    if starts_at.hour >= 22 or starts_at.hour < 5:
        buckets.append("nightPlans")
    elif starts_at.hour < 9:
        buckets.append("morningPlans")
    if starts_at.weekday() >= 5:
        buckets.append("weekendPlans")
    return buckets


class EngagementEngine:
    """Orchestrates scoring for one store.

    All configuration lives on ``config``; the engine holds no other state.
    """

    def __init__(self, store: StatsStore, config: EngagementConfig, applier: EffectApplier | None = None) -> None:
        self.store = store
        self.config = config
        self.applier = applier or EffectApplier(store, config)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def report_action(
        self,
        user_id: str,
        action_type: ActionType | str,
        metadata: Mapping[str, Any] | None = None,
    ) -> ActionResult:
        """Score one validated action.

        Raises:
            ValueError: Unknown action type or missing required metadata.
            NotFoundError: The user or a referenced plan does not exist.
            StoreUnavailableError: The store failed before points were committed.
        """
        action = ActionType(action_type)
        metadata = metadata or {}
        user = await self.store.get_user_snapshot(user_id)

        if action is ActionType.PLAN_HOSTED:
            outcome = await self._plan_hosted(user, metadata)
        elif action is ActionType.CHECK_IN:
            outcome = await self._check_in(user, metadata)
        elif action is ActionType.PLAN_JOINED:
            outcome = await self._plan_joined(user, metadata)
        elif action is ActionType.REVIEW:
            outcome = self._review(user, metadata)
        else:
            outcome = self._flat(action)

        applied = None if outcome is None else await self.applier.apply(outcome.effects(user_id, action.value))
        if applied is None or applied.rejected:
            logger.info("plan_already_completed", user_id=user_id, plan_id=metadata.get("plan_id"))
            return ActionResult(already_completed=True)
        logger.info("action_scored", user_id=user_id, action=action.value, points=outcome.points)

        badge_check_failed = await self._recheck_badges(user_id, applied)
        return self._action_result(user_id, applied, badge_check_failed)

    def _modifiers(self, user: UserSnapshot, **overrides: Any) -> ScoreModifiers:  # noqa: ANN401
        return ScoreModifiers(
            is_new_user=self.is_new_user(user),
            is_founding_member=user.is_founding_member,
            **overrides,
        )

    def is_new_user(self, user: UserSnapshot, now: datetime | None = None) -> bool:
        if user.created_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        created = user.created_at if user.created_at.tzinfo else user.created_at.replace(tzinfo=timezone.utc)
        return now - created < timedelta(days=self.config.new_user_window_days)

    async def _check_in(self, user: UserSnapshot, metadata: Mapping[str, Any]) -> _Outcome:
        city = metadata.get("city")
        spot_type = metadata.get("spot_type")
        if metadata.get("spot_id"):
            spot = await self.store.get_entity("spots", str(metadata["spot_id"]))
            city = city or spot.get("city")
            spot_type = spot_type or spot.get("spot_type")

        continent = metadata.get("continent")
        if continent not in CONTINENTS:
            continent = continent_for_city(city, self.config.home_continent)
        stats = user.stats
        is_new_city = bool(city) and stats.city_check_in_counts.get(city, 0) == 0
        international = metadata.get("is_international")
        if international is None:
            international = continent != self.config.home_continent

        modifiers = self._modifiers(
            user,
            is_new_city=is_new_city,
            is_first_time_in_continent=stats.continent_check_ins.get(continent, 0) == 0,
            is_international=bool(international),
        )
        outcome = _Outcome(points=compute_points(ActionType.CHECK_IN, modifiers, self.config.rules))
        outcome.bump("totalCheckIns")
        outcome.bump(f"continentCheckIns.{continent}")
        if city:
            outcome.bump(f"cityCheckInCounts.{city}")
        if is_new_city:
            outcome.bump("citiesVisitedCount")
        if spot_type:
            outcome.bump(f"spotTypeVisits.{str(spot_type).lower()}")
        return outcome

    async def _plan_hosted(self, user: UserSnapshot, metadata: Mapping[str, Any]) -> _Outcome | None:
        plan_id = metadata.get("plan_id")
        if not plan_id:
            msg = "plan_hosted requires a plan_id"
            raise ValueError(msg)
        record = await self.store.get_entity("plans", str(plan_id))
        if record.get("host_id") != user.user_id:
            msg = f"User {user.user_id} is not the host of plan {plan_id}"
            raise ValueError(msg)

        # Re-delivered completions stop here with no effect; racing ones lose the guard
        if record.get("host_completed_at") is not None:
            return None

        attendees = int(metadata.get("attendee_count", record.get("attendee_count") or 0))
        modifiers = self._modifiers(user, attendee_count=attendees)
        outcome = _Outcome(
            points=compute_points(ActionType.PLAN_HOSTED, modifiers, self.config.rules),
            guard=SetOnce("plans", str(plan_id), "host_completed_at", datetime.now(timezone.utc)),
        )
        outcome.bump("plansCompleted")
        if attendees >= PLAN_MASTER_MIN_ATTENDEES:
            outcome.bump("plansCompletedWithAttendees")
        return outcome

    async def _plan_joined(self, user: UserSnapshot, metadata: Mapping[str, Any]) -> _Outcome:
        starts_at = _as_datetime(metadata.get("starts_at"))
        if starts_at is None and metadata.get("plan_id"):
            record = await self.store.get_entity("plans", str(metadata["plan_id"]))
            starts_at = _as_datetime(record.get("starts_at"))

        outcome = _Outcome(points=compute_points(ActionType.PLAN_JOINED, rules=self.config.rules))
        outcome.bump("plansJoined")
        if starts_at is not None:
            for bucket in plan_time_buckets(starts_at):
                outcome.bump(bucket)
        return outcome

    def _review(self, user: UserSnapshot, metadata: Mapping[str, Any]) -> _Outcome:
        word_count = metadata.get("word_count")
        if word_count is None:
            word_count = len(str(metadata.get("text") or "").split())
        modifiers = self._modifiers(
            user,
            has_photo=bool(metadata.get("has_photo")),
            word_count=int(word_count),
            is_first_review_in_city=bool(metadata.get("is_first_review_in_city")),
        )
        outcome = _Outcome(points=compute_points(ActionType.REVIEW, modifiers, self.config.rules))
        outcome.bump("reviewsWritten")
        return outcome

    def _flat(self, action: ActionType) -> _Outcome:
        outcome = _Outcome(points=compute_points(action, rules=self.config.rules))
        counter = {
            ActionType.CONNECTION_ACCEPTED: "connectionsCount",
            ActionType.PHOTO_ADDED: "photosUploaded",
            ActionType.REVIEW_HELPFUL_VOTE: "reviewHelpfulCount",
        }.get(action)
        if counter:
            outcome.bump(counter)
        return outcome

    # ------------------------------------------------------------------
    # Streaks
    # ------------------------------------------------------------------

    async def check_in_streak(self, user_id: str, today: date | None = None) -> StreakResult:
        """Advance the day streak and pay its bonus.

        The streak fields and the bonus commit together under compare-and-set;
        a lost race is recomputed from a fresh read.

        Raises:
            ConcurrentUpdateError: Every compare-and-set attempt lost.
        """
        today = today or datetime.now(timezone.utc).date()
        attempts = self.config.max_cas_attempts

        for attempt in range(1, attempts + 1):
            user = await self.store.get_user_snapshot(user_id)
            before = user.streak
            after = advance_streak(before, today)
            if after == before:
                return StreakResult(streak_days=after.current_streak, longest_streak=after.longest_streak)

            bonus = streak_bonus(after.current_streak, self.config.rules.streak_per_day_bonus)
            guard = CompareAndSet(
                user_id,
                {
                    "current_streak": after.current_streak,
                    "longest_streak": after.longest_streak,
                    "last_action_date": after.last_action_date,
                },
                expected={
                    "current_streak": before.current_streak,
                    "last_action_date": before.last_action_date,
                },
            )
            applied = await self.applier.apply([GuardedIncrement(guard, user_id, points=bonus, reason="streak")])
            if not applied.rejected:
                break
            logger.info("streak_update_conflict", user_id=user_id, attempt=attempt)
        else:
            raise ConcurrentUpdateError(user_id, "streak", attempts)

        logger.info("streak_advanced", user_id=user_id, streak=after.current_streak, bonus=bonus)

        badge_check_failed = await self._recheck_badges(user_id, applied)
        level_up = applied.level_ups.get(user_id)
        return StreakResult(
            streak_days=after.current_streak,
            longest_streak=after.longest_streak,
            bonus_points=bonus,
            advanced=True,
            leveled_up=level_up is not None,
            new_level=level_up.new_level.id if level_up else None,
            new_badge_ids=tuple(applied.badges_for(user_id)),
            badge_check_failed=badge_check_failed,
        )

    # ------------------------------------------------------------------
    # Badges
    # ------------------------------------------------------------------

    async def badge_effects(self, user_id: str) -> list[Effect]:
        """Pending effects for every automated badge the user now qualifies for."""
        user = await self.store.get_user_snapshot(user_id)
        new_ids = tuple(badge.id for badge in check_new_badges(user.stats, user.badges, self.config.catalog))
        effects: list[Effect] = []
        if new_ids:
            effects.append(AwardBadges(user_id, new_ids))
        top = self.config.top_referral_badge_id
        if top in new_ids and user.reward_claim_requested_at is None:
            effects.append(TriggerClaim(user_id, top))
        return effects

    async def _recheck_badges(self, user_id: str, applied: AppliedEffects) -> bool:
        """Apply newly earned badges; return True if the store failed along the way."""
        try:
            await self.applier.apply(await self.badge_effects(user_id), applied)
        except StoreUnavailableError:
            logger.warning("badge_check_failed", user_id=user_id, exc_info=True)
            return True
        return False

    def _action_result(self, user_id: str, applied: AppliedEffects, badge_check_failed: bool) -> ActionResult:
        level_up = applied.level_ups.get(user_id)
        return ActionResult(
            points_awarded=applied.points_for(user_id),
            total_points=applied.totals.get(user_id),
            leveled_up=level_up is not None,
            old_level=level_up.old_level.id if level_up else None,
            new_level=level_up.new_level.id if level_up else None,
            new_badge_ids=tuple(applied.badges_for(user_id)),
            badge_check_failed=badge_check_failed,
        )
