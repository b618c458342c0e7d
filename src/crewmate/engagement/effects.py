"""Pending effects and the applier that commits them.

Rule code (scoring, badge checks, referral crediting) returns effects as plain
data; ``EffectApplier`` is the only place that writes them. Effects are
applied in order, and any follow-up they cause (badge points, level-ups,
badge notifications) is applied inline by the same applier.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog

from crewmate.engagement.config import EngagementConfig
from crewmate.engagement.levels import LevelUp
from crewmate.exceptions import EngagementError
from crewmate.store import Guard, StatsStore

if TYPE_CHECKING:
    from crewmate.notifications.push import NotificationPublisher

logger = structlog.get_logger()

REWARD_CLAIM_QUEUE = "queue:reward_claims"


@dataclass(frozen=True)
class AwardPoints:
    user_id: str
    amount: int
    reason: str


@dataclass(frozen=True)
class IncrementCounters:
    user_id: str
    deltas: Mapping[str, int]


@dataclass(frozen=True)
class GuardedIncrement:
    """Points and counters committed in the same transaction as a one-time guard.

    When the guard is already taken nothing is written and the effect is
    listed in ``AppliedEffects.rejected``.
    """

    guard: Guard
    user_id: str
    points: int = 0
    counters: Mapping[str, int] = field(default_factory=dict)
    reason: str = ""


@dataclass(frozen=True)
class AwardBadges:
    user_id: str
    badge_ids: tuple[str, ...]


@dataclass(frozen=True)
class TriggerClaim:
    """One-time reward claim for ``badge_id``, guarded by ``reward_claim_requested_at``."""

    user_id: str
    badge_id: str


@dataclass(frozen=True)
class Notify:
    user_id: str
    notification_type: str
    title: str
    body: str = ""
    data: Mapping[str, Any] = field(default_factory=dict)


Effect = AwardPoints | IncrementCounters | GuardedIncrement | AwardBadges | TriggerClaim | Notify


@dataclass
class AppliedEffects:
    """What actually changed, per user."""

    points: dict[str, int] = field(default_factory=dict)
    totals: dict[str, int] = field(default_factory=dict)
    level_ups: dict[str, LevelUp] = field(default_factory=dict)
    badges: dict[str, list[str]] = field(default_factory=dict)
    claims: list[str] = field(default_factory=list)
    rejected: list[GuardedIncrement] = field(default_factory=list)
    notifications_sent: int = 0

    def points_for(self, user_id: str) -> int:
        return self.points.get(user_id, 0)

    def badges_for(self, user_id: str) -> list[str]:
        return self.badges.get(user_id, [])


class EffectApplier:
    def __init__(
        self,
        store: StatsStore,
        config: EngagementConfig,
        publisher: NotificationPublisher | None = None,
        claim_queue: Any | None = None,  # noqa: ANN401
    ) -> None:
        self.store = store
        self.config = config
        self.publisher = publisher
        self.claim_queue = claim_queue

    async def apply(self, effects: Iterable[Effect], result: AppliedEffects | None = None) -> AppliedEffects:
        result = result if result is not None else AppliedEffects()
        for effect in effects:
            if isinstance(effect, AwardPoints):
                await self._award_points(effect, result)
            elif isinstance(effect, IncrementCounters):
                if effect.deltas:
                    await self.store.apply_counter_deltas(effect.user_id, effect.deltas)
            elif isinstance(effect, GuardedIncrement):
                await self._apply_guarded(effect, result)
            elif isinstance(effect, AwardBadges):
                await self._award_badges(effect, result)
            elif isinstance(effect, TriggerClaim):
                await self._trigger_claim(effect, result)
            elif isinstance(effect, Notify):
                await self._notify(effect, result)
            else:
                msg = f"Unknown effect: {effect!r}"
                raise TypeError(msg)
        return result

    # --- Points and levels ---

    async def _award_points(self, effect: AwardPoints, result: AppliedEffects) -> None:
        if effect.amount <= 0:
            return
        total = await self.store.apply_points_delta(effect.user_id, effect.amount)
        await self._points_committed(effect, total, result)

    async def _apply_guarded(self, effect: GuardedIncrement, result: AppliedEffects) -> None:
        total = await self.store.apply_guarded(effect.guard, effect.user_id, effect.points, effect.counters)
        if total is None:
            result.rejected.append(effect)
            return
        if effect.points > 0:
            await self._points_committed(AwardPoints(effect.user_id, effect.points, effect.reason), total, result)

    async def _points_committed(self, effect: AwardPoints, total: int, result: AppliedEffects) -> None:
        result.points[effect.user_id] = result.points_for(effect.user_id) + effect.amount
        result.totals[effect.user_id] = total
        logger.info("points_awarded", user_id=effect.user_id, amount=effect.amount, reason=effect.reason, total=total)

        level_up = self.config.levels.check_level_up(total - effect.amount, total)
        if level_up is None:
            return
        await self._sync_level(effect.user_id, total)
        first = result.level_ups.get(effect.user_id)
        result.level_ups[effect.user_id] = (
            LevelUp(True, first.old_level, level_up.new_level) if first else level_up
        )
        logger.info("level_up", user_id=effect.user_id, old_level=level_up.old_level.id,
                    new_level=level_up.new_level.id)
        await self._notify(
            Notify(
                effect.user_id,
                "level_up",
                f"Level up: {level_up.new_level.name}",
                data={"level": level_up.new_level.id},
            ),
            result,
        )

    async def _sync_level(self, user_id: str, total: int) -> None:
        """Store the level for the highest total seen, never moving it backwards."""
        target = self.config.levels.resolve_level(total)
        for _ in range(self.config.max_cas_attempts):
            user = await self.store.get_user_snapshot(user_id)
            stored = self.config.levels.get_level_by_id(user.stats.level)
            if stored is not None and stored.min_points >= target.min_points:
                return
            if await self.store.apply_field_updates(user_id, {"level": target.id}, expected={"level": user.stats.level}):
                return
        logger.warning("level_sync_contended", user_id=user_id, level=target.id)

    # --- Badges and claims ---

    async def _award_badges(self, effect: AwardBadges, result: AppliedEffects) -> None:
        if not effect.badge_ids:
            return
        new_ids = await self.store.add_badges(effect.user_id, effect.badge_ids)
        if not new_ids:
            return
        result.badges.setdefault(effect.user_id, []).extend(new_ids)

        badges = [badge for badge in map(self.config.catalog.get, new_ids) if badge is not None]
        bonus = sum(badge.points_value for badge in badges)
        logger.info("badges_awarded", user_id=effect.user_id, badge_ids=new_ids, bonus_points=bonus)
        await self._award_points(AwardPoints(effect.user_id, bonus, "badges"), result)
        for badge in badges:
            await self._notify(
                Notify(
                    effect.user_id,
                    "badge_earned",
                    f"Badge Earned: {badge.name}",
                    badge.description or badge.requirement,
                    data={"badgeId": badge.id, "rarity": badge.rarity, "points": badge.points_value},
                ),
                result,
            )

    async def _trigger_claim(self, effect: TriggerClaim, result: AppliedEffects) -> None:
        requested_at = datetime.now(timezone.utc)
        if not await self.store.set_once("users", effect.user_id, "reward_claim_requested_at", requested_at):
            return
        result.claims.append(effect.user_id)
        logger.info("reward_claim_requested", user_id=effect.user_id, badge_id=effect.badge_id)
        if self.claim_queue is None:
            return
        try:
            await self.claim_queue.rpush(
                REWARD_CLAIM_QUEUE,
                json.dumps({
                    "user_id": effect.user_id,
                    "badge_id": effect.badge_id,
                    "requested_at": requested_at.isoformat(),
                }),
            )
        except Exception:
            # The flag is set; operators pick up the claim from the log line above.
            logger.warning("reward_claim_enqueue_failed", user_id=effect.user_id, exc_info=True)

    async def _notify(self, effect: Notify, result: AppliedEffects) -> None:
        if self.publisher is None:
            return
        try:
            sent = await self.publisher.notify(
                effect.user_id, effect.notification_type, effect.title, effect.body, dict(effect.data)
            )
        except EngagementError:
            logger.warning("notification_gate_failed", user_id=effect.user_id,
                           notification_type=effect.notification_type, exc_info=True)
            return
        if sent:
            result.notifications_sent += 1
