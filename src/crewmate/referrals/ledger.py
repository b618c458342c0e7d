"""Referral attribution, one-time crediting and the recruiter reward cascade.

Flow:
1. ``attribute_referral`` at signup writes ``referred_by`` once.
2. ``credit_referrer_if_eligible`` when the referred user completes their
   profile (photo + airline + base). ``referral_credited`` is test-and-set in
   the same transaction as the referrer's counter, so the counter moves by
   exactly one per referral.
3. ``check_referral_badges`` re-checks the recruiter series and, when the top
   tier is held but not yet claimed, emits a one-time claim.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from crewmate.engagement.badges import check_new_badges
from crewmate.engagement.config import REFERRAL_BADGE_FAMILY, EngagementConfig
from crewmate.engagement.effects import (
    AppliedEffects,
    AwardBadges,
    Effect,
    EffectApplier,
    GuardedIncrement,
    TriggerClaim,
)
from crewmate.engagement.snapshots import UserSnapshot
from crewmate.exceptions import NotFoundError
from crewmate.store import SetOnce, StatsStore

logger = structlog.get_logger()

REFERRAL_COUNTER = "successfulReferrals"
REQUIRED_PROFILE_FIELDS = (("photo", "photo_url"), ("airline", "airline"), ("base", "base"))


class AttributionRejection(str, Enum):
    SELF_REFERENCE = "self_reference"
    REFERRER_NOT_FOUND = "referrer_not_found"
    ALREADY_ATTRIBUTED = "already_attributed"


@dataclass(frozen=True)
class AttributionResult:
    accepted: bool
    rejection: AttributionRejection | None = None


@dataclass(frozen=True)
class CreditResult:
    credited: bool
    referrer_id: str | None = None
    reason: str | None = None
    missing_fields: tuple[str, ...] = ()
    new_badge_ids: tuple[str, ...] = ()
    claim_triggered: bool = False


@dataclass(frozen=True)
class PendingReferral:
    user_id: str
    display_name: str
    missing: tuple[str, ...]


@dataclass(frozen=True)
class RecountReport:
    total_referred: int
    completed: int
    pending: int
    newly_credited: int
    pending_details: tuple[PendingReferral, ...] = ()
    badges_awarded: tuple[str, ...] = ()
    claim_triggered: bool = False


def is_referral_complete(user: UserSnapshot) -> tuple[bool, list[str]]:
    """Complete when photo, airline and base are all present and non-blank."""
    missing = [
        label for label, attr in REQUIRED_PROFILE_FIELDS
        if not (getattr(user, attr) or "").strip()
    ]
    return not missing, missing


class ReferralLedger:
    """Store-backed referral bookkeeping. Writes go through the effect applier."""

    def __init__(self, store: StatsStore, config: EngagementConfig, applier: EffectApplier | None = None) -> None:
        self.store = store
        self.config = config
        self.applier = applier or EffectApplier(store, config)

    async def attribute_referral(self, new_user_id: str, referrer_id: str) -> AttributionResult:
        """Record who referred ``new_user_id``. Rejections are logged, never raised.

        Raises:
            NotFoundError: If the new user does not exist.
        """
        if new_user_id == referrer_id:
            logger.warning("referral_rejected", reason="self_reference", user_id=new_user_id)
            return AttributionResult(False, AttributionRejection.SELF_REFERENCE)

        try:
            await self.store.get_user_snapshot(referrer_id)
        except NotFoundError:
            logger.warning("referral_rejected", reason="referrer_not_found", user_id=new_user_id,
                           referrer_id=referrer_id)
            return AttributionResult(False, AttributionRejection.REFERRER_NOT_FOUND)

        if not await self.store.set_once("users", new_user_id, "referred_by", referrer_id):
            logger.info("referral_rejected", reason="already_attributed", user_id=new_user_id,
                        referrer_id=referrer_id)
            return AttributionResult(False, AttributionRejection.ALREADY_ATTRIBUTED)

        logger.info("referral_attributed", user_id=new_user_id, referrer_id=referrer_id)
        return AttributionResult(True)

    async def credit_referrer_if_eligible(self, user_id: str) -> CreditResult:
        user = await self.store.get_user_snapshot(user_id)
        referrer_id = user.referred_by
        if not referrer_id:
            return CreditResult(False, reason="not_referred")

        complete, missing = is_referral_complete(user)
        if not complete:
            return CreditResult(False, referrer_id, reason="incomplete", missing_fields=tuple(missing))

        if user.referral_credited:
            return CreditResult(False, referrer_id, reason="already_credited")

        # The flag only flips together with the referrer's counter; a missing referrer leaves it unset
        applied = await self.applier.apply([
            GuardedIncrement(
                SetOnce("users", user_id, "referral_credited", True),
                referrer_id,
                counters={REFERRAL_COUNTER: 1},
                reason="referral",
            ),
        ])
        if applied.rejected:
            return CreditResult(False, referrer_id, reason="already_credited")
        logger.info("referral_credited", referrer_id=referrer_id, user_id=user_id)

        await self.applier.apply(await self.check_referral_badges(referrer_id), applied)
        return CreditResult(
            True,
            referrer_id,
            new_badge_ids=tuple(applied.badges_for(referrer_id)),
            claim_triggered=referrer_id in applied.claims,
        )

    async def check_referral_badges(self, referrer_id: str) -> list[Effect]:
        """Pending effects for the referrer's recruiter badges and the one-time claim."""
        referrer = await self.store.get_user_snapshot(referrer_id)
        new_badges = check_new_badges(
            referrer.stats, referrer.badges, self.config.catalog, family=REFERRAL_BADGE_FAMILY
        )
        new_ids = tuple(badge.id for badge in new_badges)

        effects: list[Effect] = []
        if new_ids:
            effects.append(AwardBadges(referrer_id, new_ids))

        top = self.config.top_referral_badge_id
        holds_top = top is not None and (top in new_ids or top in referrer.badges)
        if holds_top and referrer.reward_claim_requested_at is None:
            effects.append(TriggerClaim(referrer_id, top))
        return effects

    def can_claim_reward(self, user: UserSnapshot) -> bool:
        """True when the top recruiter badge is earned and no claim was requested yet."""
        top = self.config.top_referral_badge_id
        return top is not None and top in user.badges and user.reward_claim_requested_at is None

    async def recount_referrals(self, referrer_id: str) -> RecountReport:
        """Maintenance: rescan every referred user and reconcile the referrer's counter."""
        await self.store.get_user_snapshot(referrer_id)
        referred = [user for user in await self.store.list_referred_users(referrer_id)
                    if user.user_id != referrer_id]

        completed = 0
        newly_credited = 0
        pending: list[PendingReferral] = []
        for user in referred:
            complete, missing = is_referral_complete(user)
            if complete:
                completed += 1
                if not user.referral_credited and await self.store.set_once(
                    "users", user.user_id, "referral_credited", True
                ):
                    newly_credited += 1
            else:
                pending.append(PendingReferral(user.user_id, user.display_name or "Unknown", tuple(missing)))

        await self.store.set_counter(referrer_id, REFERRAL_COUNTER, completed)
        applied: AppliedEffects = await self.applier.apply(await self.check_referral_badges(referrer_id))

        report = RecountReport(
            total_referred=len(referred),
            completed=completed,
            pending=len(pending),
            newly_credited=newly_credited,
            pending_details=tuple(pending),
            badges_awarded=tuple(applied.badges_for(referrer_id)),
            claim_triggered=referrer_id in applied.claims,
        )
        logger.info("referrals_recounted", referrer_id=referrer_id, total=report.total_referred,
                    completed=completed, pending=report.pending, badges=list(report.badges_awarded))
        return report
