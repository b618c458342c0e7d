"""Engagement API endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from crewmate.dependencies import (
    get_engagement_config,
    get_engine,
    get_ledger,
    get_preference_gate,
    get_store,
)
from crewmate.engagement.badges import get_badge_completion_percent, get_badge_progress
from crewmate.engagement.config import EngagementConfig
from crewmate.engagement.engine import EngagementEngine
from crewmate.engagement.schemas import (
    ActionRequest,
    ActionResponse,
    AllLevelsResponse,
    AttributeReferralRequest,
    AttributionResponse,
    BadgeProgressEntry,
    BadgeProgressResponse,
    CreditResponse,
    LevelEntry,
    NotificationDecisionResponse,
    RecountResponse,
    StreakCheckInRequest,
    StreakResponse,
)
from crewmate.notifications.preferences import PreferenceGate
from crewmate.referrals.ledger import ReferralLedger
from crewmate.store import StatsStore

router = APIRouter(prefix="/api/v1/engagement", tags=["Engagement"])


# ── Actions & streaks ──


@router.post("/users/{user_id}/actions", response_model=ActionResponse)
async def report_action(
    user_id: str,
    body: ActionRequest,
    engine: EngagementEngine = Depends(get_engine),  # noqa: B008
):
    """Score one validated user action."""
    try:
        result = await engine.report_action(user_id, body.action_type, body.metadata)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ActionResponse(**asdict(result))


@router.post("/users/{user_id}/streak/check-in", response_model=StreakResponse)
async def check_in_streak(
    user_id: str,
    body: StreakCheckInRequest | None = None,
    engine: EngagementEngine = Depends(get_engine),  # noqa: B008
):
    """Advance the user's day streak."""
    result = await engine.check_in_streak(user_id, body.today if body else None)
    return StreakResponse(**asdict(result))


# ── Badges & levels ──


@router.get("/users/{user_id}/badges/progress", response_model=BadgeProgressResponse)
async def badge_progress(
    user_id: str,
    store: StatsStore = Depends(get_store),  # noqa: B008
    config: EngagementConfig = Depends(get_engagement_config),  # noqa: B008
):
    """Progress toward every automated badge."""
    user = await store.get_user_snapshot(user_id)
    catalog = config.catalog
    entries = [
        BadgeProgressEntry(
            id=badge.id,
            name=badge.name,
            category=badge.category,
            rarity=badge.rarity,
            points_value=badge.points_value,
            earned=badge.id in user.badges,
            progress=get_badge_progress(badge, user.stats, catalog),
            percent=100 if badge.id in user.badges else get_badge_completion_percent(badge, user.stats, catalog),
        )
        for badge in catalog.automated()
    ]
    return BadgeProgressResponse(
        user_id=user_id,
        total_earned=sum(1 for entry in entries if entry.earned),
        total_available=len(entries),
        badges=entries,
    )


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(config: EngagementConfig = Depends(get_engagement_config)):  # noqa: B008
    """The level ladder."""
    return AllLevelsResponse(
        levels=[LevelEntry(id=level.id, name=level.name, min_points=level.min_points)
                for level in config.levels.levels],
    )


# ── Referrals ──


@router.post("/referrals/attribute", response_model=AttributionResponse)
async def attribute_referral(
    body: AttributeReferralRequest,
    ledger: ReferralLedger = Depends(get_ledger),  # noqa: B008
):
    """Record who referred a new user."""
    result = await ledger.attribute_referral(body.new_user_id, body.referrer_id)
    return AttributionResponse(
        accepted=result.accepted,
        rejection=result.rejection.value if result.rejection else None,
    )


@router.post("/users/{user_id}/referral/credit", response_model=CreditResponse)
async def credit_referrer(
    user_id: str,
    ledger: ReferralLedger = Depends(get_ledger),  # noqa: B008
):
    """Credit the user's referrer once their profile is complete."""
    result = await ledger.credit_referrer_if_eligible(user_id)
    return CreditResponse(**asdict(result))


@router.post("/referrals/{referrer_id}/recount", response_model=RecountResponse)
async def recount_referrals(
    referrer_id: str,
    ledger: ReferralLedger = Depends(get_ledger),  # noqa: B008
):
    """Maintenance: reconcile a referrer's completed-referral count."""
    report = await ledger.recount_referrals(referrer_id)
    return RecountResponse(**asdict(report))


# ── Notifications ──


@router.get(
    "/users/{user_id}/notifications/{notification_type}",
    response_model=NotificationDecisionResponse,
)
async def notification_decision(
    user_id: str,
    notification_type: str,
    gate: PreferenceGate = Depends(get_preference_gate),  # noqa: B008
):
    """Whether a notification of this type would be delivered to the user."""
    enabled = await gate.is_notification_enabled(user_id, notification_type)
    return NotificationDecisionResponse(user_id=user_id, notification_type=notification_type, enabled=enabled)
