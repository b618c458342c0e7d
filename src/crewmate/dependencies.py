"""Shared FastAPI dependencies.

Each collaborator is built per request from the process-wide pools so tests
can override any single one through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from crewmate.config import get_settings
from crewmate.database import get_session_factory
from crewmate.engagement.config import EngagementConfig
from crewmate.engagement.effects import EffectApplier
from crewmate.engagement.engine import EngagementEngine
from crewmate.notifications.preferences import PreferenceGate
from crewmate.notifications.push import NotificationPublisher
from crewmate.redis_client import get_redis
from crewmate.referrals.ledger import ReferralLedger
from crewmate.store import SqlStatsStore, StatsStore


@lru_cache
def get_engagement_config() -> EngagementConfig:
    """Engine config built once per process from settings."""
    return EngagementConfig.from_settings(get_settings())


def get_store() -> StatsStore:
    return SqlStatsStore(get_session_factory())


def get_redis_dep() -> object:
    """The Redis client as a FastAPI dependency."""
    return get_redis()


def get_preference_gate(store: StatsStore = Depends(get_store)) -> PreferenceGate:  # noqa: B008
    return PreferenceGate(store)


def get_applier(
    store: StatsStore = Depends(get_store),  # noqa: B008
    config: EngagementConfig = Depends(get_engagement_config),  # noqa: B008
    redis: object = Depends(get_redis_dep),  # noqa: B008
) -> EffectApplier:
    publisher = NotificationPublisher(redis, PreferenceGate(store))
    return EffectApplier(store, config, publisher=publisher, claim_queue=redis)


def get_engine(
    store: StatsStore = Depends(get_store),  # noqa: B008
    config: EngagementConfig = Depends(get_engagement_config),  # noqa: B008
    applier: EffectApplier = Depends(get_applier),  # noqa: B008
) -> EngagementEngine:
    return EngagementEngine(store, config, applier)


def get_ledger(
    store: StatsStore = Depends(get_store),  # noqa: B008
    config: EngagementConfig = Depends(get_engagement_config),  # noqa: B008
    applier: EffectApplier = Depends(get_applier),  # noqa: B008
) -> ReferralLedger:
    return ReferralLedger(store, config, applier)
