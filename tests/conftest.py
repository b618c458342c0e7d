"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from crewmate.dependencies import get_redis_dep, get_store
from crewmate.engagement.config import EngagementConfig
from crewmate.engagement.effects import EffectApplier
from crewmate.engagement.engine import EngagementEngine
from crewmate.main import create_app
from crewmate.notifications.preferences import PreferenceGate
from crewmate.notifications.push import NotificationPublisher
from crewmate.referrals.ledger import ReferralLedger
from tests.fakes import FakeRedis, InMemoryStatsStore


@pytest.fixture
def store() -> InMemoryStatsStore:
    return InMemoryStatsStore()


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def config() -> EngagementConfig:
    return EngagementConfig()


@pytest.fixture
def applier(store: InMemoryStatsStore, config: EngagementConfig, redis: FakeRedis) -> EffectApplier:
    publisher = NotificationPublisher(redis, PreferenceGate(store))
    return EffectApplier(store, config, publisher=publisher, claim_queue=redis)


@pytest.fixture
def engine(store: InMemoryStatsStore, config: EngagementConfig, applier: EffectApplier) -> EngagementEngine:
    return EngagementEngine(store, config, applier)


@pytest.fixture
def ledger(store: InMemoryStatsStore, config: EngagementConfig, applier: EffectApplier) -> ReferralLedger:
    return ReferralLedger(store, config, applier)


@pytest_asyncio.fixture
async def client(store: InMemoryStatsStore, redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the store and Redis swapped for fakes."""
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_redis_dep] = lambda: redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
