"""SqlStatsStore against a real PostgreSQL database.

Set CREWMATE_TEST_DATABASE_URL (postgresql+asyncpg://...) to run these; the
tables are created on first use and truncated between tests.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import text

from crewmate.database import close_db, create_all, get_engine, get_session_factory, init_db
from crewmate.db.models import Plan, User
from crewmate.exceptions import NotFoundError
from crewmate.store import CompareAndSet, SetOnce, SqlStatsStore

DATABASE_URL = os.environ.get("CREWMATE_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="CREWMATE_TEST_DATABASE_URL not set")


@pytest_asyncio.fixture
async def sql_store() -> AsyncGenerator[SqlStatsStore, None]:
    await init_db(DATABASE_URL)
    await create_all()
    async with get_engine().begin() as conn:
        await conn.execute(text("TRUNCATE user_badges, user_counters, plans, spots, users"))
    factory = get_session_factory()
    async with factory() as session, session.begin():
        session.add_all([
            User(id="u1", display_name="Ana", airline="Delta", base="ATL"),
            User(id="u2", referred_by="u1"),
            Plan(id="p1", host_id="u1", attendee_count=4),
        ])
    yield SqlStatsStore(factory)
    await close_db()


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_defaults_and_counters(self, sql_store):
        await sql_store.apply_counter_deltas("u1", {"totalCheckIns": 2, "continentCheckIns.Europe": 1})
        user = await sql_store.get_user_snapshot("u1")
        assert user.stats.points == 0
        assert user.stats.level == "rookie"
        assert user.stats.total_check_ins == 2
        assert user.stats.continent_check_ins == {"Europe": 1}

    @pytest.mark.asyncio
    async def test_missing_user(self, sql_store):
        with pytest.raises(NotFoundError):
            await sql_store.get_user_snapshot("ghost")

    @pytest.mark.asyncio
    async def test_entity_and_referred_users(self, sql_store):
        plan = await sql_store.get_entity("plans", "p1")
        assert plan["attendee_count"] == 4
        assert [user.user_id for user in await sql_store.list_referred_users("u1")] == ["u2"]


class TestAtomicPrimitives:
    @pytest.mark.asyncio
    async def test_concurrent_point_increments(self, sql_store):
        await asyncio.gather(*(sql_store.apply_points_delta("u1", 5) for _ in range(20)))
        user = await sql_store.get_user_snapshot("u1")
        assert user.stats.points == 100

    @pytest.mark.asyncio
    async def test_negative_delta_rejected(self, sql_store):
        with pytest.raises(ValueError):
            await sql_store.apply_points_delta("u1", -1)

    @pytest.mark.asyncio
    async def test_add_badges_returns_only_new(self, sql_store):
        assert await sql_store.add_badges("u1", ["first_layover"]) == ["first_layover"]
        assert await sql_store.add_badges("u1", ["first_layover", "city_expert"]) == ["city_expert"]

    @pytest.mark.asyncio
    async def test_set_once_flips_once(self, sql_store):
        results = await asyncio.gather(
            *(sql_store.set_once("users", "u2", "referral_credited", True) for _ in range(5))
        )
        assert results.count(True) == 1
        completed_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert await sql_store.set_once("plans", "p1", "host_completed_at", completed_at) is True
        assert await sql_store.set_once("plans", "p1", "host_completed_at", completed_at) is False

    @pytest.mark.asyncio
    async def test_compare_and_set(self, sql_store):
        day = date(2026, 3, 1)
        updates = {"current_streak": 1, "longest_streak": 1, "last_action_date": day}
        expected = {"current_streak": 0, "last_action_date": None}
        assert await sql_store.apply_field_updates("u1", updates, expected) is True
        assert await sql_store.apply_field_updates("u1", updates, expected) is False

    @pytest.mark.asyncio
    async def test_set_counter_overwrites(self, sql_store):
        await sql_store.apply_counter_deltas("u1", {"successfulReferrals": 9})
        await sql_store.set_counter("u1", "successfulReferrals", 3)
        user = await sql_store.get_user_snapshot("u1")
        assert user.stats.successful_referrals == 3


class TestGuardedIncrements:
    @pytest.mark.asyncio
    async def test_guard_and_increments_commit_together(self, sql_store):
        completed_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
        guard = SetOnce("plans", "p1", "host_completed_at", completed_at)
        total = await sql_store.apply_guarded(guard, "u1", 75, {"plansCompleted": 1})
        assert total == 75
        assert await sql_store.apply_guarded(guard, "u1", 75, {"plansCompleted": 1}) is None
        user = await sql_store.get_user_snapshot("u1")
        assert user.stats.points == 75
        assert user.stats.plans_completed == 1

    @pytest.mark.asyncio
    async def test_missing_user_rolls_the_guard_back(self, sql_store):
        guard = SetOnce("users", "u2", "referral_credited", True)
        with pytest.raises(NotFoundError):
            await sql_store.apply_guarded(guard, "ghost", counters={"successfulReferrals": 1})
        referred = await sql_store.get_user_snapshot("u2")
        assert referred.referral_credited is False

    @pytest.mark.asyncio
    async def test_streak_compare_and_set_with_bonus(self, sql_store):
        day = date(2026, 3, 1)
        guard = CompareAndSet(
            "u1",
            {"current_streak": 1, "longest_streak": 1, "last_action_date": day},
            expected={"current_streak": 0, "last_action_date": None},
        )
        assert await sql_store.apply_guarded(guard, "u1", points=4) == 4
        assert await sql_store.apply_guarded(guard, "u1", points=4) is None
