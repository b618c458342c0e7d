"""Engagement engine tests against the in-memory store."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from crewmate.engagement.engine import plan_time_buckets
from crewmate.engagement.scoring import ActionType
from crewmate.exceptions import ConcurrentUpdateError, NotFoundError, StoreUnavailableError

NOW = datetime.now(timezone.utc)
LONG_AGO = NOW - timedelta(days=365)


class TestCheckIn:
    @pytest.mark.asyncio
    async def test_new_user_new_city_new_continent_international(self, engine, store):
        store.add_user("u1", created_at=NOW - timedelta(days=2))
        result = await engine.report_action("u1", ActionType.CHECK_IN, {"city": "Paris"})
        assert result.points_awarded == 10 + 15 + 5 + 10 + 15
        counters = store.counters["u1"]
        assert counters["totalCheckIns"] == 1
        assert counters["cityCheckInCounts.Paris"] == 1
        assert counters["continentCheckIns.Europe"] == 1
        assert counters["citiesVisitedCount"] == 1

    @pytest.mark.asyncio
    async def test_repeat_city_earns_base_only(self, engine, store):
        store.add_user(
            "u1",
            created_at=LONG_AGO,
            counters={"cityCheckInCounts.Denver": 2, "continentCheckIns.North America": 2},
        )
        result = await engine.report_action("u1", "check_in", {"city": "Denver"})
        assert result.points_awarded == 10
        assert "citiesVisitedCount" not in store.counters["u1"]

    @pytest.mark.asyncio
    async def test_spot_lookup_feeds_spot_type(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO, counters={"continentCheckIns.North America": 1})
        store.add_spot("s1", spot_type="Coffee", city="Seattle")
        await engine.report_action("u1", ActionType.CHECK_IN, {"spot_id": "s1"})
        assert store.counters["u1"]["spotTypeVisits.coffee"] == 1
        assert store.counters["u1"]["cityCheckInCounts.Seattle"] == 1

    @pytest.mark.asyncio
    async def test_first_check_in_awards_first_layover(self, engine, store, redis):
        store.add_user("u1", created_at=LONG_AGO, counters={"continentCheckIns.North America": 1})
        result = await engine.report_action("u1", ActionType.CHECK_IN, {"city": "Denver"})
        assert "first_layover" in result.new_badge_ids
        assert "first_layover" in store.badges["u1"]
        assert any(payload["data"].get("badgeId") == "first_layover" for _, payload in redis.published)

    @pytest.mark.asyncio
    async def test_international_override(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO, counters={"continentCheckIns.North America": 1})
        result = await engine.report_action(
            "u1", ActionType.CHECK_IN, {"city": "Denver", "is_international": True}
        )
        # base + new city + international
        assert result.points_awarded - _badge_points(engine, result) == 10 + 5 + 15


    @pytest.mark.asyncio
    async def test_unknown_continent_falls_back_to_city_lookup(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO, counters={"continentCheckIns.Europe": 1})
        await engine.report_action("u1", ActionType.CHECK_IN, {"city": "London", "continent": "Atlantis"})
        assert store.counters["u1"]["continentCheckIns.Europe"] == 2
        assert "continentCheckIns.Atlantis" not in store.counters["u1"]


def _badge_points(engine, result) -> int:
    return sum(engine.config.catalog.get(badge_id).points_value for badge_id in result.new_badge_ids)


class TestPlans:
    @pytest.mark.asyncio
    async def test_hosted_plan_scores_once(self, engine, store):
        store.add_user("host", created_at=LONG_AGO)
        store.add_plan("p1", host_id="host", attendee_count=6)
        first = await engine.report_action("host", ActionType.PLAN_HOSTED, {"plan_id": "p1"})
        again = await engine.report_action("host", ActionType.PLAN_HOSTED, {"plan_id": "p1"})
        assert first.points_awarded == 75
        assert again.already_completed
        assert again.points_awarded == 0
        assert store.users["host"]["points"] == 75
        assert store.counters["host"] == {"plansCompleted": 1, "plansCompletedWithAttendees": 1}

    @pytest.mark.asyncio
    async def test_concurrent_redelivery_scores_once(self, engine, store):
        store.add_user("host", created_at=LONG_AGO)
        store.add_plan("p1", host_id="host", attendee_count=10)
        results = await asyncio.gather(
            *(engine.report_action("host", ActionType.PLAN_HOSTED, {"plan_id": "p1"}) for _ in range(3))
        )
        assert sum(1 for result in results if not result.already_completed) == 1
        assert store.users["host"]["points"] == 125

    @pytest.mark.asyncio
    async def test_failed_completion_can_be_retried(self, engine, store):
        store.add_user("host", created_at=LONG_AGO)
        store.add_plan("p1", host_id="host", attendee_count=6)
        store.fail_on.add("apply_guarded")
        with pytest.raises(StoreUnavailableError):
            await engine.report_action("host", ActionType.PLAN_HOSTED, {"plan_id": "p1"})
        assert store.entities["plans"]["p1"]["host_completed_at"] is None

        store.fail_on.clear()
        retry = await engine.report_action("host", ActionType.PLAN_HOSTED, {"plan_id": "p1"})
        assert not retry.already_completed
        assert retry.points_awarded == 75
        assert store.counters["host"] == {"plansCompleted": 1, "plansCompletedWithAttendees": 1}
        assert store.entities["plans"]["p1"]["host_completed_at"] is not None

    @pytest.mark.asyncio
    async def test_hosted_plan_requires_plan_id(self, engine, store):
        store.add_user("host")
        with pytest.raises(ValueError):
            await engine.report_action("host", ActionType.PLAN_HOSTED, {})

    @pytest.mark.asyncio
    async def test_missing_plan(self, engine, store):
        store.add_user("host")
        with pytest.raises(NotFoundError):
            await engine.report_action("host", ActionType.PLAN_HOSTED, {"plan_id": "nope"})

    @pytest.mark.asyncio
    async def test_only_the_host_completes(self, engine, store):
        store.add_user("guest")
        store.add_plan("p1", host_id="host")
        with pytest.raises(ValueError):
            await engine.report_action("guest", ActionType.PLAN_HOSTED, {"plan_id": "p1"})
        assert store.entities["plans"]["p1"]["host_completed_at"] is None

    @pytest.mark.asyncio
    async def test_joined_plan_time_buckets(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO)
        # Saturday 23:00
        await engine.report_action("u1", ActionType.PLAN_JOINED, {"starts_at": "2026-03-07T23:00:00"})
        assert store.counters["u1"] == {"plansJoined": 1, "nightPlans": 1, "weekendPlans": 1}

    @pytest.mark.parametrize(
        ("starts_at", "expected"),
        [
            (datetime(2026, 3, 4, 22, 0), ["nightPlans"]),
            (datetime(2026, 3, 4, 4, 59), ["nightPlans"]),
            (datetime(2026, 3, 4, 5, 0), ["morningPlans"]),
            (datetime(2026, 3, 4, 8, 59), ["morningPlans"]),
            (datetime(2026, 3, 4, 9, 0), []),
            (datetime(2026, 3, 8, 12, 0), ["weekendPlans"]),
        ],
    )
    def test_time_bucket_boundaries(self, starts_at, expected):
        assert plan_time_buckets(starts_at) == expected


class TestOtherActions:
    @pytest.mark.asyncio
    async def test_review_with_text(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO)
        text = " ".join(["word"] * 120)
        result = await engine.report_action("u1", ActionType.REVIEW, {"text": text, "has_photo": True})
        assert result.points_awarded == 15 + 10 + 10
        assert store.counters["u1"]["reviewsWritten"] == 1

    @pytest.mark.asyncio
    async def test_connection_and_vote_counters(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO)
        await engine.report_action("u1", ActionType.CONNECTION_ACCEPTED)
        await engine.report_action("u1", ActionType.REVIEW_HELPFUL_VOTE)
        assert store.counters["u1"] == {"connectionsCount": 1, "reviewHelpfulCount": 1}
        assert store.users["u1"]["points"] == 5 + 3

    @pytest.mark.asyncio
    async def test_unknown_action(self, engine, store):
        store.add_user("u1")
        with pytest.raises(ValueError):
            await engine.report_action("u1", "moonwalk")

    @pytest.mark.asyncio
    async def test_missing_user(self, engine):
        with pytest.raises(NotFoundError):
            await engine.report_action("ghost", ActionType.SPOT_ADDED)

    @pytest.mark.asyncio
    async def test_concurrent_actions_lose_no_points(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO)
        await asyncio.gather(*(engine.report_action("u1", ActionType.SPOT_ADDED) for _ in range(20)))
        assert store.users["u1"]["points"] == 200


class TestLevelsAndBadges:
    @pytest.mark.asyncio
    async def test_level_up_is_reported_and_stored(self, engine, store, redis):
        store.add_user("u1", created_at=LONG_AGO, points=95)
        result = await engine.report_action("u1", ActionType.SPOT_ADDED)
        assert result.leveled_up
        assert (result.old_level, result.new_level) == ("rookie", "junior")
        assert store.users["u1"]["level"] == "junior"
        assert any(payload["data"]["type"] == "level_up" for _, payload in redis.published)

    @pytest.mark.asyncio
    async def test_badge_points_are_added(self, engine, store):
        store.add_user(
            "u1",
            created_at=LONG_AGO,
            counters={"citiesVisitedCount": 9, "totalCheckIns": 9, "continentCheckIns.North America": 9},
            badges=("first_layover",),
        )
        result = await engine.report_action("u1", ActionType.CHECK_IN, {"city": "Denver"})
        assert result.new_badge_ids == ("globe_trotter_10",)
        # base + new city + globe_trotter_10
        assert result.points_awarded == 10 + 5 + 50
        assert store.users["u1"]["points"] == 65

    @pytest.mark.asyncio
    async def test_badge_check_failure_keeps_points(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO, counters={"photosUploaded": 9})
        store.fail_on.add("add_badges")
        result = await engine.report_action("u1", ActionType.PHOTO_ADDED)
        assert result.badge_check_failed
        assert result.points_awarded == 5
        assert store.users["u1"]["points"] == 5

    @pytest.mark.asyncio
    async def test_store_failure_before_points_propagates(self, engine, store):
        store.add_user("u1")
        store.fail_on.add("apply_points_delta")
        with pytest.raises(StoreUnavailableError):
            await engine.report_action("u1", ActionType.SPOT_ADDED)


class TestStreakCheckIn:
    @pytest.mark.asyncio
    async def test_consecutive_days_pay_bonus(self, engine, store):
        store.add_user("u1", created_at=LONG_AGO)
        day = date(2026, 3, 1)
        first = await engine.check_in_streak("u1", day)
        second = await engine.check_in_streak("u1", day + timedelta(days=1))
        assert (first.streak_days, first.bonus_points) == (1, 0)
        assert (second.streak_days, second.bonus_points) == (2, 4)
        assert store.users["u1"]["points"] == 4

    @pytest.mark.asyncio
    async def test_same_day_pays_nothing(self, engine, store):
        day = date(2026, 3, 2)
        store.add_user("u1", current_streak=5, longest_streak=5, last_action_date=day)
        result = await engine.check_in_streak("u1", day)
        assert not result.advanced
        assert result.streak_days == 5
        assert store.users["u1"]["points"] == 0

    @pytest.mark.asyncio
    async def test_streak_badge(self, engine, store):
        day = date(2026, 3, 7)
        store.add_user("u1", current_streak=6, longest_streak=6, last_action_date=day - timedelta(days=1))
        result = await engine.check_in_streak("u1", day)
        assert result.streak_days == 7
        assert "streak_master_7" in result.new_badge_ids

    @pytest.mark.asyncio
    async def test_concurrent_same_day_advances_once(self, engine, store):
        day = date(2026, 3, 2)
        store.add_user("u1", current_streak=3, longest_streak=3, last_action_date=day - timedelta(days=1))
        results = await asyncio.gather(*(engine.check_in_streak("u1", day) for _ in range(4)))
        assert sum(1 for result in results if result.advanced) == 1
        assert store.users["u1"]["current_streak"] == 4
        assert store.users["u1"]["points"] == 8

    @pytest.mark.asyncio
    async def test_failed_bonus_leaves_streak_for_retry(self, engine, store):
        day = date(2026, 1, 2)
        store.add_user("u1", current_streak=2, longest_streak=2, last_action_date=day - timedelta(days=1))
        store.fail_on.add("apply_guarded")
        with pytest.raises(StoreUnavailableError):
            await engine.check_in_streak("u1", day)
        assert store.users["u1"]["current_streak"] == 2

        store.fail_on.clear()
        retry = await engine.check_in_streak("u1", day)
        assert retry.advanced
        assert (retry.streak_days, retry.bonus_points) == (3, 6)
        assert store.users["u1"]["points"] == 6

    @pytest.mark.asyncio
    async def test_cas_gives_up(self, engine, store, monkeypatch):
        store.add_user("u1")

        async def always_conflict(*_args, **_kwargs):
            return None

        monkeypatch.setattr(store, "apply_guarded", always_conflict)
        with pytest.raises(ConcurrentUpdateError):
            await engine.check_in_streak("u1", date(2026, 3, 2))
