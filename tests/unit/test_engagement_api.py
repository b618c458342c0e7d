"""HTTP surface tests: the app with the store and Redis swapped for fakes."""

from __future__ import annotations

import pytest

COMPLETE_PROFILE = {"photo_url": "https://cdn/p.jpg", "airline": "Delta", "base": "ATL"}


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready_reports_degraded_without_backends(self, client):
        # No lifespan runs under ASGITransport, so neither pool exists
        response = await client.get("/ready")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert set(body["checks"]) == {"database", "redis"}


class TestActions:
    @pytest.mark.asyncio
    async def test_report_action(self, client, store):
        store.add_user("u1")
        response = await client.post("/api/v1/engagement/users/u1/actions", json={"action_type": "spot_added"})
        assert response.status_code == 200
        body = response.json()
        assert body["points_awarded"] == 10
        assert body["total_points"] == 10
        assert body["leveled_up"] is False

    @pytest.mark.asyncio
    async def test_unknown_action_type_is_rejected(self, client, store):
        store.add_user("u1")
        response = await client.post("/api/v1/engagement/users/u1/actions", json={"action_type": "moonwalk"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_missing_metadata_is_422(self, client, store):
        store.add_user("u1")
        response = await client.post("/api/v1/engagement/users/u1/actions", json={"action_type": "plan_hosted"})
        assert response.status_code == 422
        assert "plan_id" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, client):
        response = await client.post("/api/v1/engagement/users/ghost/actions", json={"action_type": "spot_added"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_store_outage_is_503(self, client, store):
        store.add_user("u1")
        store.fail_on.add("get_user_snapshot")
        response = await client.post("/api/v1/engagement/users/u1/actions", json={"action_type": "spot_added"})
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_streak_check_in(self, client, store):
        store.add_user("u1")
        response = await client.post(
            "/api/v1/engagement/users/u1/streak/check-in", json={"today": "2026-03-01"}
        )
        assert response.status_code == 200
        assert response.json()["streak_days"] == 1


class TestBadgesAndLevels:
    @pytest.mark.asyncio
    async def test_levels(self, client):
        response = await client.get("/api/v1/engagement/levels")
        levels = response.json()["levels"]
        assert levels[0] == {"id": "rookie", "name": "Rookie Crew", "min_points": 0}
        assert [level["min_points"] for level in levels] == sorted(level["min_points"] for level in levels)

    @pytest.mark.asyncio
    async def test_badge_progress(self, client, store):
        store.add_user("u1", counters={"citiesVisitedCount": 7, "totalCheckIns": 7}, badges=("first_layover",))
        response = await client.get("/api/v1/engagement/users/u1/badges/progress")
        body = response.json()
        by_id = {entry["id"]: entry for entry in body["badges"]}
        assert by_id["globe_trotter_10"]["progress"] == "7/10 cities"
        assert by_id["globe_trotter_10"]["percent"] == 70
        assert by_id["first_layover"]["earned"] is True
        assert "founding_crew" not in by_id
        assert body["total_earned"] == 1


class TestReferrals:
    @pytest.mark.asyncio
    async def test_attribute_then_credit(self, client, store):
        store.add_user("ref")
        store.add_user("new", **COMPLETE_PROFILE)
        attributed = await client.post(
            "/api/v1/engagement/referrals/attribute", json={"new_user_id": "new", "referrer_id": "ref"}
        )
        assert attributed.json() == {"accepted": True, "rejection": None}

        credited = await client.post("/api/v1/engagement/users/new/referral/credit")
        body = credited.json()
        assert body["credited"] is True
        assert body["new_badge_ids"] == ["recruiter_1"]

    @pytest.mark.asyncio
    async def test_self_attribution(self, client, store):
        store.add_user("u1")
        response = await client.post(
            "/api/v1/engagement/referrals/attribute", json={"new_user_id": "u1", "referrer_id": "u1"}
        )
        assert response.json()["rejection"] == "self_reference"

    @pytest.mark.asyncio
    async def test_recount(self, client, store):
        store.add_user("ref")
        store.add_user("half", referred_by="ref", display_name="Sam")
        response = await client.post("/api/v1/engagement/referrals/ref/recount")
        body = response.json()
        assert (body["total_referred"], body["pending"]) == (1, 1)
        assert body["pending_details"][0]["missing"] == ["photo", "airline", "base"]


class TestNotifications:
    @pytest.mark.asyncio
    async def test_decision(self, client, store):
        store.add_user("u1", notification_preferences={"categories": {"badges": False}})
        response = await client.get("/api/v1/engagement/users/u1/notifications/badge_earned")
        assert response.json()["enabled"] is False
