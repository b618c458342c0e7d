"""Badge definitions and the rules that award them.

Definitions MUST match the mobile client's BadgeShowcase exactly. Badges whose
id ends in a number belong to a tier series (``globe_trotter_10`` ...
``globe_trotter_250``); every tier is evaluated on its own.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from crewmate.engagement.snapshots import UserStatsSnapshot

_TIER_SUFFIX = re.compile(r"^(?P<family>.+?)_(?P<tier>\d+)$")

Metric = Callable[[UserStatsSnapshot], int]


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    category: str
    requirement: str
    points_value: int = 0
    automated: bool = True
    rarity: str = "common"
    description: str = ""
    tier: int | None = field(default=None)

    def __post_init__(self) -> None:
        if self.tier is None:
            match = _TIER_SUFFIX.match(self.id)
            if match:
                object.__setattr__(self, "tier", int(match.group("tier")))

    @property
    def family(self) -> str:
        return badge_family(self.id)


@dataclass(frozen=True)
class BadgeRule:
    """``metric(stats) >= threshold`` earns the badge."""

    metric: Metric
    threshold: int
    unit: str


def badge_family(badge_id: str) -> str:
    """``recruiter_25`` -> ``recruiter``; ids without a numeric tier are their own family."""
    match = _TIER_SUFFIX.match(badge_id)
    return match.group("family") if match else badge_id


# --- Metrics ---


def counter(name: str) -> Metric:
    return lambda stats: getattr(stats, name)


def continent(name: str) -> Metric:
    return lambda stats: stats.continent_check_ins.get(name, 0)


def spot_types(*names: str) -> Metric:
    return lambda stats: sum(stats.spot_type_visits.get(name, 0) for name in names)


def busiest_city(stats: UserStatsSnapshot) -> int:
    return max(stats.city_check_in_counts.values(), default=0)


# --- Definitions ---

FOUNDER_BADGES: tuple[Badge, ...] = (
    Badge("founding_crew", "Founding Crew", "founder",
          "Be part of the alpha testing group (Jan 2026)", 500, automated=False, rarity="exclusive",
          description="One of the original alpha testers who helped shape CrewMate"),
    Badge("beta_pioneer", "Beta Pioneer", "founder",
          "Join CrewMate during beta period (before June 2026)", 250, automated=False, rarity="legendary",
          description="Joined during the beta period and helped test features"),
)

TRAVEL_BADGES: tuple[Badge, ...] = (
    Badge("globe_trotter_10", "Globe Trotter I", "travel", "Check into 10 different cities", 50),
    Badge("globe_trotter_25", "Globe Trotter II", "travel", "Check into 25 different cities", 100, rarity="uncommon"),
    Badge("globe_trotter_50", "Globe Trotter III", "travel", "Check into 50 different cities", 200, rarity="rare"),
    Badge("globe_trotter_100", "Globe Trotter IV", "travel", "Check into 100 different cities", 500, rarity="epic"),
    Badge("globe_trotter_250", "Globe Trotter V", "travel", "Check into 250 different cities", 1000,
          rarity="legendary"),
    Badge("north_america_explorer", "North America Explorer", "travel",
          "Check into 10 cities in North America", rarity="uncommon"),
    Badge("south_america_explorer", "South America Explorer", "travel",
          "Check into 10 cities in South America", rarity="rare"),
    Badge("europe_explorer", "Europe Explorer", "travel", "Check into 10 cities in Europe", rarity="uncommon"),
    Badge("asia_explorer", "Asia Explorer", "travel", "Check into 10 cities in Asia", rarity="rare"),
    Badge("africa_explorer", "Africa Explorer", "travel", "Check into 10 cities in Africa", rarity="epic"),
    Badge("oceania_explorer", "Oceania Explorer", "travel", "Check into 10 cities in Oceania", rarity="epic"),
    Badge("antarctica_explorer", "Antarctica Explorer", "travel", "Check into 1 city in Antarctica",
          rarity="legendary"),
    Badge("city_expert", "City Expert", "travel", "Check into any city 5 times", rarity="uncommon"),
)

COMMUNITY_BADGES: tuple[Badge, ...] = (
    Badge("social_butterfly_10", "Social Butterfly I", "community", "Connect with 10 crew members"),
    Badge("social_butterfly_50", "Social Butterfly II", "community", "Connect with 50 crew members", 100,
          rarity="rare"),
    Badge("social_butterfly_100", "Social Butterfly III", "community", "Connect with 100 crew members", 250,
          rarity="epic"),
    Badge("plan_master_5", "Plan Master I", "community", "Host 5 plans with at least 2 attendees"),
    Badge("plan_master_25", "Plan Master II", "community", "Host 25 plans with at least 2 attendees", 150,
          rarity="rare"),
    Badge("plan_master_100", "Plan Master III", "community", "Host 100 plans with at least 2 attendees", 500,
          rarity="legendary"),
    Badge("review_guru_10", "Review Guru I", "community", "Write 10 reviews"),
    Badge("review_guru_50", "Review Guru II", "community", "Write 50 reviews", 100, rarity="rare"),
    Badge("review_guru_100", "Review Guru III", "community", "Write 100 reviews", 300, rarity="epic"),
    Badge("recruiter_1", "The Connector", "community", "Refer 1 crew member who completes their profile", 25),
    Badge("recruiter_5", "The Recruiter", "community", "Refer 5 crew members who complete their profile", 100,
          rarity="uncommon"),
    Badge("recruiter_15", "Crew Builder", "community", "Refer 15 crew members who complete their profile", 250,
          rarity="rare"),
    Badge("recruiter_25", "Legend of the Crew", "community", "Refer 25 crew members who complete their profile", 500,
          rarity="legendary", description="Unlocks a one-time gift card reward"),
    Badge("photo_enthusiast_10", "Photo Enthusiast I", "community", "Upload 10 photos"),
    Badge("photo_enthusiast_50", "Photo Enthusiast II", "community", "Upload 50 photos", 100, rarity="rare"),
    Badge("spot_recommender_5", "Spot Recommender I", "community", "Recommend 5 spots that get approved",
          automated=False),
    Badge("spot_recommender_25", "Spot Recommender II", "community", "Recommend 25 spots that get approved",
          automated=False, rarity="rare"),
    Badge("spot_recommender_100", "Spot Recommender III", "community", "Recommend 100 spots that get approved",
          automated=False, rarity="epic"),
    Badge("welcomer", "The Welcomer", "community",
          "Be the first to connect + message 10 new crew members (within 7 days of signup)", 200,
          automated=False, rarity="rare"),
    Badge("party_planner", "Party Planner", "community", "Host one plan that reaches 10+ RSVPs", 100,
          automated=False, rarity="rare"),
    Badge("trend_setter", "Trend Setter", "community", "Host a plan that 5+ crew use as template", 150,
          automated=False, rarity="epic"),
    Badge("conversation_starter", "Conversation Starter", "community", "Send 100+ messages across all plan chats",
          automated=False, rarity="uncommon"),
    Badge("photographer", "Photographer", "community", "Upload 50 photos across all reviews", 100,
          automated=False, rarity="rare"),
)

EXPERIENCE_BADGES: tuple[Badge, ...] = (
    Badge("streak_master_7", "Streak Master I", "experience", "Check in on 7 consecutive days", rarity="uncommon"),
    Badge("streak_master_30", "Streak Master II", "experience", "Check in on 30 consecutive days", 150,
          rarity="rare"),
    Badge("streak_master_100", "Streak Master III", "experience", "Check in on 100 consecutive days", 500,
          rarity="legendary"),
    Badge("night_owl", "Night Owl", "experience", "RSVP to 10 plans starting after 10pm", rarity="uncommon"),
    Badge("early_bird", "Early Bird", "experience", "RSVP to 10 plans starting before 9am", rarity="uncommon"),
    Badge("weekend_warrior", "Weekend Warrior", "experience", "RSVP to 25 plans on Saturday or Sunday",
          rarity="rare"),
    Badge("foodie", "Foodie", "experience", "Check into 25 restaurant spots", rarity="uncommon"),
    Badge("coffee_connoisseur", "Coffee Connoisseur", "experience", "Check into 15 coffee shop spots",
          rarity="uncommon"),
    Badge("bar_hopper", "Bar Hopper", "experience", "Check into 20 bar/nightlife spots", rarity="uncommon"),
    Badge("museum_buff", "Museum Buff", "experience", "Check into 10 museum spots", rarity="rare"),
    Badge("outdoor_explorer", "Outdoor Explorer", "experience", "Check into 15 park/outdoor spots",
          rarity="uncommon"),
    Badge("gym_rat", "Gym Rat", "experience", "Check into 10 gym/fitness spots", rarity="uncommon"),
    Badge("first_layover", "First Layover", "experience", "Complete your first layover check-in"),
    Badge("century_club", "Century Club", "experience", "Check into 100 layovers", 300, rarity="epic"),
    Badge("veteran_traveler", "Veteran Traveler", "experience", "Check into 500 layovers", 1000,
          rarity="legendary"),
    Badge("helpful_reviewer", "Helpful Reviewer", "experience", 'Get 50 "helpful" votes on your reviews', 100,
          rarity="rare"),
)

ALL_BADGES: tuple[Badge, ...] = FOUNDER_BADGES + TRAVEL_BADGES + COMMUNITY_BADGES + EXPERIENCE_BADGES


# --- Rules ---


def _series(prefix: str, metric: Metric, unit: str, thresholds: Iterable[int]) -> dict[str, BadgeRule]:
    return {f"{prefix}_{t}": BadgeRule(metric, t, unit) for t in thresholds}


BADGE_RULES: dict[str, BadgeRule] = {
    **_series("globe_trotter", counter("cities_visited_count"), "cities", (10, 25, 50, 100, 250)),
    "north_america_explorer": BadgeRule(continent("North America"), 10, "North America check-ins"),
    "south_america_explorer": BadgeRule(continent("South America"), 10, "South America check-ins"),
    "europe_explorer": BadgeRule(continent("Europe"), 10, "Europe check-ins"),
    "asia_explorer": BadgeRule(continent("Asia"), 10, "Asia check-ins"),
    "africa_explorer": BadgeRule(continent("Africa"), 10, "Africa check-ins"),
    "oceania_explorer": BadgeRule(continent("Oceania"), 10, "Oceania check-ins"),
    "antarctica_explorer": BadgeRule(continent("Antarctica"), 1, "Antarctica check-ins"),
    "city_expert": BadgeRule(busiest_city, 5, "check-ins in one city"),
    **_series("social_butterfly", counter("connections_count"), "connections", (10, 50, 100)),
    **_series("plan_master", counter("plans_completed_with_attendees"), "plans", (5, 25, 100)),
    **_series("review_guru", counter("reviews_written"), "reviews", (10, 50, 100)),
    **_series("recruiter", counter("successful_referrals"), "referred", (1, 5, 15, 25)),
    **_series("photo_enthusiast", counter("photos_uploaded"), "photos", (10, 50)),
    **_series("streak_master", counter("current_streak"), "days", (7, 30, 100)),
    "night_owl": BadgeRule(counter("night_plans"), 10, "night plans"),
    "early_bird": BadgeRule(counter("morning_plans"), 10, "morning plans"),
    "weekend_warrior": BadgeRule(counter("weekend_plans"), 25, "weekend plans"),
    "foodie": BadgeRule(spot_types("restaurant", "food", "breakfast", "lunch", "dinner"), 25, "restaurants"),
    "coffee_connoisseur": BadgeRule(spot_types("coffee"), 15, "coffee shops"),
    "bar_hopper": BadgeRule(spot_types("bar", "nightlife"), 20, "bars"),
    "museum_buff": BadgeRule(spot_types("museum"), 10, "museums"),
    "outdoor_explorer": BadgeRule(spot_types("park", "outdoor"), 15, "outdoor spots"),
    "gym_rat": BadgeRule(spot_types("gym", "fitness"), 10, "gyms"),
    "first_layover": BadgeRule(counter("total_check_ins"), 1, "check-ins"),
    "century_club": BadgeRule(counter("total_check_ins"), 100, "check-ins"),
    "veteran_traveler": BadgeRule(counter("total_check_ins"), 500, "check-ins"),
    "helpful_reviewer": BadgeRule(counter("review_helpful_count"), 50, "helpful votes"),
}


class BadgeCatalog:
    """Indexed badge definitions plus their award rules."""

    def __init__(
        self,
        badges: Iterable[Badge] = ALL_BADGES,
        rules: dict[str, BadgeRule] | None = None,
    ) -> None:
        self._badges = tuple(badges)
        self._by_id = {badge.id: badge for badge in self._badges}
        self._rules = dict(BADGE_RULES if rules is None else rules)

    def __iter__(self):
        return iter(self._badges)

    def __len__(self) -> int:
        return len(self._badges)

    def get(self, badge_id: str) -> Badge | None:
        return self._by_id.get(badge_id)

    def rule_for(self, badge_id: str) -> BadgeRule | None:
        return self._rules.get(badge_id)

    def automated(self) -> list[Badge]:
        return [badge for badge in self._badges if badge.automated]

    def family(self, family: str) -> list[Badge]:
        """Tier series members, lowest tier first."""
        members = [badge for badge in self._badges if badge.family == family and badge.tier is not None]
        return sorted(members, key=lambda badge: badge.tier or 0)

    def top_tier(self, family: str) -> Badge | None:
        members = self.family(family)
        return members[-1] if members else None
