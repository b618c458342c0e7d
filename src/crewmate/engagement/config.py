"""Engine configuration assembled once from settings and passed explicitly."""

from __future__ import annotations

from dataclasses import dataclass, field

from crewmate.config import Settings
from crewmate.engagement.badge_catalog import BadgeCatalog
from crewmate.engagement.levels import LevelResolver
from crewmate.engagement.scoring import ScoringRules

REFERRAL_BADGE_FAMILY = "recruiter"


@dataclass(frozen=True)
class EngagementConfig:
    rules: ScoringRules = field(default_factory=ScoringRules)
    levels: LevelResolver = field(default_factory=LevelResolver)
    catalog: BadgeCatalog = field(default_factory=BadgeCatalog)
    home_continent: str = "North America"
    new_user_window_days: int = 30
    max_cas_attempts: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> EngagementConfig:
        return cls(
            rules=ScoringRules.from_settings(settings),
            home_continent=settings.home_continent,
            new_user_window_days=settings.new_user_window_days,
            max_cas_attempts=settings.streak_max_cas_attempts,
        )

    @property
    def top_referral_badge_id(self) -> str | None:
        top = self.catalog.top_tier(REFERRAL_BADGE_FAMILY)
        return top.id if top else None
