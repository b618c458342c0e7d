"""Badge evaluation against a stats snapshot.

Evaluation is stateless: stats in, newly earned badges out. It is safe to
re-run on every stats update.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from crewmate.engagement.badge_catalog import Badge, BadgeCatalog
from crewmate.engagement.policy import LookupKind, default_for
from crewmate.engagement.snapshots import UserStatsSnapshot

_FIRST_NUMBER = re.compile(r"\d+")


def is_earned(badge: Badge, stats: UserStatsSnapshot, catalog: BadgeCatalog) -> bool:
    """Manual badges and badges without a rule are never earned here."""
    if not badge.automated:
        return False
    rule = catalog.rule_for(badge.id)
    if rule is None:
        return default_for(LookupKind.BADGE)
    return rule.metric(stats) >= rule.threshold


def check_new_badges(
    stats: UserStatsSnapshot,
    already_earned: Iterable[str],
    catalog: BadgeCatalog,
    family: str | None = None,
) -> list[Badge]:
    """Return automated badges earned by ``stats`` that are not yet in ``already_earned``.

    ``family`` narrows the check to one tier series (e.g. ``recruiter``).
    """
    earned = set(already_earned)
    candidates = catalog.automated()
    if family is not None:
        candidates = [badge for badge in candidates if badge.family == family]
    return [
        badge for badge in candidates
        if badge.id not in earned and is_earned(badge, stats, catalog)
    ]


def requirement_threshold(badge: Badge) -> int | None:
    """First number in the requirement text ("Check into 25 different cities" -> 25)."""
    match = _FIRST_NUMBER.search(badge.requirement)
    if match is None:
        return None
    return int(match.group())


def get_badge_progress(badge: Badge, stats: UserStatsSnapshot, catalog: BadgeCatalog) -> str:
    """Human readable progress such as ``7/10 cities``.

    Badges without a rule fall back to their requirement text.
    """
    rule = catalog.rule_for(badge.id)
    if rule is None:
        return badge.requirement
    current = min(rule.metric(stats), rule.threshold)
    return f"{current}/{rule.threshold} {rule.unit}"


def get_badge_completion_percent(badge: Badge, stats: UserStatsSnapshot, catalog: BadgeCatalog) -> int:
    """Completion in [0, 100]; 0 when no threshold can be parsed from the requirement."""
    threshold = requirement_threshold(badge)
    rule = catalog.rule_for(badge.id)
    if not threshold or rule is None:
        return 0
    value = rule.metric(stats)
    return max(0, min(100, round(value / threshold * 100)))
