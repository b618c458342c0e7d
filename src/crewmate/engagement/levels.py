"""Level ladder and level-up detection.

Thresholds MUST match the mobile client's LevelProgressCard exactly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class LevelDefinition:
    id: str
    name: str
    min_points: int


@dataclass(frozen=True)
class LevelUp:
    leveled_up: bool
    old_level: LevelDefinition
    new_level: LevelDefinition


DEFAULT_LEVELS: tuple[LevelDefinition, ...] = (
    LevelDefinition("rookie", "Rookie Crew", 0),
    LevelDefinition("junior", "Junior Crew", 100),
    LevelDefinition("seasoned", "Seasoned Crew", 250),
    LevelDefinition("veteran", "Veteran Crew", 500),
    LevelDefinition("elite", "Elite Crew", 1000),
    LevelDefinition("master", "Master Crew", 2500),
    LevelDefinition("legend", "Legend Crew", 5000),
    LevelDefinition("icon", "Icon Crew", 10000),
)


class LevelResolver:
    """Maps point totals onto a strictly increasing level ladder."""

    def __init__(self, levels: Iterable[LevelDefinition] = DEFAULT_LEVELS) -> None:
        ladder = tuple(levels)
        if not ladder:
            msg = "At least one level must be defined"
            raise ValueError(msg)
        for lower, upper in zip(ladder, ladder[1:]):
            if upper.min_points <= lower.min_points:
                msg = f"Level thresholds must be strictly increasing ({lower.id} -> {upper.id})"
                raise ValueError(msg)
        self._levels = ladder
        self._descending = tuple(reversed(ladder))
        self._by_id = {level.id: level for level in ladder}

    @property
    def levels(self) -> Sequence[LevelDefinition]:
        return self._levels

    def resolve_level(self, points: int) -> LevelDefinition:
        """Return the highest level whose threshold is <= points.

        Totals below the first threshold still resolve to the lowest level.
        """
        for level in self._descending:
            if points >= level.min_points:
                return level
        return self._levels[0]

    def check_level_up(self, old_points: int, new_points: int) -> LevelUp | None:
        """Return a LevelUp when the two totals land on different levels."""
        old_level = self.resolve_level(old_points)
        new_level = self.resolve_level(new_points)
        if old_level.id == new_level.id:
            return None
        return LevelUp(leveled_up=True, old_level=old_level, new_level=new_level)

    def next_level(self, level: LevelDefinition) -> LevelDefinition | None:
        index = self._levels.index(level)
        if index == len(self._levels) - 1:
            return None
        return self._levels[index + 1]

    def get_level_by_id(self, level_id: str) -> LevelDefinition | None:
        return self._by_id.get(level_id)

    def points_to_next_level(self, points: int) -> int | None:
        """Points still missing for the next level, or None at the top."""
        upcoming = self.next_level(self.resolve_level(points))
        if upcoming is None:
            return None
        return upcoming.min_points - points

    def progress_to_next_level(self, points: int) -> float:
        """Percentage (0-100) of the way through the current level."""
        current = self.resolve_level(points)
        upcoming = self.next_level(current)
        if upcoming is None:
            return 100.0
        span = upcoming.min_points - current.min_points
        into = points - current.min_points
        return min(100.0, max(0.0, into / span * 100))
