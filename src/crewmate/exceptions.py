"""Engagement engine error taxonomy.

Only conditions a caller has to react to are exceptions. Idempotency guards
(an already-completed plan, an already-credited referral) and rejected
referral attributions are reported through result objects instead.
"""

from __future__ import annotations


class EngagementError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EngagementError):
    """A user, plan, spot or referrer record does not exist."""

    def __init__(self, collection: str, entity_id: str) -> None:
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f"{collection}/{entity_id} not found")


class StoreUnavailableError(EngagementError):
    """The stats store could not be reached. Never retried internally."""


class ConcurrentUpdateError(EngagementError):
    """A compare-and-set update kept losing to concurrent writers."""

    def __init__(self, user_id: str, field: str, attempts: int) -> None:
        self.user_id = user_id
        self.field = field
        self.attempts = attempts
        super().__init__(f"Could not update {field} for {user_id} after {attempts} attempts")
