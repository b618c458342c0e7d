"""Stats store interface and its PostgreSQL adapter.

Additive fields (points, counters) only ever change through atomic
increments. Everything else goes through a per-row atomic primitive:
insert-if-absent for badges, test-and-set for one-time flags, and
compare-and-set for multi-field transitions such as the streak.
``apply_guarded`` commits one of those guards together with the increments
it protects, so a failure leaves neither behind.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import Boolean, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crewmate.db.models import Plan, Spot, User, UserBadge, UserCounter
from crewmate.engagement.snapshots import UserSnapshot, UserStatsSnapshot
from crewmate.exceptions import NotFoundError, StoreUnavailableError

logger = structlog.get_logger()


@dataclass(frozen=True)
class SetOnce:
    """Test-and-set of one unset (null or false) field."""

    collection: str
    entity_id: str
    field: str
    value: Any


@dataclass(frozen=True)
class CompareAndSet:
    """Write ``updates`` on a user row only while every ``expected`` field still matches."""

    user_id: str
    updates: Mapping[str, Any]
    expected: Mapping[str, Any] | None = None


Guard = SetOnce | CompareAndSet


class StatsStore(ABC):
    """Persistence operations the engine consumes.

    Every method may raise ``StoreUnavailableError``; lookups of a missing
    record raise ``NotFoundError``.
    """

    @abstractmethod
    async def get_user_snapshot(self, user_id: str) -> UserSnapshot:
        """Read one user with all counters and earned badges."""

    @abstractmethod
    async def get_entity(self, collection: str, entity_id: str) -> dict[str, Any]:
        """Read a plan or spot record as a plain dict."""

    @abstractmethod
    async def list_referred_users(self, referrer_id: str) -> list[UserSnapshot]:
        """Users whose ``referred_by`` is ``referrer_id`` (profile and referral fields)."""

    @abstractmethod
    async def apply_points_delta(self, user_id: str, delta: int) -> int:
        """Atomically add ``delta`` (>= 0) to the user's points; return the new total."""

    @abstractmethod
    async def apply_counter_deltas(self, user_id: str, deltas: Mapping[str, int]) -> None:
        """Atomically add each delta (>= 0) to the named counter, creating it at 0."""

    @abstractmethod
    async def set_counter(self, user_id: str, name: str, value: int) -> None:
        """Overwrite one counter. Reconciliation only, never the steady-state path."""

    @abstractmethod
    async def apply_field_updates(
        self,
        user_id: str,
        updates: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        """Write ``updates`` in one transaction if every ``expected`` field still matches.

        Returns False when a concurrent writer changed an expected field.
        """

    @abstractmethod
    async def add_badges(self, user_id: str, badge_ids: Iterable[str]) -> list[str]:
        """Insert badges that are not yet earned; return only the newly inserted ids."""

    @abstractmethod
    async def set_once(self, collection: str, entity_id: str, field: str, value: Any) -> bool:
        """Set an unset (null or false) field. True only for the caller that flipped it."""

    @abstractmethod
    async def apply_guarded(
        self,
        guard: Guard,
        user_id: str,
        points: int = 0,
        counters: Mapping[str, int] | None = None,
    ) -> int | None:
        """Flip ``guard`` and add ``points`` and ``counters`` to ``user_id`` in one transaction.

        Returns the user's new point total, or None when the guard was already
        taken and nothing was written. A missing user or guarded record raises
        ``NotFoundError`` and leaves the guard unset.
        """


def _check_delta(delta: int) -> None:
    if delta < 0:
        msg = f"Deltas must be non-negative, got {delta}"
        raise ValueError(msg)


_ENTITIES: dict[str, type[User] | type[Plan] | type[Spot]] = {
    "users": User,
    "plans": Plan,
    "spots": Spot,
}

_USER_FIELDS = frozenset(column.key for column in User.__table__.columns) - {"id"}


def _model_for(collection: str) -> type[User] | type[Plan] | type[Spot]:
    try:
        return _ENTITIES[collection]
    except KeyError:
        msg = f"Unknown collection: {collection}"
        raise ValueError(msg) from None


def _check_user_fields(fields: Iterable[str]) -> None:
    unknown = set(fields) - _USER_FIELDS
    if unknown:
        msg = f"Unknown user fields: {sorted(unknown)}"
        raise ValueError(msg)


def _user_snapshot(user: User, counters: Mapping[str, int] | None = None, badges: Iterable[str] = ()) -> UserSnapshot:
    stats = UserStatsSnapshot.from_counter_rows(
        dict(counters or {}),
        points=user.points,
        level=user.level,
        currentStreak=user.current_streak,
        longestStreak=user.longest_streak,
    )
    return UserSnapshot(
        user_id=user.id,
        display_name=user.display_name,
        photo_url=user.photo_url,
        airline=user.airline,
        base=user.base,
        created_at=user.created_at,
        is_founding_member=user.is_founding_member,
        badges=list(badges),
        referred_by=user.referred_by,
        referral_credited=user.referral_credited,
        reward_claim_requested_at=user.reward_claim_requested_at,
        streak={
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
            "last_action_date": user.last_action_date,
        },
        notification_preferences=user.notification_preferences,
        stats=stats,
    )


class SqlStatsStore(StatsStore):
    """StatsStore backed by PostgreSQL via SQLAlchemy async + asyncpg."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.warning("stats_store_unavailable", error=str(exc))
            msg = "Stats store unavailable"
            raise StoreUnavailableError(msg) from exc

    async def _require_user(self, session: AsyncSession, user_id: str) -> None:
        found = await session.scalar(select(User.id).where(User.id == user_id))
        if found is None:
            raise NotFoundError("users", user_id)

    async def get_user_snapshot(self, user_id: str) -> UserSnapshot:
        async with self._transaction() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("users", user_id)
            counter_rows = await session.execute(
                select(UserCounter.name, UserCounter.value).where(UserCounter.user_id == user_id)
            )
            badge_rows = await session.scalars(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
            counters = {name: value for name, value in counter_rows}
            return _user_snapshot(user, counters, badge_rows.all())

    async def get_entity(self, collection: str, entity_id: str) -> dict[str, Any]:
        model = _model_for(collection)
        async with self._transaction() as session:
            row = await session.get(model, entity_id)
            if row is None:
                raise NotFoundError(collection, entity_id)
            return {column.key: getattr(row, column.key) for column in model.__table__.columns}

    async def list_referred_users(self, referrer_id: str) -> list[UserSnapshot]:
        async with self._transaction() as session:
            users = await session.scalars(
                select(User).where(User.referred_by == referrer_id).order_by(User.created_at)
            )
            return [_user_snapshot(user) for user in users]

    async def apply_points_delta(self, user_id: str, delta: int) -> int:
        _check_delta(delta)
        async with self._transaction() as session:
            total = await session.scalar(
                update(User)
                .where(User.id == user_id)
                .values(points=User.points + delta)
                .returning(User.points)
            )
            if total is None:
                raise NotFoundError("users", user_id)
            return int(total)

    async def _add_counters(self, session: AsyncSession, user_id: str, deltas: Mapping[str, int]) -> None:
        for name, delta in sorted(deltas.items()):
            stmt = pg_insert(UserCounter).values(user_id=user_id, name=name, value=delta)
            stmt = stmt.on_conflict_do_update(
                constraint="user_counters_user_id_name_key",
                set_={"value": UserCounter.value + stmt.excluded.value},
            )
            await session.execute(stmt)

    async def apply_counter_deltas(self, user_id: str, deltas: Mapping[str, int]) -> None:
        for delta in deltas.values():
            _check_delta(delta)
        if not deltas:
            return
        async with self._transaction() as session:
            await self._require_user(session, user_id)
            await self._add_counters(session, user_id, deltas)

    async def set_counter(self, user_id: str, name: str, value: int) -> None:
        value = max(0, value)
        async with self._transaction() as session:
            await self._require_user(session, user_id)
            stmt = pg_insert(UserCounter).values(user_id=user_id, name=name, value=value)
            stmt = stmt.on_conflict_do_update(
                constraint="user_counters_user_id_name_key",
                set_={"value": stmt.excluded.value},
            )
            await session.execute(stmt)

    async def _compare_and_set(self, session: AsyncSession, guard: CompareAndSet) -> bool:
        _check_user_fields(guard.updates)
        _check_user_fields(guard.expected or {})
        conditions = [User.id == guard.user_id]
        for name, value in (guard.expected or {}).items():
            column = getattr(User, name)
            conditions.append(column.is_(None) if value is None else column == value)

        updated = await session.scalar(
            update(User).where(*conditions).values(**guard.updates).returning(User.id)
        )
        if updated is None:
            await self._require_user(session, guard.user_id)
            return False
        return True

    async def _set_once(self, session: AsyncSession, guard: SetOnce) -> bool:
        model = _model_for(guard.collection)
        column = getattr(model, guard.field)
        unset = column.is_not(True) if isinstance(column.type, Boolean) else column.is_(None)
        flipped = await session.scalar(
            update(model)
            .where(model.id == guard.entity_id, unset)
            .values({guard.field: guard.value})
            .returning(model.id)
        )
        if flipped is None:
            exists = await session.scalar(select(model.id).where(model.id == guard.entity_id))
            if exists is None:
                raise NotFoundError(guard.collection, guard.entity_id)
            return False
        return True

    async def apply_field_updates(
        self,
        user_id: str,
        updates: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        async with self._transaction() as session:
            return await self._compare_and_set(session, CompareAndSet(user_id, updates, expected))

    async def add_badges(self, user_id: str, badge_ids: Iterable[str]) -> list[str]:
        requested = list(dict.fromkeys(badge_ids))
        if not requested:
            return []
        now = datetime.now(timezone.utc)
        async with self._transaction() as session:
            await self._require_user(session, user_id)
            stmt = (
                pg_insert(UserBadge)
                .values([{"user_id": user_id, "badge_id": badge_id, "earned_at": now} for badge_id in requested])
                .on_conflict_do_nothing(constraint="user_badges_user_id_badge_id_key")
                .returning(UserBadge.badge_id)
            )
            inserted = set((await session.scalars(stmt)).all())
        return [badge_id for badge_id in requested if badge_id in inserted]

    async def set_once(self, collection: str, entity_id: str, field: str, value: Any) -> bool:
        async with self._transaction() as session:
            return await self._set_once(session, SetOnce(collection, entity_id, field, value))

    async def apply_guarded(
        self,
        guard: Guard,
        user_id: str,
        points: int = 0,
        counters: Mapping[str, int] | None = None,
    ) -> int | None:
        _check_delta(points)
        counters = counters or {}
        for delta in counters.values():
            _check_delta(delta)

        # Raising inside the transaction rolls the guard back
        async with self._transaction() as session:
            if isinstance(guard, SetOnce):
                flipped = await self._set_once(session, guard)
            else:
                flipped = await self._compare_and_set(session, guard)
            if not flipped:
                return None
            total = await session.scalar(
                update(User)
                .where(User.id == user_id)
                .values(points=User.points + points)
                .returning(User.points)
            )
            if total is None:
                raise NotFoundError("users", user_id)
            await self._add_counters(session, user_id, counters)
            return int(total)
