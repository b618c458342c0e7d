"""ORM models for the engagement tables.

Profile records are owned by the user service; the engine only touches the
engagement columns on ``users`` plus its own counter and badge tables.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from crewmate.db.base import Base

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    airline: Mapped[str | None] = mapped_column(String(128), nullable=True)
    base: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_founding_member: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")

    # --- Engagement ---
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    level: Mapped[str] = mapped_column(String(32), nullable=False, server_default="rookie")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_action_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # --- Referrals ---
    referred_by: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    referral_credited: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    reward_claim_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notification_preferences: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)


class UserCounter(Base):
    """One row per (user, counter path), e.g. ``continentCheckIns.Europe``."""

    __tablename__ = "user_counters"
    __table_args__ = (UniqueConstraint("user_id", "name", name="user_counters_user_id_name_key"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")


class UserBadge(Base):
    """Badges earned by users. UNIQUE(user_id, badge_id) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[str] = mapped_column(String(64), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Entities referenced during scoring
# ---------------------------------------------------------------------------


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    host_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attendee_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    host_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Spot(Base):
    __tablename__ = "spots"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    spot_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
