"""Declarative models for race engine persistence."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class RaceRecord(Base):
    """Scheduled race with its target distance and start time."""

    __tablename__ = "races"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    distance_meters: Mapped[float] = mapped_column(Float, nullable=False)
    use_miles: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    mode: Mapped[str] = mapped_column(String(16), default="race", nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    participants: Mapped[list["RaceParticipantRecord"]] = relationship(
        back_populates="race", cascade="all, delete-orphan"
    )


class RaceParticipantRecord(Base):
    """Authoritative participation row; finish data is written once."""

    __tablename__ = "race_participants"

    race_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("races.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    distance_meters: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    finish_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    average_pace: Mapped[float | None] = mapped_column(Float, nullable=True)
    place: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disconnected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    race: Mapped[RaceRecord] = relationship(back_populates="participants")


class RunnerProfileRecord(Base):
    """Cosmetic runner metadata shown on leaderboards."""

    __tablename__ = "runner_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sprite_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(8), nullable=True)


class RankedProfileRecord(Base):
    """Ladder standing of one runner."""

    __tablename__ = "ranked_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    division: Mapped[int | None] = mapped_column(Integer, nullable=True)
    league_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hidden_mmr: Mapped[int | None] = mapped_column(Integer, nullable=True)
    top_three_finishes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_races: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
