"""SQLAlchemy-based repository implementations for Postgres."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from run_together.application.ports import AuthoritativeStore, ProfileLookup, RankedProfileStore
from run_together.domain.models import (
    ParticipantRecord,
    RankDivision,
    RankedProfile,
    RankTier,
    RunnerMetadata,
)

from .models import RaceParticipantRecord, RaceRecord, RankedProfileRecord, RunnerProfileRecord


def _ensure_tz(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PostgresParticipantsRepo(AuthoritativeStore):
    """Race participants table backed by Postgres."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_race(
        self,
        race_id: str,
        *,
        start_time: datetime,
        distance_meters: float,
        participants: Sequence[str] = (),
        use_miles: bool = False,
    ) -> None:
        """Insert a race row together with its initial participants."""

        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    RaceRecord(
                        id=race_id,
                        distance_meters=distance_meters,
                        use_miles=use_miles,
                        start_time=_ensure_tz(start_time),
                        participants=[
                            RaceParticipantRecord(user_id=user_id) for user_id in participants
                        ],
                    )
                )

    async def list_participants(self, race_id: str) -> Sequence[ParticipantRecord]:
        stmt = (
            select(RaceParticipantRecord)
            .where(RaceParticipantRecord.race_id == race_id)
            .order_by(RaceParticipantRecord.user_id)
        )
        async with self._session_factory() as session:
            result = await session.scalars(stmt)
            return tuple(_participant_from_record(row) for row in result)

    async def mark_finished(
        self,
        race_id: str,
        user_id: str,
        distance_meters: float,
        pace: Optional[float],
        place: int,
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(RaceParticipantRecord, (race_id, user_id))
                if record is None:
                    record = RaceParticipantRecord(race_id=race_id, user_id=user_id)
                    session.add(record)
                record.distance_meters = distance_meters
                record.average_pace = pace
                record.place = place
                record.disconnected = False
                if record.finish_time is None:
                    record.finish_time = datetime.now(timezone.utc)

    async def mark_disconnected(self, race_id: str, user_id: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(RaceParticipantRecord, (race_id, user_id))
                if record is None:
                    record = RaceParticipantRecord(race_id=race_id, user_id=user_id)
                    session.add(record)
                if record.finish_time is None:
                    record.disconnected = True

    async def get_race_start_time(self, race_id: str) -> datetime:
        async with self._session_factory() as session:
            record = await session.get(RaceRecord, race_id)
            if record is None:
                raise LookupError(f"Race {race_id} not found")
            return _ensure_tz(record.start_time)


class PostgresProfilesRepo(ProfileLookup):
    """Runner display profiles backed by Postgres."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_profile(self, user_id: str) -> RunnerMetadata:
        async with self._session_factory() as session:
            record = await session.get(RunnerProfileRecord, user_id)
            if record is None:
                raise LookupError(f"Runner profile {user_id} not found")
            return RunnerMetadata(
                display_name=record.display_name,
                sprite_url=record.sprite_url,
                country_code=record.country_code,
            )

    async def upsert_profile(self, user_id: str, metadata: RunnerMetadata) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(
                    RunnerProfileRecord(
                        user_id=user_id,
                        display_name=metadata.display_name,
                        sprite_url=metadata.sprite_url,
                        country_code=metadata.country_code,
                    )
                )


class PostgresRankedRepo(RankedProfileStore):
    """Ranked ladder profiles backed by Postgres."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str) -> Optional[RankedProfile]:
        async with self._session_factory() as session:
            record = await session.get(RankedProfileRecord, user_id)
            return _ranked_from_record(record) if record else None

    async def put(self, profile: RankedProfile) -> RankedProfile:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(_ranked_to_record(profile))
        return profile


def _participant_from_record(record: RaceParticipantRecord) -> ParticipantRecord:
    finish_time = _ensure_tz(record.finish_time).isoformat() if record.finish_time else None
    return ParticipantRecord(
        user_id=record.user_id,
        distance_meters=float(record.distance_meters or 0.0),
        finish_time=finish_time,
        average_pace=record.average_pace,
        place=record.place,
        disconnected=bool(record.disconnected),
    )


def _ranked_from_record(record: RankedProfileRecord) -> RankedProfile:
    tier = RankTier.from_label(record.tier)
    division = None
    if tier.has_divisions:
        division = RankDivision(record.division) if record.division else RankDivision.IV
    return RankedProfile(
        user_id=record.user_id,
        tier=tier,
        division=division,
        league_points=record.league_points,
        hidden_rating=record.hidden_mmr,
        top_three_finishes=record.top_three_finishes,
        total_races=record.total_races,
        created_at=_ensure_tz(record.created_at) if record.created_at else None,
        updated_at=_ensure_tz(record.updated_at) if record.updated_at else None,
    )


def _ranked_to_record(profile: RankedProfile) -> RankedProfileRecord:
    now = datetime.now(timezone.utc)
    return RankedProfileRecord(
        user_id=profile.user_id,
        tier=profile.tier.name.lower(),
        division=int(profile.division) if profile.division is not None else None,
        league_points=profile.league_points,
        hidden_mmr=profile.hidden_rating,
        top_three_finishes=profile.top_three_finishes,
        total_races=profile.total_races,
        created_at=profile.created_at or now,
        updated_at=profile.updated_at or now,
    )
