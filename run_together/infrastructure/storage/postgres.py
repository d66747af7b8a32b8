"""Postgres backed implementation of the race storage facade."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infra.db import Base, async_session_factory, create_engine
from infra.db.repositories import PostgresParticipantsRepo, PostgresProfilesRepo, PostgresRankedRepo
from run_together.application.ports import (
    AuthoritativeStore,
    ProfileLookup,
    RaceStorage,
    RankedProfileStore,
)


class PostgresRaceStorage(RaceStorage):
    """Storage facade powered by Postgres and SQLAlchemy."""

    def __init__(self, *, database_url: str, create_schema: bool = False) -> None:
        self._database_url = database_url
        self._create_schema = create_schema
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._participants_repo: PostgresParticipantsRepo | None = None
        self._profiles_repo: PostgresProfilesRepo | None = None
        self._ranked_repo: PostgresRankedRepo | None = None

    async def init(self) -> None:
        self._engine = create_engine(self._database_url)
        if self._create_schema:
            async with self._engine.begin() as connection:
                await connection.run_sync(Base.metadata.create_all)
        self._session_factory = async_session_factory(self._engine)
        self._participants_repo = PostgresParticipantsRepo(self._session_factory)
        self._profiles_repo = PostgresProfilesRepo(self._session_factory)
        self._ranked_repo = PostgresRankedRepo(self._session_factory)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
        self._participants_repo = None
        self._profiles_repo = None
        self._ranked_repo = None

    @property
    def participants(self) -> AuthoritativeStore:
        if self._participants_repo is None:
            raise RuntimeError("Storage not initialised")
        return self._participants_repo

    @property
    def profiles(self) -> ProfileLookup:
        if self._profiles_repo is None:
            raise RuntimeError("Storage not initialised")
        return self._profiles_repo

    @property
    def ranked(self) -> RankedProfileStore:
        if self._ranked_repo is None:
            raise RuntimeError("Storage not initialised")
        return self._ranked_repo

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Storage not initialised")
        return self._session_factory
