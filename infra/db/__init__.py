"""SQLAlchemy models and session utilities for Postgres storage."""

from .models import Base, RaceParticipantRecord, RaceRecord, RankedProfileRecord, RunnerProfileRecord
from .session import async_session_factory, create_engine

__all__ = [
    "Base",
    "create_engine",
    "async_session_factory",
    "RaceRecord",
    "RaceParticipantRecord",
    "RankedProfileRecord",
    "RunnerProfileRecord",
]
