"""Repository contracts for authoritative race data and profiles."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from run_together.domain.models import ParticipantRecord, RankedProfile, RunnerMetadata


class AuthoritativeStore(Protocol):
    """Race participants table, the higher-trust source for finishes."""

    async def list_participants(self, race_id: str) -> Sequence[ParticipantRecord]:
        """Return every participant row of the race."""

    async def mark_finished(
        self,
        race_id: str,
        user_id: str,
        distance_meters: float,
        pace: Optional[float],
        place: int,
    ) -> None:
        """Record the local runner's finish."""

    async def mark_disconnected(self, race_id: str, user_id: str) -> None:
        """Record that a runner left before finishing."""

    async def get_race_start_time(self, race_id: str) -> datetime:
        """Return the scheduled start timestamp of the race."""


class ProfileLookup(Protocol):
    """Best-effort resolution of cosmetic runner metadata."""

    async def get_profile(self, user_id: str) -> RunnerMetadata:
        """Fetch display metadata; raises when the profile cannot be loaded."""


class RankedProfileStore(Protocol):
    """Persists ladder standings."""

    async def get(self, user_id: str) -> Optional[RankedProfile]:
        """Fetch the ranked profile or ``None`` for a first ranked race."""

    async def put(self, profile: RankedProfile) -> RankedProfile:
        """Persist the next ladder standing."""
