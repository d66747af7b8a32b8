"""Storage abstraction grouping the race engine's repositories."""

from __future__ import annotations

from typing import Protocol

from .repositories import AuthoritativeStore, ProfileLookup, RankedProfileStore


class RaceStorage(Protocol):
    """Provides access to persistence backends grouped under a single facade."""

    @property
    def participants(self) -> AuthoritativeStore:
        """Return the authoritative race participants store."""

    @property
    def profiles(self) -> ProfileLookup:
        """Return the runner display-profile lookup."""

    @property
    def ranked(self) -> RankedProfileStore:
        """Return the ranked ladder profile store."""

    async def init(self) -> None:
        """Initialise underlying connections or schemas if needed."""

    async def close(self) -> None:
        """Release any allocated resources (connections, pools, caches)."""
