"""Storage facade wiring for in-memory and Postgres backends."""

from __future__ import annotations

from run_together.application.ports import RaceStorage
from run_together.infrastructure.memory import InMemoryRaceStorage

from .config import StorageBackend, StorageSettings
from .postgres import PostgresRaceStorage

__all__ = [
    "StorageBackend",
    "StorageSettings",
    "InMemoryRaceStorage",
    "PostgresRaceStorage",
    "create_storage",
]


async def create_storage(settings: StorageSettings) -> RaceStorage:
    """Instantiate storage backend based on provided settings."""

    if settings.backend == StorageBackend.MEMORY:
        storage: RaceStorage = InMemoryRaceStorage()
    elif settings.backend == StorageBackend.POSTGRES:
        storage = PostgresRaceStorage(database_url=settings.require_db_url())
    else:  # pragma: no cover - exhaustive enum
        raise ValueError(f"Unsupported storage backend: {settings.backend}")

    await storage.init()
    return storage
