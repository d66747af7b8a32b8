"""In-process adapters for development, the simulator and tests.

``InMemoryRaceStore`` implements every repository port on plain dicts and
``InMemoryBroadcastHub`` fans published events out to the subscriptions of
every other client channel of the same race through ``asyncio.Queue``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from run_together.application.ports import (
    AuthoritativeStore,
    BroadcastChannel,
    BroadcastSubscription,
    ProfileLookup,
    RaceStorage,
    RankedProfileStore,
)
from run_together.domain.models import ParticipantRecord, RankedProfile, RunnerMetadata
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class _Race:
    start_time: datetime
    distance_meters: float
    participants: dict[str, ParticipantRecord]


class InMemoryRaceStore(AuthoritativeStore, ProfileLookup, RankedProfileStore):
    """Dictionary-backed races, participants, profiles and ladder standings."""

    def __init__(self) -> None:
        self._races: dict[str, _Race] = {}
        self._profiles: dict[str, RunnerMetadata] = {}
        self._ranked: dict[str, RankedProfile] = {}
        self._lock = asyncio.Lock()

    # --- seeding helpers ------------------------------------------------

    def add_race(
        self,
        race_id: str,
        *,
        start_time: datetime,
        distance_meters: float,
        participants: Sequence[str] = (),
    ) -> None:
        self._races[race_id] = _Race(
            start_time=start_time,
            distance_meters=distance_meters,
            participants={user_id: ParticipantRecord(user_id=user_id) for user_id in participants},
        )

    def set_profile(self, user_id: str, metadata: RunnerMetadata) -> None:
        self._profiles[user_id] = metadata

    def update_participant(self, race_id: str, record: ParticipantRecord) -> None:
        self._race(race_id).participants[record.user_id] = record

    # --- AuthoritativeStore ---------------------------------------------

    async def list_participants(self, race_id: str) -> Sequence[ParticipantRecord]:
        async with self._lock:
            return tuple(self._race(race_id).participants.values())

    async def mark_finished(
        self,
        race_id: str,
        user_id: str,
        distance_meters: float,
        pace: Optional[float],
        place: int,
    ) -> None:
        async with self._lock:
            race = self._race(race_id)
            current = race.participants.get(user_id) or ParticipantRecord(user_id=user_id)
            race.participants[user_id] = replace(
                current,
                distance_meters=distance_meters,
                finish_time=current.finish_time or datetime.now(timezone.utc).isoformat(),
                average_pace=pace,
                place=place,
                disconnected=False,
            )
        logger.info("Participant finished", extra={"race_id": race_id, "user_id": user_id})

    async def mark_disconnected(self, race_id: str, user_id: str) -> None:
        async with self._lock:
            race = self._race(race_id)
            current = race.participants.get(user_id) or ParticipantRecord(user_id=user_id)
            if current.finish_time is None:
                race.participants[user_id] = replace(current, disconnected=True)

    async def get_race_start_time(self, race_id: str) -> datetime:
        return self._race(race_id).start_time

    # --- ProfileLookup --------------------------------------------------

    async def get_profile(self, user_id: str) -> RunnerMetadata:
        try:
            return self._profiles[user_id]
        except KeyError:
            raise LookupError(f"Runner profile {user_id} not found") from None

    # --- RankedProfileStore ---------------------------------------------

    async def get(self, user_id: str) -> Optional[RankedProfile]:
        return self._ranked.get(user_id)

    async def put(self, profile: RankedProfile) -> RankedProfile:
        async with self._lock:
            self._ranked[profile.user_id] = profile
        return profile

    def _race(self, race_id: str) -> _Race:
        try:
            return self._races[race_id]
        except KeyError:
            raise LookupError(f"Race {race_id} not found") from None


class InMemoryRaceStorage(RaceStorage):
    """Storage facade exposing one :class:`InMemoryRaceStore` for every port."""

    def __init__(self, store: InMemoryRaceStore | None = None) -> None:
        self.store = store or InMemoryRaceStore()

    @property
    def participants(self) -> AuthoritativeStore:
        return self.store

    @property
    def profiles(self) -> ProfileLookup:
        return self.store

    @property
    def ranked(self) -> RankedProfileStore:
        return self.store

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        return None


_CLOSED = object()


class InMemoryBroadcastSubscription(BroadcastSubscription):
    """Queue-backed stream of payloads for one event name."""

    def __init__(self, event_name: str, owner: "InMemoryBroadcastChannel") -> None:
        self.event_name = event_name
        self._owner = owner
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: Mapping[str, Any]) -> None:
        if not self._closed:
            self._queue.put_nowait(dict(event))

    async def __aiter__(self) -> AsyncIterator[Mapping[str, Any]]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._owner.discard(self)
        self._queue.put_nowait(_CLOSED)


class InMemoryBroadcastChannel(BroadcastChannel):
    """One client's handle on a race channel of the hub."""

    def __init__(self, hub: "InMemoryBroadcastHub", race_id: str) -> None:
        self.race_id = race_id
        self._hub = hub
        self._subscriptions: set[InMemoryBroadcastSubscription] = set()

    @property
    def subscriptions(self) -> frozenset[InMemoryBroadcastSubscription]:
        return frozenset(self._subscriptions)

    async def publish(self, event: Mapping[str, Any]) -> None:
        self._hub.fan_out(self, event)

    async def subscribe(self, event_name: str) -> BroadcastSubscription:
        subscription = InMemoryBroadcastSubscription(event_name, self)
        self._subscriptions.add(subscription)
        return subscription

    def discard(self, subscription: InMemoryBroadcastSubscription) -> None:
        self._subscriptions.discard(subscription)


class InMemoryBroadcastHub:
    """Per-race fan-out that never echoes an event back to its sender."""

    def __init__(self) -> None:
        self._channels: dict[str, list[InMemoryBroadcastChannel]] = {}
        self.published = 0

    def channel(self, race_id: str) -> InMemoryBroadcastChannel:
        channel = InMemoryBroadcastChannel(self, race_id)
        self._channels.setdefault(race_id, []).append(channel)
        return channel

    def fan_out(self, sender: InMemoryBroadcastChannel, event: Mapping[str, Any]) -> None:
        self.published += 1
        event_name = event.get("event")
        for channel in self._channels.get(sender.race_id, ()):
            if channel is sender:
                continue
            for subscription in channel.subscriptions:
                if event_name is None or subscription.event_name == event_name:
                    subscription.deliver(event)
