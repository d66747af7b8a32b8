"""Remote participant bookkeeping shared by the reconciler and the aggregator.

The table owns the ``user_id -> ParticipantSample`` map for one race. All
mutation happens on the owning event loop; readers only ever receive
immutable :class:`RunnerView` tuples built from it.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Mapping, Optional

from run_together.application.ports import ProfileLookup
from run_together.domain.errors import LookupFailure, MalformedSampleError, TimestampParseError
from run_together.domain.models import (
    DistanceUnit,
    ParticipantRecord,
    ParticipantSample,
    RaceEvent,
    RaceEventKind,
    RemoteRunner,
    RunnerMetadata,
    RunnerView,
)
from run_together.domain.pace import (
    average_pace_minutes,
    format_pace_minutes,
    pace_from_speed,
    speed_from_pace,
)
from run_together.domain.parsing import finish_elapsed_seconds
from run_together.domain.staleness import StalenessPolicy
from utils.logger import get_logger

logger = get_logger(__name__)

EventListener = Callable[[RaceEvent], None]


@dataclass
class ReconcilerStats:
    """Counters for accepted and ignorable ingestion events."""

    samples_accepted: int = 0
    samples_ignored: int = 0
    malformed_samples: int = 0
    lookup_failures: int = 0
    evictions: int = 0
    timestamp_errors: int = 0
    remote_finishes: int = 0


def _validated_number(value: Optional[float], field: str, *, required: bool) -> Optional[float]:
    if value is None:
        if required:
            raise MalformedSampleError(f"Missing '{field}'")
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedSampleError(f"Field '{field}' is not numeric: {value!r}") from exc
    if not math.isfinite(number) or number < 0:
        raise MalformedSampleError(f"Field '{field}' is out of range: {value!r}")
    return number


def sample_view(sample: ParticipantSample) -> RunnerView:
    """Project an active remote sample into a leaderboard row."""

    pace_minutes = sample.pace_minutes_per_unit
    return RunnerView(
        identity=RemoteRunner(sample.user_id),
        display_name=sample.display_name,
        distance_meters=sample.distance_meters,
        pace=format_pace_minutes(pace_minutes),
        pace_seconds=pace_minutes * 60 if pace_minutes else None,
        speed_mps=sample.speed_mps,
        sprite_url=sample.sprite_url,
        country_code=sample.country_code,
    )


class ParticipantTable:
    """Authoritative-enough local view of the remote runners of one race."""

    def __init__(
        self,
        *,
        race_id: str,
        local_user_id: str,
        target_distance_meters: float,
        unit: DistanceUnit,
        staleness: StalenessPolicy,
        stats: ReconcilerStats,
        profile_lookup: ProfileLookup | None = None,
        started_at: float | None = None,
        on_event: EventListener | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.race_id = race_id
        self.local_user_id = local_user_id
        self.target_distance_meters = target_distance_meters
        self.unit = unit
        self.staleness = staleness
        self.stats = stats
        self.started_at = started_at
        self._profile_lookup = profile_lookup
        self._on_event = on_event
        self._on_change = on_change
        self._active: dict[str, ParticipantSample] = {}
        self._finished: dict[str, RunnerView] = {}
        self._departed: set[str] = set()
        self._metadata: dict[str, RunnerMetadata] = {}
        self._lookups: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    # --- read side ------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active(self) -> Mapping[str, ParticipantSample]:
        return dict(self._active)

    @property
    def finished(self) -> Mapping[str, RunnerView]:
        return dict(self._finished)

    @property
    def departed(self) -> frozenset[str]:
        return frozenset(self._departed)

    @property
    def metadata(self) -> Mapping[str, RunnerMetadata]:
        return dict(self._metadata)

    def is_finished(self, user_id: str) -> bool:
        return user_id in self._finished

    def views(self, now: float | None) -> list[RunnerView]:
        """Return finished rows plus active rows that are not stale at ``now``."""

        rows = list(self._finished.values())
        for sample in self._active.values():
            if now is not None and self.staleness.is_stale(sample, now):
                continue
            rows.append(sample_view(sample))
        return rows

    # --- seeding --------------------------------------------------------

    def seed(
        self,
        *,
        finished: Iterable[RunnerView] = (),
        active: Iterable[ParticipantSample] = (),
        departed: Iterable[str] = (),
        metadata: Mapping[str, RunnerMetadata] | None = None,
    ) -> None:
        """Load state carried over from another table, verbatim."""

        for row in finished:
            self._finished[row.user_id] = row
        for sample in active:
            if sample.user_id not in self._finished:
                self._active[sample.user_id] = sample
        self._departed.update(departed)
        self._metadata.update(metadata or {})
        for user_id in {*self._finished, *self._active}:
            if user_id not in self._metadata:
                self._schedule_lookup(user_id)

    # --- realtime samples -----------------------------------------------

    def upsert(
        self,
        user_id: str,
        distance_meters: float,
        pace_minutes_per_unit: Optional[float],
        speed_mps: Optional[float],
        metadata: RunnerMetadata | None,
        arrival_time: float,
    ) -> bool:
        """Store the sample; last arrival wins unless the runner finished.

        Raises:
            MalformedSampleError: When a numeric field is missing or invalid.
        """

        if self._closed or user_id == self.local_user_id:
            self.stats.samples_ignored += 1
            return False
        if user_id in self._finished or user_id in self._departed:
            self.stats.samples_ignored += 1
            return False

        distance = _validated_number(distance_meters, "distance", required=True)
        pace = _validated_number(pace_minutes_per_unit, "pace", required=False) or None
        speed = _validated_number(speed_mps, "speed", required=False)

        previous = self._active.get(user_id)
        if previous is not None and arrival_time < previous.last_update_at:
            self.stats.samples_ignored += 1
            return False

        if speed is None:
            speed = speed_from_pace(pace, self.unit)
        if pace is None:
            pace = pace_from_speed(speed, self.unit)

        if metadata is not None:
            self._metadata[user_id] = metadata
        known = self._metadata.get(user_id)

        sample = ParticipantSample(
            user_id=user_id,
            display_name=known.display_name if known else user_id,
            distance_meters=distance,
            last_update_at=arrival_time,
            pace_minutes_per_unit=pace,
            speed_mps=speed,
            sprite_url=known.sprite_url if known else None,
            country_code=known.country_code if known else None,
            metadata_resolved=known is not None,
        )
        self._active[user_id] = sample
        self.stats.samples_accepted += 1

        if known is None:
            self._schedule_lookup(user_id)

        if distance >= self.target_distance_meters:
            elapsed = self._elapsed(arrival_time)
            self._record_finish(
                user_id,
                finish_time=elapsed,
                distance_meters=self.target_distance_meters,
                average_pace=average_pace_minutes(
                    self.target_distance_meters, elapsed, self.unit
                ),
                at=arrival_time,
            )
        return True

    # --- authoritative snapshot -----------------------------------------

    def apply_snapshot(self, records: Iterable[ParticipantRecord], now: float) -> None:
        """Merge a poll of the participants table into the local view."""

        if self._closed:
            return

        for record in records:
            user_id = record.user_id
            if user_id == self.local_user_id or user_id in self._finished:
                continue

            if record.finish_time is not None:
                try:
                    elapsed = finish_elapsed_seconds(record.finish_time, self._start_reference(now))
                except TimestampParseError as exc:
                    self.stats.timestamp_errors += 1
                    logger.warning(
                        "Finish time not parsed, keeping runner active: %s",
                        exc,
                        extra={"race_id": self.race_id, "user_id": user_id},
                    )
                else:
                    self._record_finish(
                        user_id,
                        finish_time=elapsed,
                        distance_meters=record.distance_meters,
                        average_pace=record.average_pace,
                        at=now,
                    )
                    continue

            if record.disconnected:
                self._depart(user_id)
                continue

            if user_id in self._departed:
                continue

            distance = max(record.distance_meters or 0.0, 0.0)
            previous = self._active.get(user_id)
            if previous is None:
                self._admit_from_record(user_id, distance, now)
            elif distance >= previous.distance_meters or self.staleness.is_stale(previous, now):
                # A fresher realtime sample ahead of the table is never rewound.
                self._active[user_id] = replace(
                    previous,
                    distance_meters=max(distance, previous.distance_meters),
                    last_update_at=max(now, previous.last_update_at),
                )

    def _admit_from_record(self, user_id: str, distance: float, now: float) -> None:
        known = self._metadata.get(user_id)
        self._active[user_id] = ParticipantSample(
            user_id=user_id,
            display_name=known.display_name if known else user_id,
            distance_meters=distance,
            last_update_at=now,
            pace_minutes_per_unit=None,
            speed_mps=0.0,
            sprite_url=known.sprite_url if known else None,
            country_code=known.country_code if known else None,
            metadata_resolved=known is not None,
        )
        if known is None:
            self._schedule_lookup(user_id)

    # --- staleness ------------------------------------------------------

    def evict_stale(self, now: float) -> list[str]:
        """Drop active runners whose last sample is older than the window."""

        if self._closed:
            return []
        evicted: list[str] = []
        for user_id, sample in list(self._active.items()):
            if self.staleness.is_stale(sample, now):
                del self._active[user_id]
                evicted.append(user_id)
        if evicted:
            self.stats.evictions += len(evicted)
            logger.info(
                "Evicted %s stale runner(s)",
                len(evicted),
                extra={"race_id": self.race_id},
            )
        return evicted

    def close(self) -> None:
        """Stop accepting mutations and cancel pending metadata lookups."""

        self._closed = True
        for task in list(self._lookups.values()):
            task.cancel()
        self._lookups.clear()

    async def drain_lookups(self) -> None:
        """Wait for in-flight metadata lookups to settle."""

        while self._lookups:
            await asyncio.gather(*list(self._lookups.values()), return_exceptions=True)

    # --- internals ------------------------------------------------------

    def _start_reference(self, now: float) -> float:
        if self.started_at is None:
            self.started_at = now
        return self.started_at

    def _elapsed(self, at: float) -> float:
        return max(at - self._start_reference(at), 0.0)

    def _record_finish(
        self,
        user_id: str,
        *,
        finish_time: float,
        distance_meters: float,
        average_pace: Optional[float],
        at: float,
    ) -> None:
        sample = self._active.pop(user_id, None)
        known = self._metadata.get(user_id)

        distance = max(distance_meters or 0.0, sample.distance_meters if sample else 0.0)
        pace_minutes = average_pace if average_pace and average_pace > 0 else None
        if pace_minutes is None:
            pace_minutes = average_pace_minutes(distance, finish_time, self.unit)

        if known is not None:
            display_name = known.display_name
        elif sample is not None:
            display_name = sample.display_name
        else:
            display_name = user_id

        self._finished[user_id] = RunnerView(
            identity=RemoteRunner(user_id),
            display_name=display_name,
            distance_meters=distance,
            pace=format_pace_minutes(pace_minutes),
            pace_seconds=pace_minutes * 60 if pace_minutes else None,
            speed_mps=0.0,
            finish_time_seconds=finish_time,
            sprite_url=known.sprite_url if known else (sample.sprite_url if sample else None),
            country_code=known.country_code if known else (sample.country_code if sample else None),
        )
        self.stats.remote_finishes += 1
        logger.info(
            "Remote runner finished in %.1fs",
            finish_time,
            extra={"race_id": self.race_id, "user_id": user_id},
        )
        self._emit(
            RaceEvent(
                kind=RaceEventKind.REMOTE_FINISHED,
                user_id=user_id,
                at=at,
                finish_time_seconds=finish_time,
            )
        )
        if known is None:
            self._schedule_lookup(user_id)

    def _depart(self, user_id: str) -> None:
        self._active.pop(user_id, None)
        if user_id not in self._departed:
            self._departed.add(user_id)
            logger.info(
                "Remote runner left the race",
                extra={"race_id": self.race_id, "user_id": user_id},
            )

    def _emit(self, event: RaceEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Race event listener failed for %s", event.kind.value)

    def _schedule_lookup(self, user_id: str) -> None:
        if self._profile_lookup is None or self._closed or user_id in self._lookups:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._resolve_metadata(user_id), name=f"profile-lookup-{user_id}")
        self._lookups[user_id] = task
        task.add_done_callback(lambda _task, uid=user_id: self._lookups.pop(uid, None))

    async def _fetch_metadata(self, user_id: str) -> RunnerMetadata:
        assert self._profile_lookup is not None
        try:
            return await self._profile_lookup.get_profile(user_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise LookupFailure(user_id) from exc

    async def _resolve_metadata(self, user_id: str) -> None:
        try:
            metadata = await self._fetch_metadata(user_id)
        except LookupFailure as exc:
            self.stats.lookup_failures += 1
            logger.warning(
                "Profile lookup failed (%s), keeping placeholder metadata",
                type(exc.__cause__).__name__,
                extra={"race_id": self.race_id, "user_id": user_id},
            )
            return

        if self._closed:
            return
        self._apply_metadata(user_id, metadata)
        if self._on_change is not None:
            self._on_change()

    def _apply_metadata(self, user_id: str, metadata: RunnerMetadata) -> None:
        self._metadata[user_id] = metadata
        sample = self._active.get(user_id)
        if sample is not None:
            self._active[user_id] = replace(
                sample,
                display_name=metadata.display_name,
                sprite_url=metadata.sprite_url,
                country_code=metadata.country_code,
                metadata_resolved=True,
            )
        row = self._finished.get(user_id)
        if row is not None:
            self._finished[user_id] = replace(
                row,
                display_name=metadata.display_name,
                sprite_url=metadata.sprite_url,
                country_code=metadata.country_code,
            )
