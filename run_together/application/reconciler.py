"""In-race reconciliation of local, realtime and authoritative signals.

:class:`RaceReconciler` merges three sources for one race:

* the local runner's speed, fed through :meth:`RaceReconciler.tick`;
* realtime samples from other clients (unordered, lossy, duplicated);
* periodic snapshots of the authoritative participants table.

It produces an ordered, immutable leaderboard snapshot after every change.
Ingestion and tick calls never raise; bad input is logged and counted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from run_together.application.participants import (
    EventListener,
    ParticipantTable,
    ReconcilerStats,
)
from run_together.application.ports import ProfileLookup
from run_together.domain.errors import MalformedSampleError
from run_together.domain.models import (
    DistanceUnit,
    LocalFinishState,
    LocalRunner,
    ParticipantRecord,
    ParticipantSample,
    RaceEvent,
    RaceEventKind,
    RacePhase,
    RunnerMetadata,
    RunnerView,
)
from run_together.domain.ordering import LeaderboardOrdering, race_ordering, sort_runners
from run_together.domain.pace import (
    DeltaClock,
    advance_distance,
    average_pace_minutes,
    compute_pace,
    format_pace_minutes,
    pace_seconds,
)
from run_together.domain.parsing import parse_broadcast
from run_together.domain.staleness import IN_RACE_WINDOW, StalenessPolicy
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_OVERTAKE_RADIUS = 10.0

__all__ = ["DEFAULT_OVERTAKE_RADIUS", "RaceReconciler", "ReconcilerStats", "ResultsSeed"]


@dataclass(slots=True, frozen=True)
class ResultsSeed:
    """State handed from the reconciler to the post-race aggregator."""

    race_id: str
    local_user_id: str
    target_distance_meters: float
    unit: DistanceUnit
    race_started_at: Optional[float]
    leaderboard: tuple[RunnerView, ...]
    active: tuple[ParticipantSample, ...] = ()
    departed: frozenset[str] = frozenset()
    metadata: Mapping[str, RunnerMetadata] = field(default_factory=dict)

    @property
    def finished(self) -> tuple[RunnerView, ...]:
        return tuple(row for row in self.leaderboard if row.is_finished)


class RaceReconciler:
    """Merge local and remote signals into a single race leaderboard."""

    def __init__(
        self,
        race_id: str,
        local_user_id: str,
        target_distance_meters: float,
        *,
        unit: DistanceUnit = DistanceUnit.KILOMETERS,
        race_started_at: float | None = None,
        profile_lookup: ProfileLookup | None = None,
        ordering: LeaderboardOrdering = race_ordering,
        staleness_window: float = IN_RACE_WINDOW,
        overtake_radius: float = DEFAULT_OVERTAKE_RADIUS,
        on_event: EventListener | None = None,
        local_metadata: RunnerMetadata | None = None,
    ) -> None:
        if target_distance_meters <= 0:
            raise ValueError("target_distance_meters must be positive")

        self.race_id = race_id
        self.local_user_id = local_user_id
        self.target_distance_meters = float(target_distance_meters)
        self.unit = unit
        self.stats = ReconcilerStats()
        self._ordering = ordering
        self._overtake_radius = overtake_radius
        self._on_event = on_event
        self._local_metadata = local_metadata or RunnerMetadata(display_name=local_user_id)

        self._phase = RacePhase.NOT_STARTED
        self._clock = DeltaClock()
        self._local_distance = 0.0
        self._local_speed = 0.0
        self._local_finish_time: float | None = None
        self._gaps: dict[str, float] = {}
        self._last_now: float | None = None

        self._table = ParticipantTable(
            race_id=race_id,
            local_user_id=local_user_id,
            target_distance_meters=self.target_distance_meters,
            unit=unit,
            staleness=StalenessPolicy(staleness_window),
            stats=self.stats,
            profile_lookup=profile_lookup,
            started_at=race_started_at,
            on_event=on_event,
            on_change=self._on_metadata_resolved,
        )
        self._leaderboard: tuple[RunnerView, ...] = ()
        self._refresh()

    # --- state ------------------------------------------------------------

    @property
    def phase(self) -> RacePhase:
        return self._phase

    @property
    def started_at(self) -> float | None:
        return self._table.started_at

    @property
    def local_distance_meters(self) -> float:
        return self._local_distance

    @property
    def local_speed_mps(self) -> float:
        return self._local_speed

    def set_race_start(self, race_started_at: float) -> None:
        """Adopt the authoritative start time when it arrives late."""

        if self._phase in (RacePhase.NOT_STARTED, RacePhase.ACTIVE):
            self._table.started_at = race_started_at

    # --- ingestion --------------------------------------------------------

    def ingest_remote_sample(
        self,
        user_id: str,
        distance_meters: float,
        pace_minutes_per_unit: float | None = None,
        speed_mps: float | None = None,
        metadata: RunnerMetadata | None = None,
        *,
        arrival_time: float,
    ) -> bool:
        """Upsert a realtime sample. Returns ``True`` when it was accepted."""

        if self._phase is RacePhase.CLOSED:
            self.stats.samples_ignored += 1
            return False
        self._activate(arrival_time)
        try:
            accepted = self._table.upsert(
                user_id,
                distance_meters,
                pace_minutes_per_unit,
                speed_mps,
                metadata,
                arrival_time,
            )
        except MalformedSampleError as exc:
            self._drop_malformed(exc)
            return False
        if accepted:
            self._refresh(arrival_time)
        return accepted

    def ingest_broadcast(self, payload: Mapping[str, Any], arrival_time: float) -> bool:
        """Parse a raw broadcast message and ingest it as a remote sample."""

        if self._phase is RacePhase.CLOSED:
            self.stats.samples_ignored += 1
            return False
        try:
            sample = parse_broadcast(payload)
        except MalformedSampleError as exc:
            self._drop_malformed(exc)
            return False
        return self.ingest_remote_sample(
            sample.user_id,
            sample.distance_meters,
            sample.pace_minutes_per_unit,
            sample.speed_mps,
            arrival_time=arrival_time,
        )

    def ingest_authoritative_snapshot(
        self, records: Iterable[ParticipantRecord], now: float
    ) -> None:
        """Merge the authoritative participants table."""

        if self._phase is RacePhase.CLOSED:
            return
        self._activate(now)
        self._table.apply_snapshot(records, now)
        self._refresh(now)

    # --- local runner -----------------------------------------------------

    def tick(
        self,
        now: float,
        local_speed_mps: float,
        delta_seconds: float | None = None,
    ) -> tuple[RunnerView, ...]:
        """Advance the local runner and recompute the leaderboard."""

        if self._phase is RacePhase.CLOSED:
            return self._leaderboard
        self._activate(now)

        if delta_seconds is None:
            elapsed = self._clock.advance(now)
        else:
            first_tick = self._clock.last_tick_at is None
            self._clock.last_tick_at = now
            elapsed = 0.0 if first_tick else max(delta_seconds, 0.0)

        if self._phase is RacePhase.ACTIVE:
            self._local_speed = max(local_speed_mps or 0.0, 0.0)
            self._local_distance = advance_distance(
                self._local_distance,
                self._local_speed,
                elapsed,
                self.target_distance_meters,
            )
            if self._local_distance >= self.target_distance_meters:
                self._finish_local(now)
            else:
                self._table.evict_stale(now)
                self._detect_overtakes(now)

        self._refresh(now)
        return self._leaderboard

    # --- read side --------------------------------------------------------

    def get_leaderboard(self) -> tuple[RunnerView, ...]:
        return self._leaderboard

    def get_local_finish_state(self) -> LocalFinishState:
        return LocalFinishState(
            finished=self._local_finish_time is not None,
            finish_time_seconds=self._local_finish_time,
        )

    def local_place(self) -> int:
        for index, row in enumerate(self._leaderboard, start=1):
            if row.is_local:
                return index
        return len(self._leaderboard)

    def field_size(self) -> int:
        return len(self._leaderboard)

    def final_snapshot(self) -> ResultsSeed:
        """Capture what the post-race aggregator needs to continue."""

        return ResultsSeed(
            race_id=self.race_id,
            local_user_id=self.local_user_id,
            target_distance_meters=self.target_distance_meters,
            unit=self.unit,
            race_started_at=self.started_at,
            leaderboard=self._leaderboard,
            active=tuple(self._table.active.values()),
            departed=self._table.departed,
            metadata=self._table.metadata,
        )

    def stop(self) -> None:
        """Close the reconciler; every later call is a no-op."""

        if self._phase is RacePhase.CLOSED:
            return
        self._phase = RacePhase.CLOSED
        self._table.close()
        logger.info("Reconciler closed", extra={"race_id": self.race_id})

    async def drain_lookups(self) -> None:
        await self._table.drain_lookups()

    # --- internals --------------------------------------------------------

    def _activate(self, now: float) -> None:
        if self._phase is not RacePhase.NOT_STARTED:
            return
        self._phase = RacePhase.ACTIVE
        if self._table.started_at is None:
            self._table.started_at = now
        logger.info(
            "Race became active",
            extra={"race_id": self.race_id, "user_id": self.local_user_id},
        )

    def _finish_local(self, now: float) -> None:
        started_at = self._table.started_at if self._table.started_at is not None else now
        self._local_distance = self.target_distance_meters
        self._local_speed = 0.0
        self._local_finish_time = max(now - started_at, 0.0)
        self._phase = RacePhase.FINISHED
        logger.info(
            "Local runner finished in %.1fs",
            self._local_finish_time,
            extra={"race_id": self.race_id, "user_id": self.local_user_id, "event": "finish"},
        )
        self._emit(
            RaceEvent(
                kind=RaceEventKind.LOCAL_FINISHED,
                user_id=self.local_user_id,
                at=now,
                finish_time_seconds=self._local_finish_time,
            )
        )

    def _detect_overtakes(self, now: float) -> None:
        gaps: dict[str, float] = {}
        for user_id, sample in self._table.active.items():
            if self._table.staleness.is_stale(sample, now):
                continue
            gap = sample.distance_meters - self._local_distance
            previous = self._gaps.get(user_id)
            gaps[user_id] = gap
            if previous is None:
                continue
            if abs(previous) > self._overtake_radius or abs(gap) > self._overtake_radius:
                continue
            if previous > 0 > gap:
                kind = RaceEventKind.OVERTOOK
            elif previous < 0 < gap:
                kind = RaceEventKind.OVERTAKEN
            else:
                continue
            self._emit(RaceEvent(kind=kind, user_id=user_id, at=now))
        self._gaps = gaps

    def _local_view(self) -> RunnerView:
        if self._local_finish_time is not None:
            pace_minutes = average_pace_minutes(
                self._local_distance, self._local_finish_time, self.unit
            )
            pace = format_pace_minutes(pace_minutes)
            seconds = pace_minutes * 60 if pace_minutes else None
        else:
            pace = compute_pace(self._local_speed, self.unit)
            seconds = pace_seconds(self._local_speed, self.unit)
        return RunnerView(
            identity=LocalRunner(self.local_user_id),
            display_name=self._local_metadata.display_name,
            distance_meters=self._local_distance,
            pace=pace,
            pace_seconds=seconds,
            speed_mps=self._local_speed,
            finish_time_seconds=self._local_finish_time,
            sprite_url=self._local_metadata.sprite_url,
            country_code=self._local_metadata.country_code,
        )

    def _refresh(self, now: float | None = None) -> None:
        if now is not None:
            self._last_now = now
        rows = self._table.views(self._last_now)
        rows.append(self._local_view())
        self._leaderboard = sort_runners(rows, self._ordering)

    def _on_metadata_resolved(self) -> None:
        if self._phase is not RacePhase.CLOSED:
            self._refresh()

    def _drop_malformed(self, exc: MalformedSampleError) -> None:
        self.stats.malformed_samples += 1
        logger.warning(
            "Dropping malformed sample: %s",
            exc,
            extra={"race_id": self.race_id, "event": "malformed_sample"},
        )

    def _emit(self, event: RaceEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Race event listener failed for %s", event.kind.value)
