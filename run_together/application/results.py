"""Post-race results aggregation.

Once the local runner finishes, the session hands the reconciler's final
snapshot to a :class:`ResultsAggregator` that keeps listening for
stragglers. Finished rows from the seed are preserved verbatim; only the
authoritative store (or a straggler reaching the target distance) can add
new finishers. There is no automatic termination: the caller stops it.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from run_together.application.participants import (
    EventListener,
    ParticipantTable,
    ReconcilerStats,
)
from run_together.application.ports import ProfileLookup
from run_together.application.reconciler import ResultsSeed
from run_together.domain.errors import MalformedSampleError
from run_together.domain.models import ParticipantRecord, RunnerMetadata, RunnerView
from run_together.domain.ordering import LeaderboardOrdering, race_ordering, sort_runners
from run_together.domain.parsing import parse_broadcast
from run_together.domain.staleness import POST_RACE_WINDOW, StalenessPolicy
from utils.logger import get_logger

logger = get_logger(__name__)


class ResultsAggregator:
    """Track stragglers after the local finish until the caller stops it."""

    def __init__(
        self,
        seed: ResultsSeed,
        *,
        profile_lookup: ProfileLookup | None = None,
        ordering: LeaderboardOrdering = race_ordering,
        staleness_window: float = POST_RACE_WINDOW,
        on_event: EventListener | None = None,
    ) -> None:
        self.race_id = seed.race_id
        self.local_user_id = seed.local_user_id
        self.stats = ReconcilerStats()
        self._ordering = ordering
        self._stopped = False
        self._last_now: float | None = None

        self._table = ParticipantTable(
            race_id=seed.race_id,
            local_user_id=seed.local_user_id,
            target_distance_meters=seed.target_distance_meters,
            unit=seed.unit,
            staleness=StalenessPolicy(staleness_window),
            stats=self.stats,
            profile_lookup=profile_lookup,
            started_at=seed.race_started_at,
            on_event=on_event,
            on_change=self._on_metadata_resolved,
        )
        self._local_rows = tuple(row for row in seed.leaderboard if row.is_local)
        self._table.seed(
            finished=(row for row in seed.finished if not row.is_local),
            active=seed.active,
            departed=seed.departed,
            metadata=seed.metadata,
        )
        self._leaderboard: tuple[RunnerView, ...] = ()
        self._refresh()
        logger.info(
            "Results aggregation started with %s finisher(s)",
            len(seed.finished),
            extra={"race_id": self.race_id},
        )

    @property
    def is_stopped(self) -> bool:
        return self._stopped

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
        if self._stopped:
            return False
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
        if self._stopped:
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
        """Confirm new finishers from the participants table."""

        if self._stopped:
            return
        self._table.apply_snapshot(records, now)
        self._refresh(now)

    def tick(self, now: float) -> tuple[RunnerView, ...]:
        """Evict stragglers that went quiet and recompute the leaderboard."""

        if self._stopped:
            return self._leaderboard
        self._table.evict_stale(now)
        self._refresh(now)
        return self._leaderboard

    def get_leaderboard(self) -> tuple[RunnerView, ...]:
        return self._leaderboard

    def place_of(self, user_id: str) -> int | None:
        """Return the 1-based position of ``user_id`` or ``None`` if absent."""

        for index, row in enumerate(self._leaderboard, start=1):
            if row.user_id == user_id:
                return index
        return None

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._table.close()
        logger.info("Results aggregation stopped", extra={"race_id": self.race_id})

    async def drain_lookups(self) -> None:
        await self._table.drain_lookups()

    def _refresh(self, now: float | None = None) -> None:
        if now is not None:
            self._last_now = now
        rows = self._table.views(self._last_now)
        rows.extend(self._local_rows)
        self._leaderboard = sort_runners(rows, self._ordering)

    def _on_metadata_resolved(self) -> None:
        if not self._stopped:
            self._refresh()

    def _drop_malformed(self, exc: MalformedSampleError) -> None:
        self.stats.malformed_samples += 1
        logger.warning(
            "Dropping malformed straggler sample: %s",
            exc,
            extra={"race_id": self.race_id, "event": "malformed_sample"},
        )
