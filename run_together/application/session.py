"""Async driver wiring one race to its broadcast channel and stores.

A :class:`RaceSession` owns a :class:`RaceReconciler` while the local runner
is racing and a :class:`ResultsAggregator` afterwards. Every mutation runs on
the event loop that called :meth:`RaceSession.start`; background work lives
in named tasks that :meth:`RaceSession.stop` cancels and awaits.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from run_together.application.participants import EventListener
from run_together.application.ports import (
    AuthoritativeStore,
    BroadcastChannel,
    BroadcastSubscription,
    ProfileLookup,
)
from run_together.application.ranked import RankedRaceService
from run_together.application.reconciler import RaceReconciler
from run_together.application.results import ResultsAggregator
from run_together.domain.errors import ChannelUnavailable, StoreWriteError
from run_together.domain.models import (
    DistanceUnit,
    LPChange,
    RacePhase,
    RunnerMetadata,
    RunnerView,
)
from run_together.domain.ordering import LeaderboardOrdering, race_ordering
from run_together.domain.pace import average_pace_minutes, format_pace_minutes, pace_from_speed
from run_together.infrastructure.settings import RaceSettings
from utils.sentry import capture_exception
from utils.logger import get_logger

logger = get_logger(__name__)

PROGRESS_EVENT = "runner_progress"


@dataclass(slots=True, frozen=True)
class RaceOutcome:
    """What the local runner achieved once the result was submitted."""

    race_id: str
    user_id: str
    place: int
    field_size: int
    finish_time_seconds: float
    pace: str
    lp_change: Optional[LPChange] = None


class RaceSession:
    """Run one race for the local user on the current event loop."""

    def __init__(
        self,
        *,
        race_id: str,
        local_user_id: str,
        target_distance_meters: float,
        store: AuthoritativeStore,
        channel: BroadcastChannel | None = None,
        profile_lookup: ProfileLookup | None = None,
        ranked_service: RankedRaceService | None = None,
        unit: DistanceUnit = DistanceUnit.KILOMETERS,
        settings: RaceSettings | None = None,
        ordering: LeaderboardOrdering = race_ordering,
        local_metadata: RunnerMetadata | None = None,
        on_event: EventListener | None = None,
        clock: Callable[[], float] = time.time,
        event_name: str = PROGRESS_EVENT,
    ) -> None:
        self.race_id = race_id
        self.local_user_id = local_user_id
        self.settings = settings or RaceSettings()
        self._store = store
        self._channel = channel
        self._profile_lookup = profile_lookup
        self._ranked_service = ranked_service
        self._ordering = ordering
        self._on_event = on_event
        self._clock = clock
        self._event_name = event_name

        self._reconciler = RaceReconciler(
            race_id,
            local_user_id,
            target_distance_meters,
            unit=unit,
            profile_lookup=profile_lookup,
            ordering=ordering,
            staleness_window=self.settings.in_race_window,
            overtake_radius=self.settings.overtake_radius,
            on_event=on_event,
            local_metadata=local_metadata,
        )
        self._aggregator: ResultsAggregator | None = None
        self._subscription: BroadcastSubscription | None = None
        self._tasks: set[asyncio.Task] = set()
        self._participant_count = 0
        self._last_publish_at: float | None = None
        self._degraded = False
        self._started = False
        self._stopped = False

    # --- read side ------------------------------------------------------

    @property
    def reconciler(self) -> RaceReconciler:
        return self._reconciler

    @property
    def aggregator(self) -> ResultsAggregator | None:
        return self._aggregator

    @property
    def degraded(self) -> bool:
        """``True`` when the session only converges through store polling."""

        return self._degraded

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def leaderboard(self) -> tuple[RunnerView, ...]:
        if self._aggregator is not None:
            return self._aggregator.get_leaderboard()
        return self._reconciler.get_leaderboard()

    def local_place(self) -> int:
        if self._aggregator is not None:
            place = self._aggregator.place_of(self.local_user_id)
            if place is not None:
                return place
        return self._reconciler.local_place()

    def field_size(self) -> int:
        return max(len(self.leaderboard), self._participant_count)

    # --- lifecycle ------------------------------------------------------

    async def start(self) -> None:
        """Resolve the race start, subscribe and launch background loops."""

        if self._started:
            return
        self._started = True

        try:
            race_start = await self._store.get_race_start_time(self.race_id)
        except Exception as exc:
            logger.warning(
                "Race start time unavailable, using local clock: %s",
                exc,
                extra={"race_id": self.race_id},
            )
        else:
            self._reconciler.set_race_start(race_start.timestamp())

        try:
            self._subscription = await self._subscribe()
        except ChannelUnavailable as exc:
            self._degraded = True
            logger.warning(
                "Realtime channel unavailable, falling back to polling: %s",
                exc,
                extra={"race_id": self.race_id, "event": "degraded"},
            )
        else:
            self._spawn(self._consume(self._subscription), name=f"race-{self.race_id}-broadcast")

        self._spawn(self._poll_loop(), name=f"race-{self.race_id}-poll")
        logger.info(
            "Race session started",
            extra={"race_id": self.race_id, "user_id": self.local_user_id},
        )

    async def stop(self) -> None:
        """Cancel background work and freeze the leaderboard."""

        if self._stopped:
            return
        self._stopped = True
        self._reconciler.stop()
        if self._aggregator is not None:
            self._aggregator.stop()

        while self._tasks:
            task = self._tasks.pop()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Cancelled task %s", task.get_name())

        if self._subscription is not None:
            try:
                await self._subscription.close()
            except Exception as exc:
                logger.warning(
                    "Failed to close broadcast subscription: %s",
                    exc,
                    extra={"race_id": self.race_id},
                )
            self._subscription = None

        logger.info("Race session stopped", extra={"race_id": self.race_id})

    async def leave(self) -> None:
        """Leave the race, recording a disconnect when it was not finished."""

        if not self._stopped and not self._reconciler.get_local_finish_state().finished:
            try:
                await self._store.mark_disconnected(self.race_id, self.local_user_id)
            except Exception as exc:
                logger.warning(
                    "Could not record disconnect: %s",
                    exc,
                    extra={"race_id": self.race_id, "user_id": self.local_user_id},
                )
        await self.stop()

    # --- local runner ---------------------------------------------------

    def tick(self, local_speed_mps: float, now: float | None = None) -> tuple[RunnerView, ...]:
        """Advance the race by one local sensor reading."""

        if self._stopped:
            return self.leaderboard
        stamp = self._clock() if now is None else now

        if self._aggregator is not None:
            self._aggregator.tick(stamp)
            return self.leaderboard

        self._reconciler.tick(stamp, local_speed_mps)
        finished = self._reconciler.phase is RacePhase.FINISHED
        self._maybe_publish(stamp, force=finished)
        if finished:
            self._hand_off()
        return self.leaderboard

    async def poll_once(self) -> None:
        """Fetch the participants table once and merge it."""

        try:
            records = await self._store.list_participants(self.race_id)
        except Exception as exc:
            logger.warning(
                "Participants poll failed: %s",
                exc,
                extra={"race_id": self.race_id, "event": "poll"},
            )
            return
        if self._stopped:
            return
        self._participant_count = len(records)
        now = self._clock()
        if self._aggregator is not None:
            self._aggregator.ingest_authoritative_snapshot(records, now)
        else:
            self._reconciler.ingest_authoritative_snapshot(records, now)

    async def submit_result(self, ranked: bool = True) -> RaceOutcome:
        """Persist the local finish and, for ranked races, update the ladder.

        Raises:
            RuntimeError: When the local runner has not finished yet.
            StoreWriteError: When the result or ranked profile cannot be saved.
        """

        finish = self._reconciler.get_local_finish_state()
        if not finish.finished or finish.finish_time_seconds is None:
            raise RuntimeError("Local runner has not finished the race")

        place = self.local_place()
        field_size = self.field_size()
        distance = self._reconciler.target_distance_meters
        pace_minutes = average_pace_minutes(
            distance, finish.finish_time_seconds, self._reconciler.unit
        )

        try:
            await self._store.mark_finished(
                self.race_id, self.local_user_id, distance, pace_minutes, place
            )
        except Exception as exc:
            error = StoreWriteError("mark_finished", f"Could not save race result: {exc}")
            capture_exception(error, user_id=self.local_user_id, race_id=self.race_id)
            raise error from exc

        lp_change: LPChange | None = None
        if ranked and self._ranked_service is not None:
            try:
                lp_change = await self._ranked_service.record_result(
                    self.local_user_id, place, field_size
                )
            except StoreWriteError as exc:
                capture_exception(exc, user_id=self.local_user_id, race_id=self.race_id)
                raise

        logger.info(
            "Result submitted: place %s of %s",
            place,
            field_size,
            extra={"race_id": self.race_id, "user_id": self.local_user_id, "event": "submit"},
        )
        return RaceOutcome(
            race_id=self.race_id,
            user_id=self.local_user_id,
            place=place,
            field_size=field_size,
            finish_time_seconds=finish.finish_time_seconds,
            pace=format_pace_minutes(pace_minutes),
            lp_change=lp_change,
        )

    # --- internals ------------------------------------------------------

    async def _subscribe(self) -> BroadcastSubscription:
        if self._channel is None:
            raise ChannelUnavailable("No broadcast channel configured")
        try:
            return await self._channel.subscribe(self._event_name)
        except Exception as exc:
            raise ChannelUnavailable(f"Subscribe to '{self._event_name}' failed: {exc}") from exc

    def _spawn(self, coro: Any, *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._tasks.discard)
        self._tasks.add(task)
        return task

    async def _consume(self, subscription: BroadcastSubscription) -> None:
        try:
            async for message in subscription:
                if self._stopped:
                    break
                self._ingest(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._degraded = True
            logger.warning(
                "Broadcast stream failed, continuing with polling: %s",
                exc,
                extra={"race_id": self.race_id, "event": "degraded"},
            )

    def _ingest(self, message: Mapping[str, Any]) -> None:
        arrival = self._clock()
        if self._aggregator is not None:
            self._aggregator.ingest_broadcast(message, arrival)
        else:
            self._reconciler.ingest_broadcast(message, arrival)

    async def _poll_loop(self) -> None:
        while not self._stopped:
            await self.poll_once()
            await asyncio.sleep(self.settings.poll_interval)

    def _maybe_publish(self, now: float, *, force: bool = False) -> None:
        if self._channel is None:
            return
        if (
            not force
            and self._last_publish_at is not None
            and now - self._last_publish_at < self.settings.publish_interval
        ):
            return
        self._last_publish_at = now

        speed = self._reconciler.local_speed_mps
        event = {
            "event": self._event_name,
            "payload": {
                "user_id": self.local_user_id,
                "distance": self._reconciler.local_distance_meters,
                "pace": pace_from_speed(speed, self._reconciler.unit),
                "speed": speed,
            },
        }
        self._spawn(self._publish(event), name=f"race-{self.race_id}-publish")

    async def _publish(self, event: Mapping[str, Any]) -> None:
        assert self._channel is not None
        try:
            await self._channel.publish(event)
        except Exception as exc:
            logger.warning(
                "Publishing local progress failed: %s",
                exc,
                extra={"race_id": self.race_id, "event": "publish"},
            )

    def _hand_off(self) -> None:
        seed = self._reconciler.final_snapshot()
        self._aggregator = ResultsAggregator(
            seed,
            profile_lookup=self._profile_lookup,
            ordering=self._ordering,
            staleness_window=self.settings.post_race_window,
            on_event=self._on_event,
        )
        self._reconciler.stop()
        logger.info(
            "Handed off to results aggregation",
            extra={"race_id": self.race_id, "user_id": self.local_user_id},
        )
