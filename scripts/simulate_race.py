"""Run an in-memory race against simulated opponents and print the leaderboard."""

from __future__ import annotations

import argparse
import asyncio
import random
import time
from datetime import datetime, timezone

from dotenv import load_dotenv

from run_together.application.ranked import RankedRaceService
from run_together.application.session import PROGRESS_EVENT, RaceSession
from run_together.domain.models import DistanceUnit, RaceEvent, RunnerMetadata, RunnerView
from run_together.domain.pace import format_elapsed
from run_together.infrastructure.memory import InMemoryBroadcastHub, InMemoryRaceStore
from run_together.infrastructure.settings import RaceSettings
from utils.logger import get_logger
from utils.sentry import init_sentry

logger = get_logger("simulate_race")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--distance", type=float, default=400.0, help="target distance in metres")
    parser.add_argument("--opponents", type=int, default=3, help="number of simulated runners")
    parser.add_argument("--speed", type=float, default=4.0, help="local speed in m/s")
    parser.add_argument("--tick", type=float, default=0.5, help="seconds between local ticks")
    parser.add_argument("--miles", action="store_true", help="display paces per mile")
    parser.add_argument("--seed", type=int, default=None, help="random seed for opponents")
    return parser.parse_args(argv)


async def _opponent(
    hub: InMemoryBroadcastHub,
    store: InMemoryRaceStore,
    race_id: str,
    user_id: str,
    speed: float,
    distance: float,
    tick: float,
) -> None:
    channel = hub.channel(race_id)
    covered = 0.0
    while covered < distance:
        await asyncio.sleep(tick)
        covered = min(covered + speed * tick, distance)
        await channel.publish(
            {
                "event": PROGRESS_EVENT,
                "payload": {"user_id": user_id, "distance": covered, "speed": speed},
            }
        )
    finished = [row for row in await store.list_participants(race_id) if row.finish_time]
    await store.mark_finished(race_id, user_id, distance, None, len(finished) + 1)


def _render(rows: tuple[RunnerView, ...]) -> str:
    lines = []
    for place, row in enumerate(rows, start=1):
        marker = "*" if row.is_local else " "
        finish = format_elapsed(row.finish_time_seconds)
        lines.append(
            f"{marker}{place:>2}. {row.display_name:<12} {row.distance_meters:8.1f} m  "
            f"{row.pace:>6}  {finish}"
        )
    return "\n".join(lines)


async def simulate(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    race_id = "sim-race"
    unit = DistanceUnit.MILES if args.miles else DistanceUnit.KILOMETERS
    opponent_ids = [f"runner-{index + 1}" for index in range(args.opponents)]

    store = InMemoryRaceStore()
    store.add_race(
        race_id,
        start_time=datetime.now(timezone.utc),
        distance_meters=args.distance,
        participants=["local", *opponent_ids],
    )
    for user_id in opponent_ids:
        store.set_profile(user_id, RunnerMetadata(display_name=user_id.replace("-", " ").title()))

    hub = InMemoryBroadcastHub()

    def on_event(event: RaceEvent) -> None:
        logger.info("Race event %s", event.kind.value, extra={"race_id": race_id, "event": event.kind.value})

    session = RaceSession(
        race_id=race_id,
        local_user_id="local",
        target_distance_meters=args.distance,
        store=store,
        channel=hub.channel(race_id),
        profile_lookup=store,
        ranked_service=RankedRaceService(store),
        unit=unit,
        settings=RaceSettings.from_env(),
        local_metadata=RunnerMetadata(display_name="You"),
        on_event=on_event,
    )
    await session.start()

    opponents = [
        asyncio.create_task(
            _opponent(hub, store, race_id, user_id, rng.uniform(3.0, 5.0), args.distance, args.tick),
            name=f"opponent-{user_id}",
        )
        for user_id in opponent_ids
    ]

    try:
        while not session.reconciler.get_local_finish_state().finished:
            await asyncio.sleep(args.tick)
            session.tick(args.speed * rng.uniform(0.9, 1.1))
            print(_render(session.leaderboard), end="\n\n")

        outcome = await session.submit_result(ranked=True)
        print(f"Finished {outcome.place}/{outcome.field_size} in {format_elapsed(outcome.finish_time_seconds)}")
        if outcome.lp_change is not None:
            print(outcome.lp_change.message, "->", outcome.lp_change.current.display)

        await asyncio.gather(*opponents)
        await session.poll_once()
        session.tick(0.0)
        print(_render(session.leaderboard))
    finally:
        for task in opponents:
            task.cancel()
        await session.stop()

    started = await store.get_race_start_time(race_id)
    logger.info(
        "Simulation finished after %.1fs",
        time.time() - started.timestamp(),
        extra={"race_id": race_id},
    )


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    init_sentry()
    asyncio.run(simulate(_parse_args(argv)))


if __name__ == "__main__":
    main()
