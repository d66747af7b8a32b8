"""Behaviour of the post-race :class:`ResultsAggregator`."""

from __future__ import annotations

import pytest

from run_together.application.results import ResultsAggregator
from run_together.domain.models import RaceEventKind
from tests.conftest import LOCAL_USER, RACE_START, iso_at
from tests.factories import ParticipantRecordFactory


@pytest.fixture
def seed(make_reconciler):
    """Seed where ``winner`` and the local runner finished and ``straggler`` is running."""

    reconciler = make_reconciler(target_distance_meters=100.0)
    reconciler.ingest_remote_sample("winner", 100.0, speed_mps=6.0, arrival_time=RACE_START + 15)
    reconciler.ingest_remote_sample("straggler", 60.0, speed_mps=3.0, arrival_time=RACE_START + 19)
    reconciler.tick(RACE_START, 5.0)
    reconciler.tick(RACE_START + 20, 5.0)
    snapshot = reconciler.final_snapshot()
    reconciler.stop()
    return snapshot


def _ids(aggregator) -> list[str]:
    return [row.user_id for row in aggregator.get_leaderboard()]


def _row(aggregator, user_id: str):
    for row in aggregator.get_leaderboard():
        if row.user_id == user_id:
            return row
    raise AssertionError(f"{user_id} not on leaderboard")


def test_seeded_finishers_are_preserved_verbatim(seed) -> None:
    aggregator = ResultsAggregator(seed)
    before = {row.user_id: row for row in seed.finished}

    aggregator.ingest_authoritative_snapshot(
        [
            ParticipantRecordFactory(
                user_id="winner",
                distance_meters=100.0,
                finish_time=iso_at(RACE_START + 999),
                average_pace=9.0,
            )
        ],
        RACE_START + 25,
    )
    aggregator.ingest_remote_sample("winner", 5.0, arrival_time=RACE_START + 26)

    assert _row(aggregator, "winner") == before["winner"]
    assert _row(aggregator, LOCAL_USER) == before[LOCAL_USER]
    assert _ids(aggregator) == ["winner", LOCAL_USER, "straggler"]


def test_straggler_confirmed_by_store_joins_finishers(seed, events) -> None:
    aggregator = ResultsAggregator(seed, on_event=events.append)
    aggregator.ingest_authoritative_snapshot(
        [
            ParticipantRecordFactory(
                user_id="straggler",
                distance_meters=100.0,
                finish_time=iso_at(RACE_START + 40),
                average_pace=6.5,
            )
        ],
        RACE_START + 41,
    )

    row = _row(aggregator, "straggler")
    assert row.is_finished
    assert row.finish_time_seconds == pytest.approx(40.0)
    assert row.pace == "6:30"
    assert _ids(aggregator) == ["winner", LOCAL_USER, "straggler"]
    assert events[-1].kind is RaceEventKind.REMOTE_FINISHED

    assert not aggregator.ingest_remote_sample("straggler", 10.0, arrival_time=RACE_START + 42)
    assert _row(aggregator, "straggler") == row


def test_pace_is_derived_when_store_has_none(make_reconciler) -> None:
    reconciler = make_reconciler()
    reconciler.ingest_remote_sample("late", 4_000.0, arrival_time=RACE_START + 1_000)
    aggregator = ResultsAggregator(reconciler.final_snapshot())
    aggregator.ingest_authoritative_snapshot(
        [ParticipantRecordFactory(user_id="late", distance_meters=5_000.0, finish_time=iso_at(RACE_START + 1_500))],
        RACE_START + 1_501,
    )
    row = _row(aggregator, "late")
    assert row.finish_time_seconds == pytest.approx(1_500.0)
    assert row.pace == "5:00"


def test_finish_before_race_start_clamps_to_zero(seed) -> None:
    aggregator = ResultsAggregator(seed)
    aggregator.ingest_authoritative_snapshot(
        [ParticipantRecordFactory(user_id="early-bird", distance_meters=100.0, finish_time=iso_at(RACE_START - 30))],
        RACE_START + 30,
    )
    row = _row(aggregator, "early-bird")
    assert row.finish_time_seconds == 0.0
    assert _ids(aggregator)[0] == "early-bird"


def test_unparseable_finish_stays_active(seed) -> None:
    aggregator = ResultsAggregator(seed)
    aggregator.ingest_authoritative_snapshot(
        [ParticipantRecordFactory(user_id="straggler", distance_meters=90.0, finish_time="garbage")],
        RACE_START + 25,
    )
    assert not _row(aggregator, "straggler").is_finished
    assert aggregator.stats.timestamp_errors == 1


def test_post_race_window_evicts_quiet_stragglers(seed) -> None:
    aggregator = ResultsAggregator(seed)
    aggregator.tick(RACE_START + 28)
    assert "straggler" in _ids(aggregator)

    aggregator.tick(RACE_START + 30)
    assert "straggler" not in _ids(aggregator)
    assert aggregator.stats.evictions == 1

    aggregator.ingest_remote_sample("straggler", 90.0, arrival_time=RACE_START + 31)
    assert _row(aggregator, "straggler").distance_meters == 90.0


def test_straggler_broadcasts_are_tracked(seed) -> None:
    aggregator = ResultsAggregator(seed)
    assert aggregator.ingest_broadcast({"payload": {"user_id": "straggler", "distance": 80.0}}, RACE_START + 22)
    assert _row(aggregator, "straggler").distance_meters == 80.0
    assert not aggregator.ingest_broadcast({"payload": {"user_id": "straggler"}}, RACE_START + 23)
    assert aggregator.stats.malformed_samples == 1


def test_place_of_and_stop(seed) -> None:
    aggregator = ResultsAggregator(seed)
    assert aggregator.place_of("winner") == 1
    assert aggregator.place_of(LOCAL_USER) == 2
    assert aggregator.place_of("nobody") is None

    aggregator.stop()
    assert aggregator.is_stopped
    before = aggregator.get_leaderboard()
    aggregator.ingest_authoritative_snapshot(
        [ParticipantRecordFactory(user_id="straggler", distance_meters=100.0, finish_time=iso_at(RACE_START + 50))],
        RACE_START + 51,
    )
    assert not aggregator.ingest_remote_sample("straggler", 99.0, arrival_time=RACE_START + 52)
    assert aggregator.tick(RACE_START + 60) == before


def test_poll_only_stragglers_stay_listed_past_the_window(seed) -> None:
    aggregator = ResultsAggregator(seed)

    for step in range(1, 8):
        now = RACE_START + 20 + 3 * step
        aggregator.ingest_authoritative_snapshot(
            [
                ParticipantRecordFactory(user_id="walker", distance_meters=40.0 + step),
                ParticipantRecordFactory(user_id="straggler", distance_meters=60.0 + 5 * step),
            ],
            now,
        )
        aggregator.tick(now)
        assert _row(aggregator, "walker").distance_meters == 40.0 + step
        assert _row(aggregator, "straggler").distance_meters == 60.0 + 5 * step

    assert aggregator.stats.evictions == 0
    assert _ids(aggregator) == ["winner", LOCAL_USER, "straggler", "walker"]
