"""Domain factories for race engine tests."""

from __future__ import annotations

import datetime as dt

import factory

from run_together.domain.models import (
    ParticipantRecord,
    RankDivision,
    RankedProfile,
    RankTier,
    RemoteRunner,
    RunnerView,
)


class ParticipantRecordFactory(factory.Factory):
    """Factory building authoritative :class:`ParticipantRecord` rows."""

    user_id = factory.Sequence(lambda n: f"runner-{n:03d}")
    distance_meters = 0.0
    finish_time = None
    average_pace = None
    place = None
    disconnected = False

    class Meta:
        model = ParticipantRecord


class RankedProfileFactory(factory.Factory):
    """Factory building :class:`RankedProfile` ladder standings."""

    user_id = factory.Sequence(lambda n: f"ranked-{n:03d}")
    tier = RankTier.BRONZE
    division = RankDivision.IV
    league_points = 0
    hidden_rating = 1000
    top_three_finishes = 0
    total_races = 0
    created_at = factory.LazyFunction(lambda: dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc))
    updated_at = factory.LazyAttribute(lambda obj: obj.created_at)

    class Meta:
        model = RankedProfile


class RunnerViewFactory(factory.Factory):
    """Factory building remote leaderboard rows."""

    identity = factory.Sequence(lambda n: RemoteRunner(f"runner-{n:03d}"))
    display_name = factory.LazyAttribute(lambda obj: obj.identity.user_id)
    distance_meters = 0.0
    pace = "--:--"
    pace_seconds = None
    speed_mps = 0.0
    finish_time_seconds = None

    class Meta:
        model = RunnerView
