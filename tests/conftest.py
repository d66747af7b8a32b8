from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from run_together.application.reconciler import RaceReconciler
from run_together.domain.models import RaceEvent
from tests.fakes import (
    AuthoritativeStoreFake,
    BroadcastChannelFake,
    ManualClock,
    ProfileLookupFake,
    RankedProfileStoreFake,
)

RACE_ID = "race-001"
LOCAL_USER = "me"
RACE_START = 1_000.0


def iso_at(epoch_seconds: float) -> str:
    """Return an ISO-8601 UTC timestamp for ``epoch_seconds``."""

    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


@pytest.fixture
def events() -> list[RaceEvent]:
    """Collect race events emitted through ``on_event``."""

    return []


@pytest.fixture
def make_reconciler(events: list[RaceEvent]):
    """Return a builder for reconcilers of a 5 km race started at ``RACE_START``."""

    def _build(**overrides) -> RaceReconciler:
        options = {
            "race_started_at": RACE_START,
            "on_event": events.append,
        }
        options.update(overrides)
        target = options.pop("target_distance_meters", 5_000.0)
        return RaceReconciler(RACE_ID, LOCAL_USER, target, **options)

    return _build


@pytest.fixture
def store() -> AuthoritativeStoreFake:
    return AuthoritativeStoreFake(race_start=datetime.fromtimestamp(RACE_START, tz=timezone.utc))


@pytest.fixture
def channel() -> BroadcastChannelFake:
    return BroadcastChannelFake()


@pytest.fixture
def profile_lookup() -> ProfileLookupFake:
    return ProfileLookupFake()


@pytest.fixture
def ranked_store() -> RankedProfileStoreFake:
    return RankedProfileStoreFake()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(RACE_START)
