"""Tests for :class:`run_together.application.ranked.RankedRaceService`."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from run_together.application.ranked import RankedRaceService
from run_together.domain.errors import StoreWriteError
from run_together.domain.models import RankDivision, RankTier
from tests.factories import RankedProfileFactory
from tests.fakes import RankedProfileStoreFake

NOW = datetime(2024, 6, 1, 18, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio()
async def test_first_ranked_race_creates_profile(ranked_store: RankedProfileStoreFake) -> None:
    service = RankedRaceService(ranked_store)
    change = await service.record_result("newbie", place=1, field_size=8, now=NOW)

    stored = ranked_store.profiles["newbie"]
    assert change.delta == 30
    assert change.message == "+30 LP"
    assert (stored.tier, stored.division, stored.league_points) == (RankTier.BRONZE, RankDivision.IV, 30)
    assert stored.hidden_rating == 1000
    assert stored.total_races == 1
    assert stored.top_three_finishes == 1
    assert stored.updated_at == NOW


@pytest.mark.asyncio()
async def test_promotion_is_reported() -> None:
    store = RankedProfileStoreFake(
        [RankedProfileFactory(user_id="climber", league_points=90, total_races=9, top_three_finishes=2)]
    )
    change = await RankedRaceService(store).record_result("climber", place=1, field_size=8, now=NOW)

    assert change.promoted
    assert change.current.division is RankDivision.III
    assert change.current.league_points == 20
    assert change.message == "Promoted to Bronze III! (+30 LP)"
    assert change.current.total_races == 10
    assert change.current.top_three_finishes == 3


@pytest.mark.asyncio()
async def test_last_place_at_floor_stays_at_floor(ranked_store: RankedProfileStoreFake) -> None:
    ranked_store.profiles["floor"] = RankedProfileFactory(user_id="floor")
    change = await RankedRaceService(ranked_store).record_result("floor", place=4, field_size=4, now=NOW)

    assert change.delta == -15
    assert change.current.league_points == 0
    assert not change.demoted
    assert change.current.top_three_finishes == 0


@pytest.mark.asyncio()
async def test_solo_race_counts_but_awards_nothing(ranked_store: RankedProfileStoreFake) -> None:
    change = await RankedRaceService(ranked_store).record_result("solo", place=1, field_size=1, now=NOW)
    assert change.delta == 0
    assert change.message == "No LP change"
    assert change.current.total_races == 1
    assert change.current.top_three_finishes == 0


@pytest.mark.asyncio()
async def test_failed_put_raises_store_write_error(ranked_store: RankedProfileStoreFake) -> None:
    ranked_store.fail_put = True
    with pytest.raises(StoreWriteError) as excinfo:
        await RankedRaceService(ranked_store).record_result("unlucky", place=2, field_size=5, now=NOW)

    assert excinfo.value.operation == "ranked_put"
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert "unlucky" not in ranked_store.profiles
