"""Unit tests for :mod:`run_together.domain.pace`."""

from __future__ import annotations

import doctest

import pytest

from run_together.domain import pace
from run_together.domain.models import DistanceUnit
from run_together.domain.pace import (
    NO_PACE,
    DeltaClock,
    advance_distance,
    average_pace_minutes,
    compute_pace,
    format_elapsed,
    format_pace_minutes,
    pace_from_speed,
    pace_seconds,
    speed_from_pace,
)


def test_doctests_pass() -> None:
    """Ensure doctests stay in sync with implementation."""

    results = doctest.testmod(pace)
    assert results.failed == 0


@pytest.mark.parametrize(
    ("speed", "unit", "expected"),
    [
        (4.0, DistanceUnit.KILOMETERS, "4:10"),
        (2.5, DistanceUnit.KILOMETERS, "6:40"),
        (3.0, DistanceUnit.MILES, "8:56"),
        (10.0, DistanceUnit.KILOMETERS, "1:40"),
    ],
)
def test_compute_pace_truncates_seconds(speed: float, unit: DistanceUnit, expected: str) -> None:
    assert compute_pace(speed, unit) == expected


@pytest.mark.parametrize("speed", [0.0, 0.05, 0.1, -3.0])
def test_idle_speeds_have_no_pace(speed: float) -> None:
    assert compute_pace(speed, DistanceUnit.KILOMETERS) == NO_PACE
    assert pace_seconds(speed, DistanceUnit.KILOMETERS) is None
    assert pace_from_speed(speed, DistanceUnit.KILOMETERS) is None


def test_pace_and_speed_conversions_agree() -> None:
    speed = speed_from_pace(5.0, DistanceUnit.MILES)
    assert speed == pytest.approx(1609.34 / 300)
    assert pace_from_speed(speed, DistanceUnit.MILES) == pytest.approx(5.0)
    assert speed_from_pace(0, DistanceUnit.MILES) == 0.0


def test_format_pace_minutes() -> None:
    assert format_pace_minutes(4.25) == "4:15"
    assert format_pace_minutes(None) == NO_PACE
    assert format_pace_minutes(-1.0) == NO_PACE


def test_advance_distance_caps_at_capacity_and_ignores_negative_input() -> None:
    assert advance_distance(0.0, 3.0, 10.0, 5000.0) == pytest.approx(30.0)
    assert advance_distance(4990.0, 3.0, 10.0, 5000.0) == 5000.0
    assert advance_distance(100.0, 3.0, -5.0, 5000.0) == 100.0
    assert advance_distance(100.0, -3.0, 5.0, 5000.0) == 100.0


def test_average_pace_requires_positive_inputs() -> None:
    assert average_pace_minutes(1000.0, 300.0, DistanceUnit.KILOMETERS) == pytest.approx(5.0)
    assert average_pace_minutes(0.0, 300.0, DistanceUnit.KILOMETERS) is None
    assert average_pace_minutes(1000.0, 0.0, DistanceUnit.KILOMETERS) is None


def test_delta_clock_first_tick_is_zero_and_clamps_backwards_time() -> None:
    clock = DeltaClock()
    assert clock.advance(50.0) == 0.0
    assert clock.advance(52.5) == pytest.approx(2.5)
    assert clock.advance(51.0) == 0.0
    clock.reset()
    assert clock.advance(80.0) == 0.0


def test_format_elapsed() -> None:
    assert format_elapsed(0) == "0:00"
    assert format_elapsed(61.9) == "1:01"
    assert format_elapsed(-4.0) == "0:00"
