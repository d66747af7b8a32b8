"""Unit tests for broadcast and timestamp parsing."""

from __future__ import annotations

import doctest
import math
from datetime import timezone

import pytest

from run_together.domain import parsing
from run_together.domain.errors import MalformedSampleError, TimestampParseError
from run_together.domain.parsing import (
    finish_elapsed_seconds,
    parse_broadcast,
    parse_finish_timestamp,
)


def test_doctests_pass() -> None:
    results = doctest.testmod(parsing)
    assert results.failed == 0


def test_parse_nested_payload_with_aliases() -> None:
    sample = parse_broadcast(
        {"event": "runner_progress", "payload": {"userId": "u7", "distanceMeters": 42, "speedMps": "3.5"}}
    )
    assert sample.user_id == "u7"
    assert sample.distance_meters == 42.0
    assert sample.speed_mps == 3.5
    assert sample.pace_minutes_per_unit is None


def test_parse_flat_payload() -> None:
    sample = parse_broadcast({"user_id": 12, "distance": 0, "pace": 5.25})
    assert sample.user_id == "12"
    assert sample.distance_meters == 0.0
    assert sample.pace_minutes_per_unit == 5.25


def test_non_positive_pace_and_negative_speed_are_dropped() -> None:
    sample = parse_broadcast({"user_id": "u", "distance": 10, "pace": 0, "speed": -2})
    assert sample.pace_minutes_per_unit is None
    assert sample.speed_mps is None


@pytest.mark.parametrize(
    "message",
    [
        {"payload": {"distance": 10}},
        {"payload": {"user_id": "  ", "distance": 10}},
        {"payload": {"user_id": "u"}},
        {"payload": {"user_id": "u", "distance": "far"}},
        {"payload": {"user_id": "u", "distance": -1}},
        {"payload": {"user_id": "u", "distance": math.nan}},
        {"payload": {"user_id": "u", "distance": 10, "pace": "inf"}},
        {"payload": "not-a-mapping"},
        ["not", "a", "mapping"],
    ],
)
def test_malformed_broadcasts_raise(message) -> None:
    with pytest.raises(MalformedSampleError):
        parse_broadcast(message)


def test_timestamp_parsing_normalises_to_utc() -> None:
    assert parse_finish_timestamp("2024-05-01T12:00:00+02:00").hour == 10
    naive = parse_finish_timestamp("2024-05-01T12:00:00")
    assert naive.tzinfo == timezone.utc


@pytest.mark.parametrize("raw", ["", "yesterday", None, 17, "2024-13-40T00:00:00Z"])
def test_bad_timestamps_raise(raw) -> None:
    with pytest.raises(TimestampParseError) as excinfo:
        parse_finish_timestamp(raw)
    assert excinfo.value.raw == raw


def test_finish_before_start_clamps_to_zero() -> None:
    assert finish_elapsed_seconds("1970-01-01T00:00:10Z", 60.0) == 0.0
    assert finish_elapsed_seconds("1970-01-01T00:02:00Z", 60.0) == 60.0
