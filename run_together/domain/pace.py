"""Pace and distance helpers for the race engine.

All public functions are pure. Speeds are metres per second, distances are
metres and paces are expressed per :class:`DistanceUnit` (kilometre or
mile). The functions are covered by doctests and pytest unit tests, and are
used by the reconciler for both the local runner and remote opponents.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .models import DistanceUnit

NO_PACE = "--:--"
MIN_MOVING_SPEED_MPS = 0.1


def _format_minutes_seconds(total_seconds: float) -> str:
    minutes = int(total_seconds // 60)
    seconds = int(total_seconds - minutes * 60)
    return f"{minutes}:{seconds:02d}"


def pace_seconds(speed_mps: float, unit: DistanceUnit) -> Optional[float]:
    """Return seconds per unit for ``speed_mps`` or ``None`` when idle.

    >>> pace_seconds(4.0, DistanceUnit.KILOMETERS)
    250.0
    >>> pace_seconds(0.05, DistanceUnit.KILOMETERS) is None
    True
    """

    if speed_mps is None or not math.isfinite(speed_mps) or speed_mps <= MIN_MOVING_SPEED_MPS:
        return None
    return unit.meters / speed_mps


def compute_pace(speed_mps: float, unit: DistanceUnit) -> str:
    """Return display pace ``M:SS`` for ``speed_mps``.

    Fractional seconds are truncated; idle speeds produce ``--:--``.

    >>> compute_pace(4.0, DistanceUnit.KILOMETERS)
    '4:10'
    >>> compute_pace(3.0, DistanceUnit.MILES)
    '8:56'
    >>> compute_pace(0.1, DistanceUnit.KILOMETERS)
    '--:--'
    """

    seconds = pace_seconds(speed_mps, unit)
    if seconds is None:
        return NO_PACE
    return _format_minutes_seconds(seconds)


def format_pace_minutes(pace_minutes: Optional[float]) -> str:
    """Format a pace already expressed in minutes per unit.

    >>> format_pace_minutes(5.5)
    '5:30'
    >>> format_pace_minutes(0)
    '--:--'
    """

    if pace_minutes is None or not math.isfinite(pace_minutes) or pace_minutes <= 0:
        return NO_PACE
    return _format_minutes_seconds(pace_minutes * 60)


def speed_from_pace(pace_minutes: Optional[float], unit: DistanceUnit) -> float:
    """Convert minutes per unit into metres per second.

    >>> speed_from_pace(5.0, DistanceUnit.KILOMETERS)
    3.3333333333333335
    >>> speed_from_pace(None, DistanceUnit.KILOMETERS)
    0.0
    """

    if pace_minutes is None or not math.isfinite(pace_minutes) or pace_minutes <= 0:
        return 0.0
    return unit.meters / (pace_minutes * 60)


def pace_from_speed(speed_mps: float, unit: DistanceUnit) -> Optional[float]:
    """Convert metres per second into minutes per unit (``None`` when idle)."""

    seconds = pace_seconds(speed_mps, unit)
    return None if seconds is None else seconds / 60


def average_pace_minutes(
    distance_meters: float, elapsed_seconds: float, unit: DistanceUnit
) -> Optional[float]:
    """Return average pace over a finished effort.

    >>> average_pace_minutes(5000, 1500, DistanceUnit.KILOMETERS)
    5.0
    """

    if distance_meters <= 0 or elapsed_seconds <= 0:
        return None
    return (elapsed_seconds / 60) / (distance_meters / unit.meters)


def advance_distance(
    previous_distance: float,
    speed_mps: float,
    delta_seconds: float,
    capacity: float,
) -> float:
    """Return new cumulative distance capped at ``capacity``.

    >>> advance_distance(100.0, 3.0, 2.0, 5000.0)
    106.0
    >>> advance_distance(4999.0, 3.0, 2.0, 5000.0)
    5000.0
    >>> advance_distance(10.0, -1.0, 2.0, 5000.0)
    10.0
    """

    step = max(speed_mps, 0.0) * max(delta_seconds, 0.0)
    return min(previous_distance + step, capacity)


def format_elapsed(seconds: Optional[float]) -> str:
    """Format elapsed race time as ``M:SS`` (empty for unknown).

    >>> format_elapsed(1234.9)
    '20:34'
    >>> format_elapsed(None)
    ''
    """

    if seconds is None:
        return ""
    return _format_minutes_seconds(max(seconds, 0.0))


@dataclass
class DeltaClock:
    """Caller-owned bookkeeping of the previous tick timestamp.

    The first call returns ``0.0`` so a session never starts with a spurious
    jump in distance.

    >>> clock = DeltaClock()
    >>> clock.advance(100.0)
    0.0
    >>> clock.advance(100.5)
    0.5
    >>> clock.advance(99.0)
    0.0
    """

    last_tick_at: Optional[float] = None

    def advance(self, now: float) -> float:
        previous = self.last_tick_at
        self.last_tick_at = now
        if previous is None:
            return 0.0
        return max(now - previous, 0.0)

    def reset(self) -> None:
        self.last_tick_at = None
