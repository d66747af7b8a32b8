"""Leaderboard ordering strategies.

A strategy is a plain comparator over two :class:`RunnerView` rows, the same
contract :func:`functools.cmp_to_key` expects. The reconciler receives one by
injection so race and casual modes share all reconciliation code.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Callable, Iterable

from .models import RunnerView

LeaderboardOrdering = Callable[[RunnerView, RunnerView], int]


def _compare(left: object, right: object) -> int:
    return (left > right) - (left < right)  # type: ignore[operator]


def race_ordering(a: RunnerView, b: RunnerView) -> int:
    """Finished runners by finish time, then active runners by distance."""

    if a.is_finished and b.is_finished:
        return _compare(a.finish_time_seconds, b.finish_time_seconds) or _compare(
            a.user_id, b.user_id
        )
    if a.is_finished:
        return -1
    if b.is_finished:
        return 1
    return _compare(b.distance_meters, a.distance_meters) or _compare(a.user_id, b.user_id)


def casual_ordering(a: RunnerView, b: RunnerView) -> int:
    """Fastest current pace first; runners without a pace go last."""

    if a.pace_seconds is not None and b.pace_seconds is not None:
        result = _compare(a.pace_seconds, b.pace_seconds)
        if result:
            return result
    elif a.pace_seconds is not None:
        return -1
    elif b.pace_seconds is not None:
        return 1
    return _compare(b.distance_meters, a.distance_meters) or _compare(a.user_id, b.user_id)


def sort_runners(
    runners: Iterable[RunnerView], ordering: LeaderboardOrdering = race_ordering
) -> tuple[RunnerView, ...]:
    """Return ``runners`` as an immutable, ordered tuple."""

    return tuple(sorted(runners, key=cmp_to_key(ordering)))
