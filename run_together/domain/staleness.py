"""Staleness rules for remote participant samples."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import ParticipantSample

IN_RACE_WINDOW = 30.0
"""Seconds a remote sample stays trustworthy while the local runner races."""

POST_RACE_WINDOW = 10.0
"""Seconds a straggler sample stays trustworthy during results convergence."""


def is_stale(sample: ParticipantSample, now: float, window_seconds: float) -> bool:
    """Return ``True`` when ``sample`` is older than ``window_seconds``.

    >>> sample = ParticipantSample("u1", "u1", 0.0, last_update_at=100.0)
    >>> is_stale(sample, 131.0, IN_RACE_WINDOW)
    True
    >>> is_stale(sample, 130.0, IN_RACE_WINDOW)
    False
    """

    return (now - sample.last_update_at) > window_seconds


@dataclass(slots=True, frozen=True)
class StalenessPolicy:
    """Staleness window bound to one race phase."""

    window_seconds: float = IN_RACE_WINDOW

    def is_stale(self, sample: ParticipantSample, now: float) -> bool:
        return is_stale(sample, now, self.window_seconds)

    def partition(
        self, samples: Iterable[ParticipantSample], now: float
    ) -> tuple[list[ParticipantSample], list[ParticipantSample]]:
        """Split ``samples`` into ``(fresh, stale)`` lists."""

        fresh: list[ParticipantSample] = []
        stale: list[ParticipantSample] = []
        for sample in samples:
            (stale if self.is_stale(sample, now) else fresh).append(sample)
        return fresh, stale


IN_RACE = StalenessPolicy(IN_RACE_WINDOW)
POST_RACE = StalenessPolicy(POST_RACE_WINDOW)
