"""Engine tuning read from the environment."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Mapping

from run_together.domain.staleness import IN_RACE_WINDOW, POST_RACE_WINDOW

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_PUBLISH_INTERVAL = 1.0
DEFAULT_OVERTAKE_RADIUS = 10.0


def _positive_float(data: Mapping[str, str], name: str, default: float) -> float:
    raw = data.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive number, got {raw!r}")
    return value


@dataclass(slots=True, frozen=True)
class RaceSettings:
    """Timing windows and intervals used by the race session."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    in_race_window: float = IN_RACE_WINDOW
    post_race_window: float = POST_RACE_WINDOW
    publish_interval: float = DEFAULT_PUBLISH_INTERVAL
    overtake_radius: float = DEFAULT_OVERTAKE_RADIUS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RaceSettings":
        """Build settings instance from ``RACE_*`` environment variables."""

        data = os.environ if environ is None else environ
        return cls(
            poll_interval=_positive_float(data, "RACE_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            in_race_window=_positive_float(data, "RACE_IN_RACE_WINDOW", IN_RACE_WINDOW),
            post_race_window=_positive_float(data, "RACE_POST_RACE_WINDOW", POST_RACE_WINDOW),
            publish_interval=_positive_float(data, "RACE_PUBLISH_INTERVAL", DEFAULT_PUBLISH_INTERVAL),
            overtake_radius=_positive_float(data, "RACE_OVERTAKE_RADIUS", DEFAULT_OVERTAKE_RADIUS),
        )
