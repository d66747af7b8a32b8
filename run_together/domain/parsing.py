"""Parsers for broadcast payloads and authoritative timestamps.

>>> parse_broadcast({"payload": {"user_id": "u1", "distance": "12.5"}}).distance_meters
12.5
>>> parse_finish_timestamp("2024-05-01T10:00:30.250Z").isoformat()
'2024-05-01T10:00:30.250000+00:00'
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .errors import MalformedSampleError, TimestampParseError

_USER_ID_KEYS = ("user_id", "userId")
_DISTANCE_KEYS = ("distance", "distance_meters", "distanceMeters")
_PACE_KEYS = ("pace", "pace_minutes", "paceMinutesPerUnit")
_SPEED_KEYS = ("speed", "speed_mps", "speedMps")


@dataclass(slots=True, frozen=True)
class BroadcastSample:
    """Validated content of one realtime broadcast message."""

    user_id: str
    distance_meters: float
    pace_minutes_per_unit: Optional[float] = None
    speed_mps: Optional[float] = None


def _first(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _optional_float(value: Any, field: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedSampleError(f"Field '{field}' is not numeric: {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedSampleError(f"Field '{field}' is not finite: {value!r}")
    return number


def parse_broadcast(message: Mapping[str, Any]) -> BroadcastSample:
    """Validate a raw broadcast message.

    Messages may carry the fields directly or nested under ``payload``.

    Raises:
        MalformedSampleError: When the user id or distance is missing or invalid.
    """

    if not isinstance(message, Mapping):
        raise MalformedSampleError(f"Broadcast message is not a mapping: {type(message)!r}")

    payload = message.get("payload", message)
    if not isinstance(payload, Mapping):
        raise MalformedSampleError("Broadcast payload is not a mapping")

    raw_user_id = _first(payload, _USER_ID_KEYS)
    user_id = str(raw_user_id).strip() if raw_user_id is not None else ""
    if not user_id:
        raise MalformedSampleError("Broadcast payload has no user id")

    distance = _optional_float(_first(payload, _DISTANCE_KEYS), "distance")
    if distance is None:
        raise MalformedSampleError("Broadcast payload has no distance")
    if distance < 0:
        raise MalformedSampleError(f"Negative distance {distance!r}")

    pace = _optional_float(_first(payload, _PACE_KEYS), "pace")
    speed = _optional_float(_first(payload, _SPEED_KEYS), "speed")

    return BroadcastSample(
        user_id=user_id,
        distance_meters=distance,
        pace_minutes_per_unit=pace if pace is not None and pace > 0 else None,
        speed_mps=speed if speed is not None and speed >= 0 else None,
    )


def parse_finish_timestamp(raw: Any) -> datetime:
    """Parse an ISO-8601 timestamp from the authoritative store.

    Naive timestamps are treated as UTC.

    Raises:
        TimestampParseError: When ``raw`` is not a valid ISO-8601 value.
    """

    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise TimestampParseError(raw) from exc
    else:
        raise TimestampParseError(raw)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def finish_elapsed_seconds(raw: Any, race_started_at: float) -> float:
    """Return seconds between race start (epoch) and the finish timestamp.

    Finish stamps that precede the race start clamp to ``0.0``.

    >>> finish_elapsed_seconds("1970-01-01T00:10:00+00:00", 60.0)
    540.0
    """

    finished_at = parse_finish_timestamp(raw)
    return max(finished_at.timestamp() - race_started_at, 0.0)
