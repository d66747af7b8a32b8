"""Error taxonomy of the race engine.

Only :class:`StoreWriteError` is meant to reach callers; the other errors are
raised and handled inside the reconciler, the results aggregator and the
session driver.
"""

from __future__ import annotations


class RaceEngineError(Exception):
    """Base class for race engine failures."""


class MalformedSampleError(RaceEngineError):
    """Broadcast payload is missing required fields or carries invalid values."""


class TimestampParseError(RaceEngineError):
    """Authoritative finish timestamp could not be parsed."""

    def __init__(self, raw: object) -> None:
        super().__init__(f"Unparseable finish timestamp: {raw!r}")
        self.raw = raw


class LookupFailure(RaceEngineError):
    """Profile metadata could not be resolved for a participant."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Profile lookup failed for {user_id}")
        self.user_id = user_id


class ChannelUnavailable(RaceEngineError):
    """Broadcast subscription could not be established."""


class StoreWriteError(RaceEngineError):
    """Persisting a race result or ranked profile failed."""

    def __init__(self, operation: str, message: str | None = None) -> None:
        super().__init__(message or f"Store write '{operation}' failed")
        self.operation = operation
