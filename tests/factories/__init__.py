"""Factories for domain models used in tests."""

from .domain import ParticipantRecordFactory, RankedProfileFactory, RunnerViewFactory

__all__ = [
    "ParticipantRecordFactory",
    "RankedProfileFactory",
    "RunnerViewFactory",
]
