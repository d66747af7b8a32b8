"""Domain data transfer objects used across the race engine."""

from .entities import (
    DistanceUnit,
    Identity,
    LocalFinishState,
    LocalRunner,
    LPChange,
    ParticipantRecord,
    ParticipantSample,
    RaceEvent,
    RaceEventKind,
    RacePhase,
    RankDivision,
    RankedProfile,
    RankTier,
    RemoteRunner,
    RunnerMetadata,
    RunnerView,
)

__all__ = [
    "DistanceUnit",
    "Identity",
    "LocalFinishState",
    "LocalRunner",
    "LPChange",
    "ParticipantRecord",
    "ParticipantSample",
    "RaceEvent",
    "RaceEventKind",
    "RacePhase",
    "RankDivision",
    "RankedProfile",
    "RankTier",
    "RemoteRunner",
    "RunnerMetadata",
    "RunnerView",
]
