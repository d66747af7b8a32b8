"""Domain entities shared between the race engine and its adapters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Union


class DistanceUnit(str, Enum):
    """Display unit for pace, fixed per race at creation."""

    KILOMETERS = "km"
    MILES = "mi"

    @property
    def meters(self) -> float:
        return 1609.34 if self is DistanceUnit.MILES else 1000.0


class RacePhase(str, Enum):
    """Lifecycle of a single reconciler instance."""

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    FINISHED = "finished"
    CLOSED = "closed"


@dataclass(slots=True, frozen=True)
class LocalRunner:
    """Identity of the runner using this device."""

    user_id: str


@dataclass(slots=True, frozen=True)
class RemoteRunner:
    """Identity of an opponent observed through the broadcast channel or store."""

    user_id: str


Identity = Union[LocalRunner, RemoteRunner]


@dataclass(slots=True, frozen=True)
class RunnerMetadata:
    """Cosmetic profile data resolved through the profile lookup."""

    display_name: str
    sprite_url: Optional[str] = None
    country_code: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ParticipantSample:
    """Latest realtime state known for one participant.

    ``last_update_at`` is the local arrival time (epoch seconds), never the
    sender's clock.
    """

    user_id: str
    display_name: str
    distance_meters: float
    last_update_at: float
    pace_minutes_per_unit: Optional[float] = None
    speed_mps: float = 0.0
    sprite_url: Optional[str] = None
    country_code: Optional[str] = None
    metadata_resolved: bool = False


@dataclass(slots=True, frozen=True)
class RunnerView:
    """Immutable leaderboard row handed to readers."""

    identity: Identity
    display_name: str
    distance_meters: float
    pace: str
    pace_seconds: Optional[float] = None
    speed_mps: float = 0.0
    finish_time_seconds: Optional[float] = None
    sprite_url: Optional[str] = None
    country_code: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def is_local(self) -> bool:
        return isinstance(self.identity, LocalRunner)

    @property
    def is_finished(self) -> bool:
        return self.finish_time_seconds is not None


@dataclass(slots=True, frozen=True)
class ParticipantRecord:
    """Row of the authoritative race participants table."""

    user_id: str
    distance_meters: float = 0.0
    finish_time: Optional[str] = None
    average_pace: Optional[float] = None
    place: Optional[int] = None
    disconnected: bool = False


@dataclass(slots=True, frozen=True)
class LocalFinishState:
    """Whether the local runner has crossed the line, and when."""

    finished: bool
    finish_time_seconds: Optional[float] = None


class RaceEventKind(str, Enum):
    """Notable transitions emitted by the reconciler."""

    LOCAL_FINISHED = "local_finished"
    REMOTE_FINISHED = "remote_finished"
    OVERTOOK = "overtook"
    OVERTAKEN = "overtaken"


@dataclass(slots=True, frozen=True)
class RaceEvent:
    """Event published to an optional listener for external consumption."""

    kind: RaceEventKind
    user_id: str
    at: float
    finish_time_seconds: Optional[float] = None


class RankTier(IntEnum):
    """Ordered ladder tiers (0..5)."""

    BRONZE = 0
    SILVER = 1
    GOLD = 2
    PLATINUM = 3
    DIAMOND = 4
    CHAMPION = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def has_divisions(self) -> bool:
        return self is not RankTier.CHAMPION

    @classmethod
    def from_label(cls, value: str) -> "RankTier":
        try:
            return cls[value.strip().upper()]
        except KeyError as exc:
            raise ValueError(f"Unknown rank tier '{value}'") from exc


class RankDivision(IntEnum):
    """Divisions inside a tier; IV is the entry division, I the last."""

    IV = 4
    III = 3
    II = 2
    I = 1  # noqa: E741

    @property
    def display_name(self) -> str:
        return self.name


@dataclass(slots=True, frozen=True)
class RankedProfile:
    """Ladder standing of one user."""

    user_id: str
    tier: RankTier = RankTier.BRONZE
    division: Optional[RankDivision] = RankDivision.IV
    league_points: int = 0
    hidden_rating: Optional[int] = None
    top_three_finishes: int = 0
    total_races: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display(self) -> str:
        """Human readable rank, e.g. ``Gold II — 64 LP``."""

        if self.tier is RankTier.CHAMPION:
            return f"Champion — {self.league_points} LP"
        if self.division is not None:
            return f"{self.tier.label} {self.division.display_name} — {self.league_points} LP"
        return f"{self.tier.label} — {self.league_points} LP"

    @property
    def top_three_rate(self) -> float:
        if self.total_races <= 0:
            return 0.0
        return self.top_three_finishes / self.total_races * 100.0


@dataclass(slots=True, frozen=True)
class LPChange:
    """Outcome of applying one race result to a ranked profile."""

    previous: RankedProfile
    current: RankedProfile
    delta: int
    promoted: bool
    demoted: bool
    message: str
