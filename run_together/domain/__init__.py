"""Domain layer with race entities, pure rules and invariants."""

from . import errors, matchmaking, models, ordering, pace, parsing, ranking, staleness

__all__ = [
    "errors",
    "matchmaking",
    "models",
    "ordering",
    "pace",
    "parsing",
    "ranking",
    "staleness",
]
