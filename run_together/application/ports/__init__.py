"""Ports define the contracts between the race engine and its adapters."""

from .broadcast import BroadcastChannel, BroadcastSubscription
from .repositories import AuthoritativeStore, ProfileLookup, RankedProfileStore
from .storage import RaceStorage

__all__ = [
    "AuthoritativeStore",
    "BroadcastChannel",
    "BroadcastSubscription",
    "ProfileLookup",
    "RaceStorage",
    "RankedProfileStore",
]
