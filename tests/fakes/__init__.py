"""In-memory fakes for external integrations used in tests."""

from .broadcast import BroadcastChannelFake, BroadcastSubscriptionFake
from .clock import ManualClock
from .stores import AuthoritativeStoreFake, ProfileLookupFake, RankedProfileStoreFake

__all__ = [
    "AuthoritativeStoreFake",
    "BroadcastChannelFake",
    "BroadcastSubscriptionFake",
    "ManualClock",
    "ProfileLookupFake",
    "RankedProfileStoreFake",
]
