"""Realtime broadcast channel contracts."""

from __future__ import annotations

from typing import Any, AsyncIterator, Mapping, Protocol


class BroadcastSubscription(Protocol):
    """Async stream of broadcast payloads for one event name.

    Delivery is unordered and at-least-once when delivered; messages may be
    duplicated or dropped.
    """

    def __aiter__(self) -> AsyncIterator[Mapping[str, Any]]:
        """Iterate over incoming payloads until the subscription closes."""

    async def close(self) -> None:
        """Stop delivery and release the underlying channel resources."""


class BroadcastChannel(Protocol):
    """Per-race publish/subscribe channel."""

    async def publish(self, event: Mapping[str, Any]) -> None:
        """Send a sample to every other subscriber (fire-and-forget)."""

    async def subscribe(self, event_name: str) -> BroadcastSubscription:
        """Open a subscription; raises when the channel is unreachable."""
