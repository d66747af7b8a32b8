"""Apply ranked race results to the League-Points ladder."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from run_together.application.ports import RankedProfileStore
from run_together.domain.errors import StoreWriteError
from run_together.domain.models import LPChange
from run_together.domain.ranking import apply_delta, compute_delta, describe_change, new_profile
from utils.logger import get_logger

logger = get_logger(__name__)

TOP_THREE = 3


class RankedRaceService:
    """Load, update and persist a runner's ladder standing."""

    def __init__(self, store: RankedProfileStore) -> None:
        self._store = store

    async def record_result(
        self,
        user_id: str,
        place: int,
        field_size: int,
        now: Optional[datetime] = None,
    ) -> LPChange:
        """Apply one finish to the ladder.

        Raises:
            StoreWriteError: When loading or persisting the profile fails.
        """

        stamp = now or datetime.now(timezone.utc)
        try:
            previous = await self._store.get(user_id)
        except Exception as exc:
            raise StoreWriteError("ranked_get", f"Could not load ranked profile: {exc}") from exc
        if previous is None:
            previous = new_profile(user_id, now=stamp)

        delta = compute_delta(place, field_size)
        updated = apply_delta(previous, delta, now=stamp)
        top_three = place <= TOP_THREE and field_size > 1
        updated = replace(
            updated,
            total_races=previous.total_races + 1,
            top_three_finishes=previous.top_three_finishes + (1 if top_three else 0),
        )

        try:
            stored = await self._store.put(updated)
        except Exception as exc:
            logger.error(
                "Failed to persist ranked profile: %s",
                exc,
                extra={"user_id": user_id, "event": "ranked_put"},
            )
            raise StoreWriteError("ranked_put", f"Could not save ranked profile: {exc}") from exc

        change = describe_change(previous, stored, delta)
        logger.info(
            "Ranked result recorded: %s",
            change.message,
            extra={"user_id": user_id, "event": "ranked_result"},
        )
        return change
