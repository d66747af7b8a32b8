"""Tier-based opponent compatibility predicates."""

from __future__ import annotations

from typing import Iterable

from .models import RankedProfile, RankTier

DEFAULT_SPREAD = 1


def can_match(tier_a: RankTier, tier_b: RankTier, max_spread: int = DEFAULT_SPREAD) -> bool:
    """Return ``True`` when the tiers are at most ``max_spread`` apart.

    >>> can_match(RankTier.GOLD, RankTier.PLATINUM)
    True
    >>> can_match(RankTier.BRONZE, RankTier.GOLD)
    False
    """

    return abs(int(tier_a) - int(tier_b)) <= max_spread


def tier_range(tier: RankTier, spread: int = DEFAULT_SPREAD) -> list[RankTier]:
    """Return acceptable tiers around ``tier``, clamped to the ladder.

    >>> [t.label for t in tier_range(RankTier.BRONZE)]
    ['Bronze', 'Silver']
    >>> [t.label for t in tier_range(RankTier.CHAMPION, spread=2)]
    ['Platinum', 'Diamond', 'Champion']
    """

    low = max(int(RankTier.BRONZE), int(tier) - spread)
    high = min(int(RankTier.CHAMPION), int(tier) + spread)
    return [RankTier(value) for value in range(low, high + 1)]


def compatible_profiles(
    profile: RankedProfile,
    candidates: Iterable[RankedProfile],
    max_spread: int = DEFAULT_SPREAD,
) -> list[RankedProfile]:
    """Return candidates (other than ``profile`` itself) within tier spread."""

    return [
        candidate
        for candidate in candidates
        if candidate.user_id != profile.user_id
        and can_match(profile.tier, candidate.tier, max_spread)
    ]
