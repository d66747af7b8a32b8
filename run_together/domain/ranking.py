"""League-Points ladder: LP deltas, promotion and demotion.

The ladder has five tiers with four divisions each (IV → I) and a terminal
Champion tier without divisions. Non-Champion profiles hold ``[0, 100)`` LP;
crossing 100 promotes one division, dropping below 0 demotes one division.
Bronze IV at 0 LP is the floor. Champion LP is an unbounded sort score.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .models import LPChange, RankDivision, RankedProfile, RankTier

POINTS_PER_DIVISION = 100
MAX_GAIN = 28.0
MIN_LOSS = -18.0
FULL_FIELD_SIZE = 8
WIN_BONUS = 2
RUNNER_UP_BONUS = 1
LAST_PLACE_PENALTY = 1
STARTING_HIDDEN_RATING = 1000


def _round_half_away_from_zero(value: float) -> int:
    """Round like a schoolbook, not like :func:`round`.

    >>> _round_half_away_from_zero(2.5), _round_half_away_from_zero(-2.5)
    (3, -3)
    >>> _round_half_away_from_zero(-14.4)
    -14
    """

    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_delta(place: int, field_size: int) -> int:
    """Return the LP delta for finishing ``place`` out of ``field_size`` runners.

    >>> compute_delta(1, 1)
    0
    >>> compute_delta(1, 8)
    30
    >>> compute_delta(4, 4)
    -15
    """

    if field_size <= 1:
        return 0

    clamped_place = max(1, min(place, field_size))
    relative_standing = (field_size - clamped_place) / (field_size - 1)
    base = MIN_LOSS + relative_standing * (MAX_GAIN - MIN_LOSS)
    size_scale = 0.6 + 0.4 * min(1.0, field_size / FULL_FIELD_SIZE)
    points = base * size_scale

    if clamped_place == 1:
        points += WIN_BONUS
    elif clamped_place == 2 and field_size >= 3:
        points += RUNNER_UP_BONUS

    if clamped_place == field_size and field_size > 2:
        points -= LAST_PLACE_PENALTY

    return _round_half_away_from_zero(points)


def new_profile(user_id: str, now: Optional[datetime] = None) -> RankedProfile:
    """Return the starting ladder position for a first ranked race."""

    stamp = now or _utcnow()
    return RankedProfile(
        user_id=user_id,
        tier=RankTier.BRONZE,
        division=RankDivision.IV,
        league_points=0,
        hidden_rating=STARTING_HIDDEN_RATING,
        created_at=stamp,
        updated_at=stamp,
    )


def _promote(tier: RankTier, division: RankDivision) -> tuple[RankTier, Optional[RankDivision]]:
    if division is not RankDivision.I:
        return tier, RankDivision(division - 1)
    next_tier = RankTier(tier + 1)
    if next_tier is RankTier.CHAMPION:
        return next_tier, None
    return next_tier, RankDivision.IV


def _demote(tier: RankTier, division: RankDivision) -> tuple[RankTier, RankDivision]:
    if division is not RankDivision.IV:
        return tier, RankDivision(division + 1)
    return RankTier(tier - 1), RankDivision.I


def apply_delta(
    profile: RankedProfile, delta: int, now: Optional[datetime] = None
) -> RankedProfile:
    """Return ``profile`` after applying ``delta`` LP with promotion/demotion."""

    stamp = now or _utcnow()

    if profile.tier is RankTier.CHAMPION:
        return replace(
            profile,
            division=None,
            league_points=profile.league_points + delta,
            updated_at=stamp,
        )

    tier = profile.tier
    division = profile.division or RankDivision.IV
    points = profile.league_points + delta

    while points >= POINTS_PER_DIVISION and tier is not RankTier.CHAMPION:
        points -= POINTS_PER_DIVISION
        tier, promoted_division = _promote(tier, division)
        if promoted_division is None:
            return replace(
                profile,
                tier=tier,
                division=None,
                league_points=points,
                updated_at=stamp,
            )
        division = promoted_division

    while points < 0:
        if tier is RankTier.BRONZE and division is RankDivision.IV:
            points = 0
            break
        points += POINTS_PER_DIVISION
        tier, division = _demote(tier, division)

    return replace(
        profile,
        tier=tier,
        division=division,
        league_points=points,
        updated_at=stamp,
    )


def _standing(profile: RankedProfile) -> tuple[int, int]:
    division_rank = 0 if profile.division is None else RankDivision.IV - profile.division
    return int(profile.tier), int(division_rank)


def rank_value(profile: RankedProfile) -> int:
    """Return a single sortable score (higher is better).

    >>> rank_value(RankedProfile("u", RankTier.GOLD, RankDivision.II, 64))
    1064
    """

    tier, division_rank = _standing(profile)
    return tier * 4 * POINTS_PER_DIVISION + division_rank * POINTS_PER_DIVISION + profile.league_points


def describe_change(previous: RankedProfile, current: RankedProfile, delta: int) -> LPChange:
    """Summarise a ladder update for display."""

    promoted = _standing(current) > _standing(previous)
    demoted = _standing(current) < _standing(previous)
    rank_label = current.display.split(" — ")[0]

    if promoted:
        message = f"Promoted to {rank_label}! ({delta:+d} LP)"
    elif demoted:
        message = f"Demoted to {rank_label} ({delta:+d} LP)"
    elif delta != 0:
        message = f"{delta:+d} LP"
    else:
        message = "No LP change"

    return LPChange(
        previous=previous,
        current=current,
        delta=delta,
        promoted=promoted,
        demoted=demoted,
        message=message,
    )
