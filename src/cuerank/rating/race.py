"""
Race-to calculator.

Maps two ratings onto the fixed race charts. Both functions here are pure
lookups; nothing is interpolated.

    >>> compute_race_targets(309, 495)["short"]
    (3, 5)
    >>> compute_race_targets(495, 309)["short"]
    (5, 3)
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Optional, Union

from cuerank.rating.constants import (
    DEFAULT_RATING,
    RACE_CHARTS,
    RACE_TIER_BREAKPOINTS,
)

Number = Union[int, float, Decimal]


def _effective_rating(rating: Optional[Number]) -> Number:
    # An unrated player is stored as NULL or 0 depending on where it came from
    if rating is None or rating == 0:
        return DEFAULT_RATING
    return rating


def tier_for_rating(rating: Optional[Number]) -> int:
    """
    Skill tier (0-8) for a rating.

    Ratings below the lowest breakpoint fall in tier 0, ratings above the
    highest fall in the open top tier; neither is an error.
    """
    value = _effective_rating(rating)
    for tier, upper_bound in enumerate(RACE_TIER_BREAKPOINTS):
        if value <= upper_bound:
            return tier
    return len(RACE_TIER_BREAKPOINTS)


def race_for_tiers(tier_a: int, tier_b: int, race_length: str = "short") -> tuple[int, int]:
    """Targets (a, b) for a tier pairing, read from the upper-triangle chart."""
    try:
        chart = RACE_CHARTS[race_length]
    except KeyError:
        raise ValueError(f"Unknown race length: {race_length}") from None

    if tier_a <= tier_b:
        return chart[tier_a][tier_b - tier_a]
    target_b, target_a = chart[tier_b][tier_a - tier_b]
    return target_a, target_b


def race_targets(
    rating_a: Optional[Number],
    rating_b: Optional[Number],
    race_length: str = "short",
) -> tuple[int, int]:
    """Race targets (a, b) for one race length."""
    return race_for_tiers(tier_for_rating(rating_a), tier_for_rating(rating_b), race_length)


def compute_race_targets(
    rating_a: Optional[Number],
    rating_b: Optional[Number],
) -> dict[str, tuple[int, int]]:
    """
    Race targets for both race lengths.

    Returns:
        {"short": (target_a, target_b), "long": (target_a, target_b)}
    """
    tier_a = tier_for_rating(rating_a)
    tier_b = tier_for_rating(rating_b)
    return {length: race_for_tiers(tier_a, tier_b, length) for length in RACE_CHARTS}


def breakpoint_level(rating: Optional[Number]) -> str:
    """
    Display level for a rating: one decimal, truncated.

    >>> breakpoint_level(Decimal("549.93"))
    '5.4'
    >>> breakpoint_level(None)
    '5.0'
    """
    value = _effective_rating(rating)
    level = math.floor(Decimal(str(value)) / 10) / 10
    return f"{level:.1f}"
