"""
Rating system module.

Implements the league rating and handicap machinery:
- Fixed race-to charts by skill tier (short / long races)
- BBRS rating calculator (Elo with confidence, opponent, margin and
  event-weight multipliers)
- Confidence scaling for new players
- Named, persisted parameter sets
"""

from cuerank.rating.calculator import RatingCalculator, RatingParams, RatingUpdate
from cuerank.rating.confidence import calculate_confidence_factor, confidence_increment
from cuerank.rating.constants import DEFAULT_RATING, RACE_CHARTS, RACE_TIER_BREAKPOINTS
from cuerank.rating.params_store import get_active_rating_params, persist_rating_params
from cuerank.rating.race import (
    breakpoint_level,
    compute_race_targets,
    race_targets,
    tier_for_rating,
)

__all__ = [
    "RatingCalculator",
    "RatingParams",
    "RatingUpdate",
    "calculate_confidence_factor",
    "confidence_increment",
    "DEFAULT_RATING",
    "RACE_CHARTS",
    "RACE_TIER_BREAKPOINTS",
    "get_active_rating_params",
    "persist_rating_params",
    "breakpoint_level",
    "compute_race_targets",
    "race_targets",
    "tier_for_rating",
]
