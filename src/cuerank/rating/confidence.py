"""
Confidence scaling for new and established players.

A player with no recorded racks should reach their true rating quickly, so
their K factor is boosted. As confidence accumulates the boost fades toward
1.0 and ratings settle:

    factor = 1 + (new_boost - 1) * T / (T + confidence)

With the defaults (new_boost 2.0, T 100) a brand-new player moves at twice
the stable rate, a player with 100 confidence at 1.5x, and a player at the
1000 cap at about 1.09x.

Confidence itself only ever grows: each finalized slot adds the racks played
in it, up to ``confidence_max``.
"""

from decimal import Decimal
from typing import Optional

from cuerank.rating.constants import RATING_DEFAULTS


def calculate_confidence_factor(
    confidence: int,
    new_boost: Optional[float] = None,
    threshold: Optional[float] = None,
) -> Decimal:
    """
    K-factor multiplier for a player's current confidence.

    Args:
        confidence: Accumulated confidence (0 for a new player)
        new_boost: Multiplier at zero confidence. Default from RATING_DEFAULTS.
        threshold: Confidence at which half the boost remains.
                   Default from RATING_DEFAULTS.

    Returns:
        Multiplier in (1.0, new_boost]

    Examples:
        calculate_confidence_factor(0)     # -> 2.0
        calculate_confidence_factor(100)   # -> 1.5
    """
    if new_boost is None:
        new_boost = RATING_DEFAULTS["new_boost"]
    if threshold is None:
        threshold = RATING_DEFAULTS["confidence_threshold"]

    boost = Decimal(str(new_boost))
    t = Decimal(str(threshold))
    conf = Decimal(max(0, int(confidence or 0)))
    if t + conf == 0:
        return Decimal("1")
    return Decimal("1") + (boost - 1) * t / (t + conf)


def confidence_increment(current: int, racks_played: int, maximum: int) -> int:
    """
    How much confidence a finalized slot adds.

    Never negative and never pushes confidence past ``maximum``. The value
    returned is the one stored on the audit record and subtracted on reset.
    """
    room = max(0, maximum - max(0, current or 0))
    return max(0, min(racks_played, room))
