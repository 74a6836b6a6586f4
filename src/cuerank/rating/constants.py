"""
Rating system constants.

Race charts
-----------
Ratings are bucketed into nine skill tiers. The breakpoints are inclusive
upper bounds: a 344 is still tier 0, a 345 is tier 1, and anything above
875 is the open top tier.

Each chart stores only the upper triangle of the tier-by-tier matrix: row
``i`` holds the matchups of tier ``i`` against tiers ``i``, ``i + 1``, ...,
with the pair ordered (weaker tier's target, stronger tier's target). The
other half is read by swapping, so a chart can never disagree with itself
about who needs what.

The short chart is the 8-ball chart and the long chart is the 9-ball chart.

Rating engine
-------------
K_BASE is the stable K factor. New players are calibrated faster through the
confidence factor (see cuerank.rating.confidence), which starts at
``new_boost`` and decays toward 1.0 as confidence accumulates.
"""

# Inclusive upper bound of each tier except the open top tier
RACE_TIER_BREAKPOINTS: tuple[int, ...] = (344, 436, 499, 561, 624, 686, 749, 875)

TIER_COUNT = len(RACE_TIER_BREAKPOINTS) + 1

# Rating assumed for a player without one (and for a stored zero)
DEFAULT_RATING = 500

# Upper triangle: SHORT_RACE_CHART[weaker][stronger - weaker] = (weaker_target, stronger_target)
SHORT_RACE_CHART: tuple[tuple[tuple[int, int], ...], ...] = (
    ((3, 3), (3, 4), (3, 5), (3, 5), (3, 6), (3, 6), (3, 7), (3, 7), (2, 7)),
    ((4, 4), (4, 4), (4, 5), (4, 5), (4, 6), (3, 6), (3, 6), (3, 7)),
    ((4, 4), (4, 5), (4, 5), (4, 6), (4, 6), (3, 6), (3, 7)),
    ((5, 5), (5, 5), (4, 6), (4, 6), (4, 6), (3, 7)),
    ((5, 5), (5, 6), (4, 6), (4, 6), (4, 7)),
    ((5, 5), (5, 6), (5, 6), (4, 7)),
    ((5, 5), (5, 6), (5, 7)),
    ((6, 6), (6, 7)),
    ((7, 7),),
)

LONG_RACE_CHART: tuple[tuple[tuple[int, int], ...], ...] = (
    ((3, 3), (3, 4), (3, 4), (3, 5), (3, 5), (3, 6), (3, 6), (3, 8), (2, 8)),
    ((4, 4), (4, 5), (4, 5), (4, 6), (4, 6), (4, 7), (3, 8), (3, 8)),
    ((4, 4), (4, 5), (4, 6), (4, 6), (4, 7), (3, 8), (3, 8)),
    ((5, 5), (5, 6), (5, 6), (5, 7), (5, 8), (4, 8)),
    ((6, 6), (5, 6), (5, 7), (5, 8), (4, 8)),
    ((6, 6), (6, 7), (5, 8), (5, 8)),
    ((6, 6), (6, 8), (5, 8)),
    ((7, 7), (7, 8)),
    ((9, 9),),
)

RACE_CHARTS = {
    "short": SHORT_RACE_CHART,
    "long": LONG_RACE_CHART,
}

# Race length played in each discipline by default
DISCIPLINE_RACE_LENGTH = {
    "8ball": "short",
    "9ball": "long",
}


# Default rating engine parameters
# k_base: stable K factor
# scale: logistic spread (rating gap giving 10:1 odds)
# new_boost / confidence_threshold: K multiplier for unrated players and how
#   fast it fades (half-way at confidence == threshold)
# opponent_*: clamp and divisor for opponent strength scaling
# margin_*: margin-of-victory divisor and cap
RATING_DEFAULTS = {
    "k_base": 14.0,
    "scale": 400.0,
    "new_boost": 2.0,
    "confidence_threshold": 100.0,
    "opponent_divisor": 1000.0,
    "opponent_min": 0.85,
    "opponent_max": 1.15,
    "margin_divisor": 20.0,
    "margin_cap": 0.10,
}

# Multiplier on every delta by kind of event
EVENT_WEIGHTS = {
    "league": 1.0,
    "playoffs": 1.05,
    "tournament": 1.08,
}
