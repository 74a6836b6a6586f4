"""
Rating calculator for league pool.

Implements the BBRS formula, an Elo variant with four multipliers:

  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / S))
  Base delta:     D_A = K * (actual_A - E_A)
  Final delta:    D_A * confidence_A * opponent_A * margin * event_weight

Where:
  confidence_A  = boost for players with little history (see confidence.py)
  opponent_A    = 1 + (R_B - R_A) / 1000 for the winner, 1 - (R_B - R_A) / 1000
                  for the loser, clamped to [0.85, 1.15]
  margin        = 1 + clamp((actual_diff - expected_diff) / 20, +-0.10), from
                  the winner's point of view, applied to both players
  event_weight  = league 1.0, playoffs 1.05, tournament 1.08

Everything is computed with Decimal and the final deltas are rounded to
0.01 (ROUND_HALF_UP), so identical inputs always give identical deltas.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional

from cuerank.rating.confidence import calculate_confidence_factor
from cuerank.rating.constants import EVENT_WEIGHTS, RATING_DEFAULTS

CENT = Decimal("0.01")


@dataclass
class RatingParams:
    """
    All tunable rating engine parameters in one object.

    Persisted as named sets by cuerank.rating.params_store; the name of the
    set in force is written to every audit record.
    """
    k_base: float = RATING_DEFAULTS["k_base"]
    scale: float = RATING_DEFAULTS["scale"]
    new_boost: float = RATING_DEFAULTS["new_boost"]
    confidence_threshold: float = RATING_DEFAULTS["confidence_threshold"]
    opponent_divisor: float = RATING_DEFAULTS["opponent_divisor"]
    opponent_min: float = RATING_DEFAULTS["opponent_min"]
    opponent_max: float = RATING_DEFAULTS["opponent_max"]
    margin_divisor: float = RATING_DEFAULTS["margin_divisor"]
    margin_cap: float = RATING_DEFAULTS["margin_cap"]
    event_weights: dict = field(default_factory=lambda: dict(EVENT_WEIGHTS))


@dataclass
class RatingUpdate:
    """
    Result of a rating calculation, with every intermediate value.

    ``to_audit_dict`` is what gets stored on the rating audit row, so a
    reviewer can see exactly why a delta was what it was.
    """
    rating_a: Decimal
    rating_b: Decimal
    confidence_a: int
    confidence_b: int
    winner: str  # 'A' or 'B'
    score_a: int
    score_b: int
    event_type: str

    expected_a: Decimal
    expected_b: Decimal
    base_delta_a: Decimal
    base_delta_b: Decimal
    confidence_factor_a: Decimal
    confidence_factor_b: Decimal
    scaled_delta_a: Decimal
    scaled_delta_b: Decimal
    opponent_factor_a: Decimal
    opponent_factor_b: Decimal
    expected_rack_diff: Decimal
    actual_rack_diff: int
    margin_multiplier: Decimal
    event_weight: Decimal

    final_delta_a: Decimal
    final_delta_b: Decimal

    def to_audit_dict(self) -> dict:
        values = asdict(self)
        return {
            key: (str(value) if isinstance(value, Decimal) else value)
            for key, value in values.items()
        }

    def __repr__(self) -> str:
        return (
            f"<RatingUpdate(A: {self.rating_a} {self.final_delta_a:+}, "
            f"B: {self.rating_b} {self.final_delta_b:+}, winner={self.winner})>"
        )


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


class RatingCalculator:
    """
    Rating calculator for a single finalized slot.

    Usage:
        calculator = RatingCalculator()

        result = calculator.calculate(
            rating_a=Decimal("512.40"), confidence_a=40,
            rating_b=Decimal("488.00"), confidence_b=300,
            winner="B", score_a=3, score_b=5,
        )
        print(result.final_delta_a, result.final_delta_b)
    """

    def __init__(self, params: Optional[RatingParams] = None):
        self.params = params or RatingParams()

    def _d(self, name: str) -> Decimal:
        return Decimal(str(getattr(self.params, name)))

    def expected_score(self, rating_a: Decimal, rating_b: Decimal) -> Decimal:
        """Probability that A beats B. Strictly increasing in (rating_a - rating_b)."""
        exponent = (Decimal(str(rating_b)) - Decimal(str(rating_a))) / self._d("scale")
        return Decimal("1") / (1 + Decimal("10") ** exponent)

    def event_weight(self, event_type: str) -> Decimal:
        weights = self.params.event_weights or EVENT_WEIGHTS
        return Decimal(str(weights.get(event_type, 1.0)))

    def calculate(
        self,
        rating_a: Decimal,
        confidence_a: int,
        rating_b: Decimal,
        confidence_b: int,
        winner: str,
        score_a: int,
        score_b: int,
        event_type: str = "league",
    ) -> RatingUpdate:
        """
        Calculate both players' rating deltas for one slot.

        Args:
            rating_a, rating_b: Ratings frozen when the slot was started
            confidence_a, confidence_b: Confidence frozen at the same time
            winner: 'A' if player A won the slot, 'B' otherwise
            score_a, score_b: Racks won by each player
            event_type: 'league', 'playoffs' or 'tournament'

        Returns:
            RatingUpdate with the final deltas and every intermediate value

        Raises:
            ValueError: If winner is not 'A' or 'B'
        """
        if winner not in ("A", "B"):
            raise ValueError(f"winner must be 'A' or 'B', got '{winner}'")

        rating_a = Decimal(str(rating_a))
        rating_b = Decimal(str(rating_b))

        with localcontext() as ctx:
            ctx.prec = 28

            exp_a = self.expected_score(rating_a, rating_b)
            exp_b = Decimal("1") - exp_a

            actual_a = Decimal("1") if winner == "A" else Decimal("0")
            actual_b = Decimal("1") - actual_a

            k = self._d("k_base")
            base_a = k * (actual_a - exp_a)
            base_b = k * (actual_b - exp_b)

            conf_a = calculate_confidence_factor(
                confidence_a, self.params.new_boost, self.params.confidence_threshold
            )
            conf_b = calculate_confidence_factor(
                confidence_b, self.params.new_boost, self.params.confidence_threshold
            )
            scaled_a = base_a * conf_a
            scaled_b = base_b * conf_b

            # Beating a stronger player earns more; losing to one costs less
            low, high = self._d("opponent_min"), self._d("opponent_max")
            divisor = self._d("opponent_divisor")
            sign_a = 1 if winner == "A" else -1
            opp_a = _clamp(1 + sign_a * (rating_b - rating_a) / divisor, low, high)
            opp_b = _clamp(1 - sign_a * (rating_a - rating_b) / divisor, low, high)

            # Margin of victory, from the winner's perspective
            total = Decimal(score_a + score_b)
            exp_winner = exp_a if winner == "A" else exp_b
            expected_diff = total * (2 * exp_winner - 1)
            actual_diff = abs(score_a - score_b)
            cap = self._d("margin_cap")
            margin = 1 + _clamp(
                (Decimal(actual_diff) - expected_diff) / self._d("margin_divisor"),
                -cap,
                cap,
            )

            weight = self.event_weight(event_type)

            final_a = (scaled_a * opp_a * margin * weight).quantize(CENT, rounding=ROUND_HALF_UP)
            final_b = (scaled_b * opp_b * margin * weight).quantize(CENT, rounding=ROUND_HALF_UP)

        return RatingUpdate(
            rating_a=rating_a,
            rating_b=rating_b,
            confidence_a=int(confidence_a or 0),
            confidence_b=int(confidence_b or 0),
            winner=winner,
            score_a=score_a,
            score_b=score_b,
            event_type=event_type,
            expected_a=exp_a,
            expected_b=exp_b,
            base_delta_a=base_a,
            base_delta_b=base_b,
            confidence_factor_a=conf_a,
            confidence_factor_b=conf_b,
            scaled_delta_a=scaled_a,
            scaled_delta_b=scaled_b,
            opponent_factor_a=opp_a,
            opponent_factor_b=opp_b,
            expected_rack_diff=expected_diff,
            actual_rack_diff=actual_diff,
            margin_multiplier=margin,
            event_weight=weight,
            final_delta_a=final_a,
            final_delta_b=final_b,
        )

    def get_win_probability(self, rating_a: Decimal, rating_b: Decimal) -> Decimal:
        """Win probability for A, rounded to 4 places for display."""
        return self.expected_score(rating_a, rating_b).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        )
