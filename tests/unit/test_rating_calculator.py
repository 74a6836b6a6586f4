"""
Unit tests for the rating calculator.

Tests the BBRS calculation to ensure:
- Expected probability is monotonic in the rating gap
- Upsets move ratings more than expected results
- Confidence dampens swings; new players move fastest
- Results are deterministic and exactly reproducible
"""

from decimal import Decimal

import pytest

from cuerank.rating.calculator import RatingCalculator, RatingParams
from cuerank.rating.confidence import calculate_confidence_factor, confidence_increment


@pytest.fixture
def calculator():
    return RatingCalculator()


def _calc(calculator, ra, rb, winner="A", score=(5, 4), conf=(0, 0), event_type="league"):
    return calculator.calculate(
        rating_a=Decimal(str(ra)),
        confidence_a=conf[0],
        rating_b=Decimal(str(rb)),
        confidence_b=conf[1],
        winner=winner,
        score_a=score[0],
        score_b=score[1],
        event_type=event_type,
    )


class TestRatingCalculator:
    def test_equal_ratings_new_players(self, calculator):
        """
        Equal new players, 5-4.

        base 14 * 0.5 = 7, confidence factor 2.0, opponent factor 1.0,
        margin 1 + (1 - 0) / 20 = 1.05 -> 14.70 each way.
        """
        result = _calc(calculator, 500, 500)
        assert result.expected_a == Decimal("0.5")
        assert result.final_delta_a == Decimal("14.70")
        assert result.final_delta_b == Decimal("-14.70")
        assert result.margin_multiplier == Decimal("1.05")

    def test_expected_probability_monotonic(self, calculator):
        previous = Decimal("0")
        for gap in range(-600, 601, 50):
            p = calculator.expected_score(Decimal(500 + gap), Decimal(500))
            assert p > previous
            previous = p

    def test_favourite_expected_above_half(self, calculator):
        assert calculator.expected_score(Decimal("600"), Decimal("400")) > Decimal("0.5")

    def test_win_probability_rounded_for_display(self, calculator):
        # 400 points apart: 1 / (1 + 10^-1)
        assert calculator.get_win_probability(Decimal("600"), Decimal("200")) == Decimal("0.9091")
        assert calculator.get_win_probability(500, 500) == Decimal("0.5000")

    def test_upset_moves_more_than_expected_win(self, calculator):
        favourite_wins = _calc(calculator, 650, 450, winner="A", conf=(300, 300))
        underdog_wins = _calc(calculator, 650, 450, winner="B", score=(4, 5), conf=(300, 300))
        assert underdog_wins.final_delta_b > favourite_wins.final_delta_a
        assert abs(underdog_wins.final_delta_a) > abs(favourite_wins.final_delta_b)

    @pytest.mark.parametrize("winner", ["A", "B"])
    @pytest.mark.parametrize("ratings", [(300, 900), (500, 500), (720, 410)])
    def test_winner_gains_loser_drops(self, calculator, winner, ratings):
        score = (5, 2) if winner == "A" else (2, 5)
        result = _calc(calculator, *ratings, winner=winner, score=score, conf=(40, 700))
        winner_delta = result.final_delta_a if winner == "A" else result.final_delta_b
        loser_delta = result.final_delta_b if winner == "A" else result.final_delta_a
        assert winner_delta > 0
        assert loser_delta < 0

    def test_confidence_dampens(self, calculator):
        new = _calc(calculator, 500, 500, conf=(0, 0))
        settled = _calc(calculator, 500, 500, conf=(1000, 1000))
        assert abs(settled.final_delta_a) < abs(new.final_delta_a)

    def test_asymmetric_confidence(self, calculator):
        result = _calc(calculator, 500, 500, conf=(0, 900))
        assert result.final_delta_a != -result.final_delta_b
        assert abs(result.final_delta_a) > abs(result.final_delta_b)

    def test_event_weighting(self, calculator):
        league = _calc(calculator, 500, 500, event_type="league")
        playoffs = _calc(calculator, 500, 500, event_type="playoffs")
        tournament = _calc(calculator, 500, 500, event_type="tournament")
        assert league.final_delta_a < playoffs.final_delta_a < tournament.final_delta_a
        assert tournament.event_weight == Decimal("1.08")

    def test_margin_capped(self, calculator):
        blowout = _calc(calculator, 500, 500, score=(7, 0))
        assert blowout.margin_multiplier == Decimal("1.10")

    def test_margin_penalises_close_win_by_favourite(self, calculator):
        result = _calc(calculator, 800, 300, score=(7, 6))
        assert result.margin_multiplier < 1

    def test_opponent_factor_clamped(self, calculator):
        result = _calc(calculator, 300, 900, winner="A", score=(3, 2))
        assert result.opponent_factor_a == Decimal("1.15")
        # Losing to a much weaker player costs the most
        assert result.opponent_factor_b == Decimal("1.15")

    def test_deterministic(self, calculator):
        first = _calc(calculator, Decimal("512.37"), Decimal("488.10"), conf=(37, 412))
        second = _calc(calculator, Decimal("512.37"), Decimal("488.10"), conf=(37, 412))
        assert first == second
        assert first.final_delta_a.as_tuple().exponent == -2

    def test_invalid_winner(self, calculator):
        with pytest.raises(ValueError):
            _calc(calculator, 500, 500, winner="C")

    def test_audit_dict_is_serialisable(self, calculator):
        data = _calc(calculator, 500, 520).to_audit_dict()
        assert isinstance(data["final_delta_a"], str)
        assert data["winner"] == "A"
        assert all(not isinstance(v, Decimal) for v in data.values())

    def test_custom_params(self):
        calc = RatingCalculator(RatingParams(k_base=28.0))
        default = _calc(RatingCalculator(), 500, 500)
        doubled = _calc(calc, 500, 500)
        assert doubled.final_delta_a == default.final_delta_a * 2


class TestConfidence:
    def test_new_player_full_boost(self):
        assert calculate_confidence_factor(0) == Decimal("2")

    def test_half_boost_at_threshold(self):
        assert calculate_confidence_factor(100) == Decimal("1.5")

    def test_factor_decreases(self):
        values = [calculate_confidence_factor(c) for c in (0, 10, 50, 100, 500, 1000)]
        assert values == sorted(values, reverse=True)
        assert all(v > 1 for v in values)

    def test_increment_is_racks_played(self):
        assert confidence_increment(0, 9, 1000) == 9

    def test_increment_bounded_by_max(self):
        assert confidence_increment(995, 9, 1000) == 5
        assert confidence_increment(1000, 9, 1000) == 0

    def test_increment_never_negative(self):
        assert confidence_increment(1200, 9, 1000) == 0
