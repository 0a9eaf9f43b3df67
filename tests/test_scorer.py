"""Tests for candidate scoring and selection.

Tests validate:
- Regime fit, trend alignment and risk-reward components
- Scores floored at zero
- Strictly highest score wins, ties go to the first candidate
"""

from hypothesis import given, strategies as st, settings
import pytest

from tradedesk.config import PatternConfig
from tradedesk.models import Direction, PatternFamily, Regime, TrendDirection
from tradedesk.patterns import PatternScorer


class TestScoreComponents:
    """Tests for the individual score components."""

    @pytest.mark.parametrize("take_profit,expected", [
        (2025.0, 20.0),   # 2.5R
        (2020.0, 15.0),   # 2.0R
        (2015.0, 10.0),   # 1.5R
        (2010.0, -10.0),  # 1.0R
    ])
    def test_risk_reward_tiers(self, make_candidate, take_profit, expected):
        candidate = make_candidate(entry=2000.0, stop_loss=1990.0, take_profit=take_profit)
        assert PatternScorer().risk_reward_quality(candidate.risk_reward) == expected

    def test_trend_alignment(self, make_candidate):
        scorer = PatternScorer()
        long = make_candidate(Direction.LONG)
        assert scorer.trend_alignment(long, TrendDirection.BULLISH) == 15.0
        assert scorer.trend_alignment(long, TrendDirection.BEARISH) == -15.0
        assert scorer.trend_alignment(long, TrendDirection.NEUTRAL) == 0.0

    def test_regime_fit_by_family(self, make_candidate, make_context):
        scorer = PatternScorer()
        trending = make_context(regime=Regime.TRENDING)
        trend_follower = make_candidate()
        reverter = make_candidate(family=PatternFamily.MEAN_REVERSION)
        assert scorer.regime_fit(trend_follower, trending) == 20.0
        assert scorer.regime_fit(reverter, trending) == -20.0


class TestScore:
    """Tests for the total score."""

    def test_aligned_trend_follower_in_trend(self, make_candidate, make_context):
        context = make_context(regime=Regime.TRENDING, h4=TrendDirection.BULLISH)
        # 50 + 20 regime + 15 alignment + 15 (2.0R)
        assert PatternScorer().score(make_candidate(), context) == 100.0

    def test_score_offset_applied_by_source(self, make_candidate, make_context):
        config = PatternConfig(score_offsets={"engulfing": -7.5})
        context = make_context(regime=Regime.TRENDING, h4=TrendDirection.BULLISH)
        assert PatternScorer(config).score(make_candidate(), context) == 92.5

    def test_score_floored_at_zero(self, make_candidate, make_context):
        config = PatternConfig(score_offsets={"range_box": -50.0})
        context = make_context(regime=Regime.TRENDING, h4=TrendDirection.BULLISH)
        candidate = make_candidate(
            Direction.SHORT, family=PatternFamily.MEAN_REVERSION, source="range_box",
            take_profit=1990.0,
        )
        # 50 - 20 - 15 - 10 - 50 < 0
        assert PatternScorer(config).score(candidate, context) == 0.0

    @given(
        offset=st.floats(min_value=-500, max_value=500, allow_nan=False),
        regime=st.sampled_from(list(Regime)),
        h4=st.sampled_from(list(TrendDirection)),
        direction=st.sampled_from(list(Direction)),
        family=st.sampled_from(list(PatternFamily)),
        reward=st.floats(min_value=0.1, max_value=100, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_score_never_negative(self, make_candidate, make_context,
                                  offset, regime, h4, direction, family, reward):
        """
        *For any* candidate and context, the score SHALL be >= 0.
        """
        config = PatternConfig(score_offsets={"engulfing": offset})
        candidate = make_candidate(direction, family=family,
                                   take_profit=2000.0 + direction.sign * reward)
        context = make_context(regime=regime, h4=h4)
        assert PatternScorer(config).score(candidate, context) >= 0.0


class TestSelection:
    """Tests for candidate selection."""

    def test_highest_score_wins(self, make_candidate, make_context):
        context = make_context(regime=Regime.TRENDING, h4=TrendDirection.BULLISH)
        reverter = make_candidate(family=PatternFamily.MEAN_REVERSION, source="bb_mean_reversion",
                                  pattern="Bullish BB Mean Reversion")
        follower = make_candidate()
        selected = PatternScorer().select([reverter, follower], context)
        assert selected.pattern == "Bullish Engulfing"
        assert selected.score == 100.0

    def test_tie_goes_to_first_detected(self, make_candidate, make_context):
        context = make_context(regime=Regime.RANGING)
        first = make_candidate(pattern="Bullish Pin Bar", source="pin_bar")
        second = make_candidate(pattern="Bullish SR Bounce", source="sr_bounce")
        assert PatternScorer().select([first, second], context).pattern == "Bullish Pin Bar"

    def test_no_candidates(self, make_context):
        assert PatternScorer().select([], make_context()) is None

    def test_candidates_not_mutated(self, make_candidate, make_context):
        candidate = make_candidate()
        PatternScorer().select([candidate], make_context())
        assert candidate.score == 0.0

    @given(
        rewards=st.lists(st.floats(min_value=1, max_value=50, allow_nan=False), min_size=1, max_size=8),
        regime=st.sampled_from(list(Regime)),
    )
    @settings(max_examples=100)
    def test_selected_is_first_maximum(self, make_candidate, make_context, rewards, regime):
        """
        *For any* candidate list, the selected candidate SHALL carry the
        maximum score and be the earliest candidate with that score.
        """
        context = make_context(regime=regime)
        candidates = [
            make_candidate(pattern=f"Bullish Candidate {i}", take_profit=2000.0 + r)
            for i, r in enumerate(rewards)
        ]
        scorer = PatternScorer()
        scores = [scorer.score(c, context) for c in candidates]
        selected = scorer.select(candidates, context)
        assert selected.score == max(scores)
        assert selected.pattern == f"Bullish Candidate {scores.index(max(scores))}"
