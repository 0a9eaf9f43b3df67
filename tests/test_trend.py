"""Tests for trend classification.

Tests validate:
- Directional bias from the moving-average relationship
- Early-warning bias from swing structure
- Strength bounded to [0, 1]
- Multi-timeframe alignment and dominant bias
"""

from hypothesis import given, strategies as st, settings

from tradedesk.analysis import TrendClassifier, dominant_bias, is_aligned
from tradedesk.config import TrendConfig
from tradedesk.models import Timeframe, TrendDirection, TrendState


class TestTrendDirection:
    """Tests for per-timeframe bias."""

    def test_price_above_both_averages_is_bullish(self, make_frame):
        data = make_frame(close=[2010], fast_ma=2005, slow_ma=2000)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.direction is TrendDirection.BULLISH

    def test_price_below_both_averages_is_bearish(self, make_frame):
        data = make_frame(close=[1990], fast_ma=1995, slow_ma=2000)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.direction is TrendDirection.BEARISH

    def test_between_averages_without_structure_is_neutral(self, make_frame):
        data = make_frame(close=[2003], fast_ma=2002, slow_ma=2005)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.direction is TrendDirection.NEUTRAL

    def test_early_warning_higher_high_above_fast_ma(self, make_frame):
        """Above the fast MA while printing higher highs is bullish even if
        the slow MA disagrees."""
        data = make_frame(close=[2003], high=[2002, 2010], fast_ma=2002, slow_ma=2005)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.higher_high is True
        assert state.direction is TrendDirection.BULLISH

    def test_early_warning_lower_low_below_fast_ma(self, make_frame):
        data = make_frame(close=[1997], low=[1998, 1990], fast_ma=1998, slow_ma=1995)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.lower_low is True
        assert state.direction is TrendDirection.BEARISH

    def test_expanding_range_above_fast_ma_is_bullish(self, make_frame):
        # closed bar prints both a higher high and a lower low
        data = make_frame(close=[2005], high=[2002, 2010], low=[1998, 1990],
                          fast_ma=2003, slow_ma=2008)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.higher_high is True
        assert state.lower_low is True
        assert state.direction is TrendDirection.BULLISH

    def test_expanding_range_below_fast_ma_is_bearish(self, make_frame):
        data = make_frame(close=[1995], high=[2002, 2010], low=[1998, 1990],
                          fast_ma=1997, slow_ma=1992)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.direction is TrendDirection.BEARISH

    def test_early_warning_can_be_disabled(self, make_frame):
        data = make_frame(close=[2003], high=[2002, 2010], fast_ma=2002, slow_ma=2005)
        classifier = TrendClassifier(TrendConfig(early_warning_enabled=False))
        assert classifier.classify(Timeframe.H1, data).direction is TrendDirection.NEUTRAL


class TestTrendStrength:
    """Tests for the weighted strength score."""

    def test_full_separation_with_direction(self, make_frame):
        # separation 5 / ATR 4 capped at 1.0 -> 0.4, no structure, direction 0.3
        data = make_frame(close=[2010], fast_ma=2005, slow_ma=2000, atr=4.0)
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert abs(state.strength - 0.7) < 1e-9

    def test_neutral_without_structure_or_separation_is_zero(self, make_frame):
        data = make_frame()
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert state.direction is TrendDirection.NEUTRAL
        assert state.strength == 0.0

    @given(
        close=st.floats(min_value=1000, max_value=3000, allow_nan=False),
        fast=st.floats(min_value=1000, max_value=3000, allow_nan=False),
        slow=st.floats(min_value=1000, max_value=3000, allow_nan=False),
        atr=st.floats(min_value=0.01, max_value=100, allow_nan=False),
        recent_high=st.floats(min_value=1990, max_value=2020, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_strength_bounded(self, make_frame, close, fast, slow, atr, recent_high):
        """
        *For any* MA and ATR values, trend strength SHALL be within [0, 1].
        """
        data = make_frame(close=[close], fast_ma=fast, slow_ma=slow, atr=atr,
                          high=[2002, recent_high])
        state = TrendClassifier().classify(Timeframe.H1, data)
        assert 0.0 <= state.strength <= 1.0


class TestTrendUpdate:
    """Tests for snapshot updates and missing data."""

    def test_short_series_returns_none(self, make_frame):
        data = make_frame(bars=5)
        assert TrendClassifier().classify(Timeframe.H1, data) is None

    def test_missing_data_keeps_previous_state(self, make_frame, make_snapshot):
        bullish = make_frame(close=[2010], fast_ma=2005, slow_ma=2000)
        classifier = TrendClassifier()
        assert classifier.update(make_snapshot(h1=bullish, h4=bullish, d1=bullish)) is True

        assert classifier.update(make_snapshot()) is False
        for tf in TrendClassifier.TIMEFRAMES:
            assert classifier.direction(tf) is TrendDirection.BULLISH

    def test_partial_update(self, make_frame, make_snapshot):
        bullish = make_frame(close=[2010], fast_ma=2005, slow_ma=2000)
        classifier = TrendClassifier()
        assert classifier.update(make_snapshot(h1=bullish)) is False
        assert classifier.direction(Timeframe.H1) is TrendDirection.BULLISH
        assert classifier.direction(Timeframe.D1) is TrendDirection.NEUTRAL


class TestAlignment:
    """Tests for multi-timeframe alignment and dominant bias."""

    def test_all_bullish_is_aligned(self, make_frame, make_snapshot):
        bullish = make_frame(close=[2010], fast_ma=2005, slow_ma=2000)
        classifier = TrendClassifier()
        classifier.update(make_snapshot(h1=bullish, h4=bullish, d1=bullish))
        assert classifier.is_aligned() is True

    def test_neutral_timeframe_breaks_alignment(self):
        states = [
            TrendState(Timeframe.D1, TrendDirection.BULLISH),
            TrendState(Timeframe.H4, TrendDirection.BULLISH),
            TrendState(Timeframe.H1, TrendDirection.NEUTRAL),
        ]
        assert is_aligned(states) is False

    def test_all_neutral_is_not_aligned(self):
        states = [TrendState(tf) for tf in TrendClassifier.TIMEFRAMES]
        assert is_aligned(states) is False

    def test_dominant_bias_prefers_h4(self):
        states = {
            Timeframe.D1: TrendState(Timeframe.D1, TrendDirection.BEARISH),
            Timeframe.H4: TrendState(Timeframe.H4, TrendDirection.BULLISH),
        }
        assert dominant_bias(states) is TrendDirection.BULLISH

    def test_dominant_bias_falls_back_to_d1(self):
        states = {
            Timeframe.D1: TrendState(Timeframe.D1, TrendDirection.BEARISH),
            Timeframe.H4: TrendState(Timeframe.H4, TrendDirection.NEUTRAL),
        }
        assert dominant_bias(states) is TrendDirection.BEARISH
