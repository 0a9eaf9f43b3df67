"""Tests for the signal validation gates.

Tests validate:
- Long-horizon bias gate and each of its exceptions
- D1/H4 conflict gate
- Regime-specific direction filter
- Macro opposition thresholds per regime
- Momentum and structure-confluence vetoes
"""

from dataclasses import replace
from datetime import datetime, timezone

from hypothesis import given, strategies as st, settings
import pytest

from tradedesk.config import SessionConfig, ValidationConfig
from tradedesk.market import ConfluenceInputs, FixedClock
from tradedesk.models import Direction, PatternFamily, Regime, TrendDirection
from tradedesk.validation import SessionClock, SignalValidator


BULLISH = TrendDirection.BULLISH
BEARISH = TrendDirection.BEARISH

# 01:00 UTC = 03:00 server time, inside the Asia window
ASIA_TIME = datetime(2024, 3, 4, 1, 0, tzinfo=timezone.utc)


def make_validator(config=None, moment=None):
    clock = FixedClock(moment or datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc))
    return SignalValidator(config, sessions=SessionClock(SessionConfig(), clock))


class TestSessionClock:
    """Tests for session windows in server time."""

    def test_london_morning(self, bar_time):
        sessions = SessionClock(SessionConfig(), FixedClock(bar_time))
        assert sessions.active_sessions() == ["london"]

    def test_asia_night(self):
        sessions = SessionClock(SessionConfig(), FixedClock(ASIA_TIME))
        assert sessions.in_session("asia") is True
        assert sessions.server_time().hour == 3

    def test_london_new_york_overlap(self):
        moment = datetime(2024, 3, 4, 14, 0, tzinfo=timezone.utc)
        assert SessionClock().active_sessions(moment) == ["london", "new_york"]

    def test_unknown_session_raises(self):
        with pytest.raises(ValueError):
            SessionClock().in_session("sydney")


class TestLongBiasGate:
    """Tests for the long-horizon bias gate."""

    @pytest.fixture
    def bearish_d1(self, make_frame):
        # price 2000 below the daily long MA -> short bias
        return make_frame(long_ma=2050.0)

    def test_counter_bias_signal_rejected(self, make_candidate, make_context, make_snapshot, bearish_d1):
        result = make_validator().validate(
            make_candidate(Direction.LONG), make_snapshot(d1=bearish_d1), make_context(),
        )
        assert result.accepted is False
        assert result.gate == "long_bias"

    def test_with_bias_signal_passes(self, make_candidate, make_context, make_snapshot, bearish_d1):
        result = make_validator().validate(
            make_candidate(Direction.SHORT), make_snapshot(d1=bearish_d1), make_context(),
        )
        assert result.accepted is True
        assert result.exceptions == []

    def test_h4_breakout_exception(self, make_candidate, make_context, make_snapshot, bearish_d1):
        candidate = make_candidate(pattern="Bullish Volatility Breakout", source="volatility_breakout")
        result = make_validator().validate(
            candidate, make_snapshot(d1=bearish_d1), make_context(h4=BULLISH),
        )
        assert result.accepted is True
        assert result.exceptions == ["h4_breakout"]

    def test_strong_macro_exception(self, make_candidate, make_context, make_snapshot, bearish_d1):
        result = make_validator().validate(
            make_candidate(), make_snapshot(d1=bearish_d1), make_context(macro_score=3),
        )
        assert result.accepted is True
        assert result.exceptions == ["strong_macro"]

    def test_oscillator_extreme_exception(self, make_candidate, make_context, make_snapshot,
                                          make_frame, bearish_d1):
        h1 = make_frame(rsi=[50.0, 25.0])
        result = make_validator().validate(
            make_candidate(), make_snapshot(h1=h1, d1=bearish_d1), make_context(),
        )
        assert result.accepted is True
        assert result.exceptions == ["oscillator_extreme"]

    def test_session_exception(self, make_candidate, make_context, make_snapshot, bearish_d1):
        snapshot = make_snapshot(d1=bearish_d1, time=ASIA_TIME)
        result = make_validator(moment=ASIA_TIME).validate(make_candidate(), snapshot, make_context())
        assert result.accepted is True
        assert result.exceptions == ["session"]

    def test_weak_trend_mean_reversion_exception(self, make_candidate, make_context,
                                                 make_snapshot, bearish_d1):
        candidate = make_candidate(
            pattern="Bullish BB Mean Reversion", family=PatternFamily.MEAN_REVERSION,
            source="bb_mean_reversion",
        )
        context = make_context(h4_strength=0.3, macro_score=1)
        result = make_validator().validate(candidate, make_snapshot(d1=bearish_d1), context)
        assert result.accepted is True
        assert result.exceptions == ["weak_trend_mean_reversion"]

    def test_disabled_gate(self, make_candidate, make_context, make_snapshot, bearish_d1):
        validator = make_validator(ValidationConfig(long_bias_enabled=False))
        result = validator.validate(make_candidate(), make_snapshot(d1=bearish_d1), make_context())
        assert result.accepted is True

    def test_missing_long_ma_passes(self, make_candidate, make_context, make_snapshot):
        result = make_validator().validate(make_candidate(), make_snapshot(), make_context())
        assert result.accepted is True
        assert [o.gate for o in result.outcomes] == list(SignalValidator.GATES)


class TestTimeframeConflictGate:
    """Tests for the D1/H4 conflict gate."""

    def test_conflict_rejected(self, make_candidate, make_context, make_snapshot):
        result = make_validator().validate(
            make_candidate(), make_snapshot(), make_context(d1=BULLISH, h4=BEARISH),
        )
        assert result.accepted is False
        assert result.gate == "mtf_conflict"

    def test_trust_faster_timeframe(self, make_candidate, make_context, make_snapshot):
        validator = make_validator(ValidationConfig(trust_faster_timeframe=True))
        result = validator.validate(
            make_candidate(Direction.SHORT), make_snapshot(), make_context(d1=BULLISH, h4=BEARISH),
        )
        assert result.accepted is True
        assert result.exceptions == ["trust_faster_timeframe"]

    def test_neutral_timeframe_is_no_conflict(self, make_candidate, make_context, make_snapshot):
        result = make_validator().validate(
            make_candidate(), make_snapshot(), make_context(d1=BEARISH),
        )
        assert result.gate != "mtf_conflict"


class TestRegimeGate:
    """Tests for the regime direction filter."""

    def test_counter_trend_rejected_in_trend(self, make_candidate, make_context, make_snapshot):
        context = make_context(regime=Regime.TRENDING, h4=BEARISH)
        result = make_validator().validate(make_candidate(), make_snapshot(), context)
        assert result.accepted is False
        assert result.gate == "regime"

    def test_liquidity_sweep_exception(self, make_candidate, make_context, make_snapshot):
        context = make_context(regime=Regime.TRENDING, h4=BEARISH)
        candidate = make_candidate(pattern="Bullish Liquidity Sweep", source="liquidity_sweep")
        result = make_validator().validate(candidate, make_snapshot(), context)
        assert result.accepted is True
        assert result.exceptions == ["liquidity_sweep"]

    def test_choppy_keeps_long_bias_exceptions(self, make_candidate, make_context,
                                               make_snapshot, make_frame):
        # short daily bias, admitted by the strong-macro exception
        snapshot = make_snapshot(d1=make_frame(long_ma=2050.0))
        context = make_context(regime=Regime.CHOPPY, macro_score=3)
        result = make_validator().validate(make_candidate(Direction.LONG), snapshot, context)
        assert result.accepted is True
        assert result.exceptions == ["strong_macro"]

    def test_choppy_ignores_long_horizon_bias(self, make_candidate, make_context,
                                              make_snapshot, make_frame):
        validator = make_validator(ValidationConfig(long_bias_enabled=False))
        snapshot = make_snapshot(d1=make_frame(long_ma=1950.0))
        context = make_context(regime=Regime.UNKNOWN)
        result = validator.validate(make_candidate(Direction.SHORT), snapshot, context)
        assert result.accepted is True

    def test_choppy_oscillator_extreme_overrides(self, make_candidate, make_context,
                                                 make_snapshot, make_frame):
        context = make_context(regime=Regime.CHOPPY, h4=BEARISH)
        snapshot = make_snapshot(h1=make_frame(rsi=[50.0, 25.0]))
        result = make_validator().validate(make_candidate(Direction.LONG), snapshot, context)
        assert result.gate != "regime"
        assert "oscillator_extreme" in result.exceptions

    def test_choppy_falls_back_to_trend_bias(self, make_candidate, make_context, make_snapshot):
        context = make_context(regime=Regime.CHOPPY, h4=BEARISH)
        result = make_validator().validate(make_candidate(Direction.LONG), make_snapshot(), context)
        assert result.gate == "regime"


class TestMacroGate:
    """Tests for macro opposition thresholds."""

    def test_strong_opposition_rejected_in_trend(self, make_candidate, make_context, make_snapshot):
        context = make_context(regime=Regime.TRENDING, macro_score=-3)
        result = make_validator().validate(make_candidate(), make_snapshot(), context)
        assert result.accepted is False
        assert result.gate == "macro"

    def test_moderate_opposition_tolerated_in_trend(self, make_candidate, make_context, make_snapshot):
        context = make_context(regime=Regime.TRENDING, macro_score=-2)
        result = make_validator().validate(make_candidate(), make_snapshot(), context)
        assert result.accepted is True

    def test_any_opposition_rejected_when_choppy(self, make_candidate, make_context, make_snapshot):
        context = make_context(regime=Regime.CHOPPY, macro_score=-1)
        result = make_validator().validate(make_candidate(), make_snapshot(), context)
        assert result.accepted is False
        assert result.gate == "macro"


class TestVetoGates:
    """Tests for the momentum and confluence vetoes."""

    def test_momentum_veto(self, make_candidate, make_context, make_snapshot):
        snapshot = make_snapshot(confluence=ConfluenceInputs(momentum_long_ok=False))
        result = make_validator().validate(make_candidate(), snapshot, make_context())
        assert result.accepted is False
        assert result.gate == "momentum"

    def test_momentum_unavailable_passes(self, make_candidate, make_context, make_snapshot):
        snapshot = make_snapshot(confluence=ConfluenceInputs(momentum_short_ok=False))
        assert make_validator().validate(make_candidate(), snapshot, make_context()).accepted

    def test_low_confluence_rejected(self, make_candidate, make_context, make_snapshot):
        validator = make_validator(ValidationConfig(confluence_enabled=True))
        snapshot = make_snapshot(confluence=ConfluenceInputs(structure_score=30.0))
        result = validator.validate(make_candidate(), snapshot, make_context())
        assert result.accepted is False
        assert result.gate == "confluence"

    def test_confluence_ignored_when_disabled(self, make_candidate, make_context, make_snapshot):
        snapshot = make_snapshot(confluence=ConfluenceInputs(structure_score=30.0))
        assert make_validator().validate(make_candidate(), snapshot, make_context()).accepted

    @pytest.mark.parametrize("score,accepted", [(45.0, False), (55.0, True)])
    def test_counter_structure_blocking(self, make_candidate, make_context, make_snapshot,
                                        score, accepted):
        validator = make_validator(ValidationConfig(
            confluence_enabled=True, counter_structure_blocking=True,
        ))
        snapshot = make_snapshot(confluence=ConfluenceInputs(
            structure_score=score, zone_direction=Direction.SHORT, last_break=Direction.SHORT,
        ))
        result = validator.validate(make_candidate(Direction.LONG), snapshot, make_context())
        assert result.accepted is accepted

    @pytest.mark.parametrize("supports_long,supports_short,accepted", [
        (True, False, True),
        (False, False, False),
        (False, True, False),
    ])
    def test_structure_support_lifts_counter_structure_block(
        self, make_candidate, make_context, make_snapshot, supports_long, supports_short, accepted,
    ):
        validator = make_validator(ValidationConfig(
            confluence_enabled=True, counter_structure_blocking=True,
        ))
        snapshot = make_snapshot(confluence=ConfluenceInputs(
            structure_score=45.0, zone_direction=Direction.SHORT, last_break=Direction.SHORT,
            supports_long=supports_long, supports_short=supports_short,
        ))
        result = validator.validate(make_candidate(Direction.LONG), snapshot, make_context())
        assert result.accepted is accepted

    def test_short_supported_inside_long_zone(self, make_candidate, make_context, make_snapshot):
        validator = make_validator(ValidationConfig(
            confluence_enabled=True, counter_structure_blocking=True,
        ))
        confluence = ConfluenceInputs(
            structure_score=45.0, zone_direction=Direction.LONG, last_break=Direction.LONG,
        )
        check = validator.check_confluence
        assert check(make_candidate(Direction.SHORT), make_snapshot(confluence=confluence)).passed is False
        supported = replace(confluence, supports_short=True)
        assert check(make_candidate(Direction.SHORT), make_snapshot(confluence=supported)).passed is True


class TestCascade:
    """Tests for the cascade as a whole."""

    @given(
        direction=st.sampled_from(list(Direction)),
        regime=st.sampled_from(list(Regime)),
        d1=st.sampled_from(list(TrendDirection)),
        h4=st.sampled_from(list(TrendDirection)),
        macro=st.integers(min_value=-5, max_value=5),
    )
    @settings(max_examples=100)
    def test_rejection_names_the_failing_gate(self, make_candidate, make_context, make_snapshot,
                                              direction, regime, d1, h4, macro):
        """
        *For any* candidate and context, a rejection SHALL name the last gate
        evaluated, and no gate SHALL run after it.
        """
        context = make_context(d1=d1, h4=h4, regime=regime, macro_score=macro)
        result = make_validator().validate(make_candidate(direction), make_snapshot(), context)
        if result.accepted:
            assert len(result.outcomes) == len(SignalValidator.GATES)
        else:
            assert result.gate == result.outcomes[-1].gate
            assert result.outcomes[-1].passed is False
            assert all(o.passed for o in result.outcomes[:-1])
