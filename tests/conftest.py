"""Pytest configuration and shared fixtures."""

import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tradedesk.analysis import PipelineContext
from tradedesk.config import ConfigManager
from tradedesk.market import (
    SERIES_FIELDS,
    ConfluenceInputs,
    MarketSnapshot,
    Quote,
    TimeframeData,
)
from tradedesk.models import (
    CandidateSignal,
    Direction,
    MacroState,
    PatternFamily,
    Position,
    QualityTier,
    Regime,
    RegimeState,
    Timeframe,
    TrendDirection,
    TrendState,
)


# Monday 10:00 UTC = 12:00 server time (London session, not Asia)
BAR_TIME = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)

# A flat, quiet market in which no detector fires
SERIES_DEFAULTS = {
    "open": 2000.0,
    "high": 2002.0,
    "low": 1998.0,
    "close": 2000.0,
    "fast_ma": 2000.0,
    "slow_ma": 2000.0,
    "long_ma": 2000.0,
    "rsi": 50.0,
    "macd_main": 0.0,
    "macd_signal": 0.0,
    "stoch_main": 50.0,
    "stoch_signal": 50.0,
    "cci": 0.0,
    "mfi": 50.0,
    "adx": 22.0,
    "atr": 4.0,
    "bb_upper": 2010.0,
    "bb_middle": 2000.0,
    "bb_lower": 1990.0,
    "sar": 1990.0,
}


def build_frame(bars=60, missing=(), **overrides):
    """TimeframeData with default values.

    A scalar override fills the whole series; a list replaces the most
    recent values (index 0 first). Names in `missing` become empty series.
    """
    values = {}
    for name in SERIES_FIELDS:
        series = [SERIES_DEFAULTS[name]] * bars
        override = overrides.pop(name, None)
        if isinstance(override, (int, float)):
            series = [float(override)] * bars
        elif override is not None:
            series[:len(override)] = [float(v) for v in override]
        values[name] = () if name in missing else tuple(series)
    if overrides:
        raise TypeError(f"Unknown series: {sorted(overrides)}")
    return TimeframeData(**values)


def build_snapshot(
    h1=None,
    h4=None,
    d1=None,
    bid=1999.9,
    ask=2000.1,
    time=BAR_TIME,
    intermarket=None,
    confluence=None,
):
    frames = {}
    for timeframe, frame in ((Timeframe.H1, h1), (Timeframe.H4, h4), (Timeframe.D1, d1)):
        if frame is not None:
            frames[timeframe] = frame
    return MarketSnapshot(
        time=time,
        quote=Quote(bid=bid, ask=ask, time=time),
        frames=frames,
        intermarket=intermarket,
        confluence=confluence or ConfluenceInputs(),
    )


def build_context(
    d1=TrendDirection.NEUTRAL,
    h4=TrendDirection.NEUTRAL,
    h1=TrendDirection.NEUTRAL,
    regime=Regime.RANGING,
    macro_score=0,
    intermarket=True,
    h4_strength=0.5,
    adx=22.0,
    atr_ratio=1.0,
):
    trends = {
        Timeframe.D1: TrendState(Timeframe.D1, direction=d1),
        Timeframe.H4: TrendState(Timeframe.H4, direction=h4, strength=h4_strength),
        Timeframe.H1: TrendState(Timeframe.H1, direction=h1),
    }
    return PipelineContext(
        trends=trends,
        regime=RegimeState(regime=regime, adx=adx, atr=4.0 * atr_ratio, atr_average=4.0),
        macro=MacroState(score=macro_score, dxy_available=intermarket),
    )


def build_candidate(
    direction=Direction.LONG,
    pattern=None,
    entry=2000.0,
    stop_loss=None,
    take_profit=None,
    family=PatternFamily.TREND_FOLLOWING,
    pattern_high=2006.0,
    pattern_low=1998.0,
    source="engulfing",
    detected_at=BAR_TIME,
):
    sign = direction.sign
    if pattern is None:
        pattern = ("Bullish" if direction is Direction.LONG else "Bearish") + " Engulfing"
    if stop_loss is None:
        stop_loss = entry - sign * 10.0
    if take_profit is None:
        take_profit = entry + sign * 20.0
    return CandidateSignal(
        direction=direction,
        pattern=pattern,
        family=family,
        entry=entry,
        stop_loss=stop_loss,
        take_profit=take_profit,
        detected_at=detected_at,
        pattern_high=pattern_high,
        pattern_low=pattern_low,
        source=source,
    )


def build_position(
    ticket=1,
    direction=Direction.LONG,
    entry=2000.0,
    stop_loss=None,
    tp1=None,
    tp2=None,
    lots=0.2,
):
    sign = direction.sign
    return Position(
        ticket=ticket,
        direction=direction,
        pattern="Bullish Engulfing" if direction is Direction.LONG else "Bearish Engulfing",
        lots=lots,
        entry_price=entry,
        stop_loss=stop_loss if stop_loss is not None else entry - sign * 10.0,
        tp1=tp1 if tp1 is not None else entry + sign * 15.0,
        tp2=tp2 if tp2 is not None else entry + sign * 25.0,
        open_time=BAR_TIME,
        quality_tier=QualityTier.A,
        initial_risk_pct=1.0,
    )


@pytest.fixture(scope="session")
def make_frame():
    return build_frame


@pytest.fixture(scope="session")
def make_snapshot():
    return build_snapshot


@pytest.fixture(scope="session")
def make_context():
    return build_context


@pytest.fixture(scope="session")
def make_candidate():
    return build_candidate


@pytest.fixture(scope="session")
def make_position():
    return build_position


@pytest.fixture(scope="session")
def bar_time():
    return BAR_TIME


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def valid_config_data():
    """Return valid configuration data."""
    return {
        "instrument": {
            "symbol": "XAUUSD",
            "point": 0.01,
            "contract_size": 100.0,
            "min_stop_distance": 3.0,
        },
        "patterns": {
            "enabled_detectors": ["engulfing", "pin_bar", "liquidity_sweep"],
            "score_offsets": {"pin_bar": -5.0},
        },
        "quality": {
            "thresholds": [5, 7, 9, 11],
        },
        "sizing": {
            "base_risk_pct": 1.0,
            "min_risk_pct": 0.25,
            "max_risk_pct": 2.0,
        },
        "trailing": {
            "strategy": "chandelier",
        },
        "positions": {
            "max_positions": 2,
        },
    }


@pytest.fixture
def config_file(temp_config_dir, valid_config_data):
    """Create a temporary config file with valid data."""
    config_path = temp_config_dir / "tradedesk.json"
    with open(config_path, "w") as f:
        json.dump(valid_config_data, f)
    return config_path


@pytest.fixture
def config_manager(config_file):
    """Create a ConfigManager with valid config."""
    return ConfigManager(config_path=config_file, load_env=False)
