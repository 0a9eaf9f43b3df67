"""Trend-following pattern detectors.

Every detector checks the bullish form first and the bearish form second, so a
detector emits at most one candidate per bar.
"""

import logging
from typing import Optional

from ..market import MarketSnapshot, TimeframeData
from ..models import CandidateSignal, Direction, PatternFamily
from .base import PatternDetector, candle_at


logger = logging.getLogger(__name__)


class LiquiditySweepDetector(PatternDetector):
    """Bar runs the stops beyond a recent extreme and closes back inside.

    Bullish: last closed low undercuts the lowest low of the preceding
    `sweep_lookback` bars, then closes above it in the upper half of its range.
    """

    name = "liquidity_sweep"
    label = "Liquidity Sweep"

    @property
    def min_bars(self) -> int:
        return self.config.sweep_lookback + 2

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        if bar is None or bar.range <= 0:
            return None
        lookback = self.config.sweep_lookback
        prior_low = min(data.window("low", 2, lookback))
        prior_high = max(data.window("high", 2, lookback))
        midpoint = bar.low + bar.range / 2

        if bar.low < prior_low and bar.close > prior_low and bar.close >= midpoint:
            return self.build_signal(snapshot, Direction.LONG, bar.low, bar.high, bar.low)
        if bar.high > prior_high and bar.close < prior_high and bar.close <= midpoint:
            return self.build_signal(snapshot, Direction.SHORT, bar.high, bar.high, bar.low)
        return None


class EngulfingDetector(PatternDetector):
    """Two-bar reversal where the latest body swallows the prior body."""

    name = "engulfing"
    label = "Engulfing"
    min_bars = 3

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        current = candle_at(data, 1)
        prior = candle_at(data, 2)
        if current is None or prior is None or prior.body <= 0:
            return None
        if current.body < self.config.engulf_body_ratio * prior.body:
            return None

        high = max(current.high, prior.high)
        low = min(current.low, prior.low)

        if (
            prior.is_bearish and current.is_bullish
            and current.open <= prior.close and current.close >= prior.open
        ):
            return self.build_signal(snapshot, Direction.LONG, low, high, low)
        if (
            prior.is_bullish and current.is_bearish
            and current.open >= prior.close and current.close <= prior.open
        ):
            return self.build_signal(snapshot, Direction.SHORT, high, high, low)
        return None


class PinBarDetector(PatternDetector):
    """Long rejection wick with a small body at the end of the range."""

    name = "pin_bar"
    label = "Pin Bar"
    min_bars = 4

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        if bar is None or bar.range <= 0:
            return None
        cfg = self.config
        if bar.body > cfg.pin_body_ratio * bar.range:
            return None

        recent_lows = data.window("low", 2, 2)
        recent_highs = data.window("high", 2, 2)

        if bar.lower_wick >= cfg.pin_wick_ratio * bar.range and bar.low <= min(recent_lows):
            return self.build_signal(snapshot, Direction.LONG, bar.low, bar.high, bar.low)
        if bar.upper_wick >= cfg.pin_wick_ratio * bar.range and bar.high >= max(recent_highs):
            return self.build_signal(snapshot, Direction.SHORT, bar.high, bar.high, bar.low)
        return None


class MACrossAnomalyDetector(PatternDetector):
    """Fresh fast/slow MA cross with price already committed to the new side.

    The cross must happen between the last two closed bars, the separation
    after the cross must exceed a fraction of ATR and the closed bar must
    finish beyond the fast average.
    """

    name = "ma_cross_anomaly"
    label = "MA Cross Anomaly"
    required = ("open", "high", "low", "close", "atr", "fast_ma", "slow_ma")
    min_bars = 4

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        if bar is None:
            return None
        fast_now, fast_prev = data.value("fast_ma", 1), data.value("fast_ma", 2)
        slow_now, slow_prev = data.value("slow_ma", 1), data.value("slow_ma", 2)
        atr = data.value("atr", 1)
        if not atr or atr <= 0:
            return None

        separation = abs(fast_now - slow_now)
        if separation < self.config.ma_cross_min_separation_atr * atr:
            return None

        highs = data.window("high", 1, 3)
        lows = data.window("low", 1, 3)

        if fast_prev <= slow_prev and fast_now > slow_now and bar.close > fast_now:
            return self.build_signal(snapshot, Direction.LONG, min(lows), max(highs), min(lows))
        if fast_prev >= slow_prev and fast_now < slow_now and bar.close < fast_now:
            return self.build_signal(snapshot, Direction.SHORT, max(highs), max(highs), min(lows))
        return None


class SRBounceDetector(PatternDetector):
    """Rejection from the lowest low / highest high of the lookback window."""

    name = "sr_bounce"
    label = "SR Bounce"

    @property
    def min_bars(self) -> int:
        return self.config.sr_lookback + 2

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        atr = data.value("atr", 1)
        if bar is None or not atr or atr <= 0:
            return None
        cfg = self.config
        support = min(data.window("low", 2, cfg.sr_lookback))
        resistance = max(data.window("high", 2, cfg.sr_lookback))
        tolerance = cfg.sr_tolerance_atr * atr

        if abs(bar.low - support) <= tolerance and bar.is_bullish and bar.close > support:
            extreme = min(bar.low, support)
            return self.build_signal(snapshot, Direction.LONG, extreme, bar.high, extreme)
        if abs(bar.high - resistance) <= tolerance and bar.is_bearish and bar.close < resistance:
            extreme = max(bar.high, resistance)
            return self.build_signal(snapshot, Direction.SHORT, extreme, extreme, bar.low)
        return None


class VolatilityBreakoutDetector(PatternDetector):
    """Wide-range bar closing beyond the recent high/low."""

    name = "volatility_breakout"
    label = "Volatility Breakout"

    @property
    def min_bars(self) -> int:
        return self.config.breakout_lookback + 2

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        atr = data.value("atr", 1)
        if bar is None or not atr or atr <= 0:
            return None
        cfg = self.config
        if bar.range < cfg.breakout_range_atr * atr:
            return None

        prior_high = max(data.window("high", 2, cfg.breakout_lookback))
        prior_low = min(data.window("low", 2, cfg.breakout_lookback))

        if bar.is_bullish and bar.close > prior_high:
            return self.build_signal(snapshot, Direction.LONG, bar.low, bar.high, bar.low)
        if bar.is_bearish and bar.close < prior_low:
            return self.build_signal(snapshot, Direction.SHORT, bar.high, bar.high, bar.low)
        return None


class ExternalBreakoutDetector(PatternDetector):
    """Adapts the external breakout detector's candidate into the pool."""

    name = "external_breakout"
    label = "External Breakout"
    required = ()
    min_bars = 0

    def detect(self, snapshot: MarketSnapshot) -> Optional[CandidateSignal]:
        breakout = snapshot.confluence.breakout
        if breakout is None:
            return None

        signal = CandidateSignal(
            direction=breakout.direction,
            pattern=self.pattern_name(breakout.direction),
            family=PatternFamily.TREND_FOLLOWING,
            entry=breakout.entry,
            stop_loss=breakout.stop_loss,
            take_profit=breakout.take_profit,
            detected_at=snapshot.time,
            pattern_high=breakout.pattern_high or max(breakout.entry, breakout.stop_loss),
            pattern_low=breakout.pattern_low or min(breakout.entry, breakout.stop_loss),
            source=self.name,
        )
        if not signal.has_valid_geometry:
            logger.debug(f"{signal.pattern}: external candidate has invalid geometry, ignored")
            return None
        return signal
