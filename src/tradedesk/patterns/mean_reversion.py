"""Mean-reversion pattern detectors.

All of them require a quiet market: ATR on the last closed bar must not
exceed `mr_max_atr`. Targets come from the bands or the range, not from a
fixed risk multiple.
"""

from typing import Optional, Tuple

from ..market import MarketSnapshot, TimeframeData
from ..models import CandidateSignal, Direction, PatternFamily
from .base import PatternDetector, candle_at


class MeanReversionDetector(PatternDetector):
    """Adds the low-volatility precondition."""

    family = PatternFamily.MEAN_REVERSION

    def detect(self, snapshot: MarketSnapshot) -> Optional[CandidateSignal]:
        data = snapshot.h1
        if not data.has_all(self.required, self.min_bars):
            return None
        atr = data.value("atr", 1)
        if atr is None or atr <= 0 or atr > self.config.mr_max_atr:
            return None
        return self._detect(snapshot, data)

    def box(self, data: TimeframeData, start: int) -> Optional[Tuple[float, float]]:
        """(bottom, top) of the range over `box_bars` bars from `start`,
        or None if the range is wider than `box_max_width_atr` ATRs."""
        bars = self.config.box_bars
        highs = data.window("high", start, bars)
        lows = data.window("low", start, bars)
        if len(highs) < bars or len(lows) < bars:
            return None
        top, bottom = max(highs), min(lows)
        width = top - bottom
        atr = data.value("atr", 1)
        if width <= 0 or width > self.config.box_max_width_atr * atr:
            return None
        return bottom, top


class BandMeanReversionDetector(MeanReversionDetector):
    """Probe outside the Bollinger band with an oversold/overbought RSI,
    closing back inside. Target is the middle band."""

    name = "bb_mean_reversion"
    label = "BB Mean Reversion"
    required = ("open", "high", "low", "close", "atr", "rsi", "bb_upper", "bb_middle", "bb_lower")
    min_bars = 3

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        if bar is None:
            return None
        cfg = self.config
        lower = data.value("bb_lower", 1)
        upper = data.value("bb_upper", 1)
        middle = data.value("bb_middle", 1)
        rsi_low = min(data.window("rsi", 1, 2))
        rsi_high = max(data.window("rsi", 1, 2))

        if bar.low <= lower and bar.close > lower and rsi_low <= cfg.mr_rsi_oversold:
            return self.build_signal(
                snapshot, Direction.LONG, bar.low, bar.high, bar.low, target=middle,
            )
        if bar.high >= upper and bar.close < upper and rsi_high >= cfg.mr_rsi_overbought:
            return self.build_signal(
                snapshot, Direction.SHORT, bar.high, bar.high, bar.low, target=middle,
            )
        return None


class RangeBoxDetector(MeanReversionDetector):
    """Rejection at the edge of a tight horizontal range, targeting the
    opposite edge."""

    name = "range_box"
    label = "Range Box"

    @property
    def min_bars(self) -> int:
        return self.config.box_bars + 2

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        bar = candle_at(data, 1)
        box = self.box(data, 2)
        if bar is None or box is None:
            return None
        bottom, top = box
        edge = self.config.box_edge_fraction * (top - bottom)

        if bar.low <= bottom + edge and bar.is_bullish and bottom < bar.close < top:
            extreme = min(bar.low, bottom)
            return self.build_signal(
                snapshot, Direction.LONG, extreme, bar.high, extreme, target=top - edge,
            )
        if bar.high >= top - edge and bar.is_bearish and bottom < bar.close < top:
            extreme = max(bar.high, top)
            return self.build_signal(
                snapshot, Direction.SHORT, extreme, extreme, bar.low, target=bottom + edge,
            )
        return None


class FalseBreakoutFadeDetector(MeanReversionDetector):
    """A close outside the range immediately reclaimed by the next bar.
    Target is the range midpoint."""

    name = "false_breakout_fade"
    label = "False Breakout Fade"

    @property
    def min_bars(self) -> int:
        return self.config.box_bars + 3

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        current = candle_at(data, 1)
        breakout_bar = candle_at(data, 2)
        box = self.box(data, 3)
        if current is None or breakout_bar is None or box is None:
            return None
        bottom, top = box
        midpoint = (top + bottom) / 2
        high = max(current.high, breakout_bar.high)
        low = min(current.low, breakout_bar.low)

        if breakout_bar.close < bottom and current.close > bottom and current.is_bullish:
            return self.build_signal(snapshot, Direction.LONG, low, high, low, target=midpoint)
        if breakout_bar.close > top and current.close < top and current.is_bearish:
            return self.build_signal(snapshot, Direction.SHORT, high, high, low, target=midpoint)
        return None
