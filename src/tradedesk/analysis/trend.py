"""Trend classification per timeframe.

Directional bias comes from the fast/slow moving-average relationship with an
early-warning exception driven by swing structure:
- price above both averages -> bullish
- price above the fast average while printing higher highs -> bullish
- symmetric rules for bearish, otherwise neutral
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from ..config import TrendConfig
from ..market import MarketSnapshot, TimeframeData
from ..models import Timeframe, TrendDirection, TrendState


logger = logging.getLogger(__name__)


REQUIRED_SERIES = ("close", "high", "low", "fast_ma", "slow_ma")


class TrendClassifier:
    """Maintains a TrendState for each of the three timeframes."""

    TIMEFRAMES = (Timeframe.D1, Timeframe.H4, Timeframe.H1)

    def __init__(self, config: Optional[TrendConfig] = None):
        self.config = config or TrendConfig()
        self._states: Dict[Timeframe, TrendState] = {
            tf: TrendState(timeframe=tf) for tf in self.TIMEFRAMES
        }

    def update(self, snapshot: MarketSnapshot) -> bool:
        """Recompute every timeframe from the snapshot.

        Timeframes with missing data keep their previous state.

        Returns:
            True if all three timeframes were updated
        """
        updated = 0
        for tf in self.TIMEFRAMES:
            state = self.classify(tf, snapshot.frame(tf), snapshot.time)
            if state is None:
                logger.debug(f"Trend {tf.value}: data unavailable, keeping previous state")
                continue
            self._states[tf] = state
            updated += 1

        logger.debug(
            "Trend D1=%s H4=%s H1=%s aligned=%s",
            self.direction(Timeframe.D1).value,
            self.direction(Timeframe.H4).value,
            self.direction(Timeframe.H1).value,
            self.is_aligned(),
        )
        return updated == len(self.TIMEFRAMES)

    def classify(
        self,
        timeframe: Timeframe,
        data: TimeframeData,
        timestamp: Optional[datetime] = None,
    ) -> Optional[TrendState]:
        """Classify a single timeframe.

        Args:
            timeframe: Timeframe being classified
            data: Series for the timeframe (index 0 = most recent)
            timestamp: Bar time stamped on the result

        Returns:
            New TrendState, or None if the series are too short
        """
        lookback = self.config.swing_lookback
        if not data.has_all(REQUIRED_SERIES, 1):
            return None
        if not data.has("high", 2 * lookback + 1) or not data.has("low", 2 * lookback + 1):
            return None

        price = data.value("close", 0)
        fast = data.value("fast_ma", 0)
        slow = data.value("slow_ma", 0)

        higher_high, lower_low = self.swing_structure(data)
        direction = self._direction(price, fast, slow, higher_high, lower_low)
        strength = self._strength(fast, slow, data.value("atr", 0), direction, higher_high, lower_low)

        return TrendState(
            timeframe=timeframe,
            direction=direction,
            strength=strength,
            fast_ma=fast,
            slow_ma=slow,
            higher_high=higher_high,
            lower_low=lower_low,
            timestamp=timestamp,
        )

    def swing_structure(self, data: TimeframeData) -> tuple[bool, bool]:
        """Detect higher-high / lower-low swing structure on closed bars.

        Compares the extreme of the latest `swing_lookback` closed bars with the
        extreme of the preceding block of the same size.
        """
        n = self.config.swing_lookback
        recent_highs = data.window("high", 1, n)
        prior_highs = data.window("high", 1 + n, n)
        recent_lows = data.window("low", 1, n)
        prior_lows = data.window("low", 1 + n, n)
        if len(prior_highs) < n or len(prior_lows) < n:
            return False, False

        higher_high = max(recent_highs) > max(prior_highs)
        lower_low = min(recent_lows) < min(prior_lows)
        return higher_high, lower_low

    def _direction(
        self,
        price: float,
        fast: float,
        slow: float,
        higher_high: bool,
        lower_low: bool,
    ) -> TrendDirection:
        if price > fast and price > slow:
            return TrendDirection.BULLISH
        if price < fast and price < slow:
            return TrendDirection.BEARISH

        if self.config.early_warning_enabled:
            if price > fast and higher_high:
                return TrendDirection.BULLISH
            if price < fast and lower_low:
                return TrendDirection.BEARISH

        return TrendDirection.NEUTRAL

    def _strength(
        self,
        fast: float,
        slow: float,
        atr: Optional[float],
        direction: TrendDirection,
        higher_high: bool,
        lower_low: bool,
    ) -> float:
        cfg = self.config
        separation = 0.0
        if atr and atr > 0:
            separation = min(abs(fast - slow) / atr / cfg.separation_atr_cap, 1.0)

        strength = cfg.separation_weight * separation
        if higher_high or lower_low:
            strength += cfg.structure_weight
        if direction is not TrendDirection.NEUTRAL:
            strength += cfg.direction_weight
        return min(strength, 1.0)

    def state(self, timeframe: Timeframe) -> TrendState:
        return self._states[timeframe]

    def direction(self, timeframe: Timeframe) -> TrendDirection:
        return self._states[timeframe].direction

    def states(self) -> Dict[Timeframe, TrendState]:
        """Copy of the current per-timeframe states."""
        return dict(self._states)

    def is_aligned(self) -> bool:
        """True only when all three timeframes agree and are non-neutral."""
        return is_aligned(self._states.values())

    def dominant_bias(self) -> TrendDirection:
        """Four-hour trend, falling back to the daily trend when neutral."""
        return dominant_bias(self._states)


def is_aligned(states: Iterable[TrendState]) -> bool:
    directions = {s.direction for s in states}
    return len(directions) == 1 and TrendDirection.NEUTRAL not in directions


def dominant_bias(states: Dict[Timeframe, TrendState]) -> TrendDirection:
    h4 = states.get(Timeframe.H4)
    if h4 is not None and h4.direction is not TrendDirection.NEUTRAL:
        return h4.direction
    d1 = states.get(Timeframe.D1)
    return d1.direction if d1 is not None else TrendDirection.NEUTRAL
