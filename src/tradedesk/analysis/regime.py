"""Regime classification from ADX, ATR ratio and Bollinger-band width.

Ordered cascade, first match wins:
1. volatility expanding or ATR ratio > 1.3           -> VOLATILE
2. ADX < ranging, ATR ratio in [0.9, 1.1], BBW < 1.5% -> CHOPPY
3. ADX > trending, ATR ratio in [0.8, 1.3]            -> TRENDING
4. ADX < ranging, ATR ratio < 0.9                     -> RANGING
5. ranging <= ADX <= trending                         -> TRENDING if ATR ratio >= 1.0 else RANGING
6. ADX < ranging                                      -> RANGING
otherwise                                             -> UNKNOWN

Reordering the rules changes outcomes at boundary values.
"""

import logging
import math
from typing import Optional

import numpy as np

from ..config import RegimeConfig
from ..market import MarketSnapshot, TimeframeData
from ..models import Regime, RegimeState, Timeframe


logger = logging.getLogger(__name__)


class RegimeClassifier:
    """Classifies market regime on the signal timeframe."""

    def __init__(
        self,
        config: Optional[RegimeConfig] = None,
        timeframe: Timeframe = Timeframe.H1,
    ):
        self.config = config or RegimeConfig()
        self.timeframe = timeframe
        self._state = RegimeState()

    @property
    def state(self) -> RegimeState:
        return self._state

    def update(self, snapshot: MarketSnapshot) -> bool:
        """Recompute the regime from the snapshot.

        Returns:
            False (and keeps the previous state) if data is unavailable
        """
        state = self.evaluate(snapshot.frame(self.timeframe))
        if state is None:
            logger.debug("Regime: data unavailable, keeping previous state")
            return False
        if state.regime is not self._state.regime:
            logger.info(
                f"Regime changed {self._state.regime.value} -> {state.regime.value} "
                f"(ADX={state.adx:.1f}, ATR ratio={state.atr_ratio:.2f}, "
                f"BBW={state.bb_width_pct:.2f}%)"
            )
        self._state = state
        return True

    def evaluate(self, data: TimeframeData) -> Optional[RegimeState]:
        """Build a RegimeState from indicator series.

        Args:
            data: Series with adx, atr and Bollinger bands

        Returns:
            RegimeState, or None if any required series is missing
        """
        cfg = self.config
        if not data.has("adx") or not data.has("atr", cfg.atr_average_period):
            return None
        if not data.has_all(("bb_upper", "bb_middle", "bb_lower"), cfg.expansion_lookback + 1):
            return None

        adx = data.value("adx", 0)
        atr = data.value("atr", 0)
        atr_average = float(np.mean(data.window("atr", 0, cfg.atr_average_period)))
        bb_width = self.band_width_pct(data, 0)
        values = (adx, atr, atr_average, bb_width)
        if any(v is None or math.isnan(v) for v in values):
            return None

        expanding = self.is_volatility_expanding(data)
        atr_ratio = atr / atr_average if atr_average > 0 else 1.0
        regime = self.classify(adx, atr_ratio, bb_width, expanding)

        return RegimeState(
            regime=regime,
            adx=adx,
            atr=atr,
            atr_average=atr_average,
            bb_width_pct=bb_width,
            volatility_expanding=expanding,
        )

    def classify(
        self,
        adx: float,
        atr_ratio: float,
        bb_width_pct: float,
        volatility_expanding: bool = False,
    ) -> Regime:
        """Apply the ordered rule cascade. Exactly one regime results."""
        cfg = self.config
        below_ranging = adx < cfg.adx_ranging
        above_trending = adx > cfg.adx_trending

        if volatility_expanding or atr_ratio > cfg.volatile_atr_ratio:
            return Regime.VOLATILE
        if (
            below_ranging
            and cfg.choppy_atr_low <= atr_ratio <= cfg.choppy_atr_high
            and bb_width_pct < cfg.choppy_max_bb_width_pct
        ):
            return Regime.CHOPPY
        if above_trending and cfg.trending_atr_low <= atr_ratio <= cfg.trending_atr_high:
            return Regime.TRENDING
        if below_ranging and atr_ratio < cfg.ranging_atr_ratio:
            return Regime.RANGING
        if cfg.adx_ranging <= adx <= cfg.adx_trending:
            if atr_ratio >= cfg.transition_atr_ratio:
                return Regime.TRENDING
            return Regime.RANGING
        if below_ranging:
            return Regime.RANGING
        return Regime.UNKNOWN

    def band_width_pct(self, data: TimeframeData, index: int) -> Optional[float]:
        """Bollinger-band width relative to the middle band, in percent."""
        upper = data.value("bb_upper", index)
        lower = data.value("bb_lower", index)
        middle = data.value("bb_middle", index)
        if upper is None or lower is None or not middle:
            return None
        return (upper - lower) / middle * 100

    def is_volatility_expanding(self, data: TimeframeData) -> bool:
        """Bands widened beyond the expansion threshold while ATR is rising."""
        cfg = self.config
        now = self.band_width_pct(data, 0)
        before = self.band_width_pct(data, cfg.expansion_lookback)
        if now is None or before is None or before <= 0:
            return False
        atr_now = data.value("atr", 0)
        atr_before = data.value("atr", cfg.expansion_lookback)
        if atr_now is None or atr_before is None:
            return False
        return now > before * (1 + cfg.band_expansion_pct) and atr_now > atr_before
