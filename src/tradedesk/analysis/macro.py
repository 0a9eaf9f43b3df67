"""Intermarket macro bias.

Scores the instrument's bias from the dollar index (DXY) and the volatility
index (VIX). When neither series is available the score falls back to price
structure on the higher timeframes.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np

from ..config import MacroConfig
from ..market import MarketSnapshot
from ..models import MacroBiasDirection, MacroState, TrendDirection


logger = logging.getLogger(__name__)


class MacroBias:
    """Computes a signed integer macro score and a bias."""

    def __init__(self, config: Optional[MacroConfig] = None):
        self.config = config or MacroConfig()
        self._state = MacroState()

    @property
    def state(self) -> MacroState:
        return self._state

    def update(
        self,
        snapshot: MarketSnapshot,
        h4_trend: TrendDirection = TrendDirection.NEUTRAL,
    ) -> MacroState:
        """Recompute the macro state.

        Args:
            snapshot: Current market snapshot
            h4_trend: Four-hour trend, used by the structure fallback
        """
        if not self.config.enabled:
            self._state = MacroState()
            return self._state

        cfg = self.config
        drivers: Dict[str, int] = {}
        intermarket = snapshot.intermarket

        dxy_score = self.dxy_score(intermarket.dxy_close) if intermarket else None
        vix_score = self.vix_score(intermarket.vix_close) if intermarket else None
        if dxy_score is not None:
            drivers["dxy"] = dxy_score
        if vix_score is not None:
            drivers["vix"] = vix_score

        if not drivers and cfg.structure_fallback:
            structure = self.structure_score(snapshot, h4_trend)
            if structure is not None:
                drivers["structure"] = structure

        score = sum(drivers.values())
        self._state = MacroState(
            bias=self.bias_for(score),
            score=score,
            driver_scores=drivers,
            dxy_available=dxy_score is not None,
            vix_available=vix_score is not None,
        )
        logger.debug(f"Macro bias {self._state.bias.value} score={score} drivers={drivers}")
        return self._state

    def bias_for(self, score: int) -> MacroBiasDirection:
        if score >= self.config.bias_threshold:
            return MacroBiasDirection.BULLISH
        if score <= -self.config.bias_threshold:
            return MacroBiasDirection.BEARISH
        return MacroBiasDirection.NEUTRAL

    def dxy_score(self, closes: Sequence[float]) -> Optional[int]:
        """Score dollar-index momentum.

        A dollar below its moving average and lower than `dxy_momentum_bars`
        ago is weak; strong symmetric. With an inverse relationship a weak
        dollar scores bullish for the instrument.
        """
        cfg = self.config
        needed = max(cfg.dxy_ma_period, cfg.dxy_momentum_bars + 1)
        if closes is None or len(closes) < needed:
            return None

        current = float(closes[0])
        average = float(np.mean(closes[:cfg.dxy_ma_period]))
        past = float(closes[cfg.dxy_momentum_bars])

        if current < average and current < past:
            dollar = -1
        elif current > average and current > past:
            dollar = 1
        else:
            dollar = 0

        sign = -1 if cfg.dxy_inverse else 1
        return dollar * sign * cfg.dxy_weight

    def vix_score(self, closes: Sequence[float]) -> Optional[int]:
        """Score risk sentiment from the volatility index.

        Rising fear supports the safe-haven trade, complacency weighs on it.
        """
        cfg = self.config
        if closes is None or len(closes) < cfg.vix_momentum_bars + 1:
            return None

        current = float(closes[0])
        past = float(closes[cfg.vix_momentum_bars])
        rising = current > past

        if current >= cfg.vix_extreme:
            return 2
        if current >= cfg.vix_elevated and rising:
            return 1
        if current <= cfg.vix_low and not rising:
            return -1
        return 0

    def structure_score(
        self,
        snapshot: MarketSnapshot,
        h4_trend: TrendDirection,
    ) -> Optional[int]:
        """Fallback score from daily long-period MA position and the H4 trend."""
        long_ma = snapshot.d1.value("long_ma", 0)
        if long_ma is None:
            return None

        score = 1 if snapshot.price > long_ma else -1
        if h4_trend is TrendDirection.BULLISH:
            score += 1
        elif h4_trend is TrendDirection.BEARISH:
            score -= 1
        return score
