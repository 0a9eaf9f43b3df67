"""Adaptive take-profit sizing.

TP multiples (of the initial risk distance) come from a volatility-tier
table and are then adjusted by trend strength, regime and pattern. After the
adjustments TP1 is floored at `min_tp1` and TP2 is kept at least `min_tp_gap`
above TP1. When the nearest opposing swing extreme lies beyond TP2, TP2 is
blended towards it.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import ExitConfig
from ..market import TimeframeData
from ..models import CandidateSignal, Direction, Regime, RegimeState


logger = logging.getLogger(__name__)


@dataclass
class ExitPlan:
    """Take-profit prices and the multiples that produced them."""
    tp1: float
    tp2: float
    tp1_multiple: float
    tp2_multiple: float
    structure_multiple: Optional[float] = None


class AdaptiveExitManager:
    """Computes TP1/TP2 for a new position."""

    def __init__(self, config: Optional[ExitConfig] = None):
        self.config = config or ExitConfig()

    def volatility_table(self, atr_ratio: float) -> Tuple[float, float]:
        cfg = self.config
        if atr_ratio < cfg.low_volatility_ratio:
            return cfg.low_volatility_tp
        if atr_ratio > cfg.high_volatility_ratio:
            return cfg.high_volatility_tp
        return cfg.normal_volatility_tp

    def adx_multiplier(self, adx: float) -> float:
        cfg = self.config
        if adx >= cfg.adx_strong:
            return cfg.adx_strong_mult
        if adx >= cfg.adx_trending:
            return cfg.adx_trending_mult
        if adx < cfg.adx_weak:
            return cfg.adx_weak_mult
        return 1.0

    def regime_multiplier(self, regime: Regime) -> float:
        if regime is Regime.TRENDING:
            return self.config.trending_regime_mult
        if regime is Regime.CHOPPY:
            return self.config.choppy_regime_mult
        return 1.0

    def pattern_multiplier(self, pattern: str) -> float:
        for fragment, multiplier in self.config.pattern_multipliers:
            if fragment in pattern:
                return multiplier
        return 1.0

    def apply_floors(self, tp1: float, tp2: float) -> Tuple[float, float]:
        tp1 = max(tp1, self.config.min_tp1)
        tp2 = max(tp2, tp1 + self.config.min_tp_gap)
        return tp1, tp2

    def multipliers(self, regime: RegimeState, pattern: str = "") -> Tuple[float, float]:
        """TP1/TP2 multiples of risk, floors applied."""
        tp1, tp2 = self.volatility_table(regime.atr_ratio)
        adjustment = (
            self.adx_multiplier(regime.adx)
            * self.regime_multiplier(regime.regime)
            * self.pattern_multiplier(pattern)
        )
        return self.apply_floors(tp1 * adjustment, tp2 * adjustment)

    def targets(
        self,
        entry: float,
        stop: float,
        direction: Direction,
        tp1_multiple: float,
        tp2_multiple: float,
    ) -> Tuple[float, float]:
        """Convert multiples into prices.

        Example: long entry 2000, stop 1990, multiples 1.3/1.8 -> 2013/2018.
        """
        risk = abs(entry - stop)
        sign = direction.sign
        return entry + sign * risk * tp1_multiple, entry + sign * risk * tp2_multiple

    def nearest_structure(
        self,
        data: TimeframeData,
        entry: float,
        direction: Direction,
    ) -> Optional[float]:
        """Nearest swing high above entry (longs) or swing low below (shorts).

        A swing point is a closed bar whose extreme exceeds both neighbours.
        """
        lookback = self.config.structure_lookback
        series = "high" if direction is Direction.LONG else "low"
        values = data.window(series, 0, lookback + 2)
        levels = []
        for i in range(1, len(values) - 1):
            value = values[i]
            if direction is Direction.LONG:
                if value > values[i - 1] and value > values[i + 1] and value > entry:
                    levels.append(value)
            elif value < values[i - 1] and value < values[i + 1] and value < entry:
                levels.append(value)
        if not levels:
            return None
        return min(levels) if direction is Direction.LONG else max(levels)

    def plan(
        self,
        signal: CandidateSignal,
        regime: RegimeState,
        data: Optional[TimeframeData] = None,
    ) -> ExitPlan:
        """Compute targets for a confirmed signal."""
        cfg = self.config
        tp1_mult, tp2_mult = self.multipliers(regime, signal.pattern)
        risk = abs(signal.entry - signal.stop_loss)

        structure_mult = None
        if cfg.structure_enabled and data is not None and risk > 0:
            level = self.nearest_structure(data, signal.entry, signal.direction)
            if level is not None:
                structure_mult = abs(level - signal.entry) / risk
                if structure_mult > tp2_mult:
                    weight = cfg.structure_blend_weight
                    blended = weight * structure_mult + (1 - weight) * tp2_mult
                    logger.debug(
                        f"{signal.pattern}: structure at {structure_mult:.2f}R, "
                        f"TP2 {tp2_mult:.2f}R -> {blended:.2f}R"
                    )
                    tp2_mult = blended
                    tp1_mult, tp2_mult = self.apply_floors(tp1_mult, tp2_mult)

        tp1, tp2 = self.targets(signal.entry, signal.stop_loss, signal.direction, tp1_mult, tp2_mult)
        logger.info(
            f"{signal.pattern}: TP1 {tp1:.2f} ({tp1_mult:.2f}R) TP2 {tp2:.2f} ({tp2_mult:.2f}R)"
        )
        return ExitPlan(tp1, tp2, tp1_mult, tp2_mult, structure_mult)
