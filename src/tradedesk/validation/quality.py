"""Setup quality evaluation.

Points from independent factors are summed and mapped to a tier:

    trend alignment   D1 and H4 agree (non-neutral) = 2, only H4 = 1,
                      +1 all timeframes aligned, +1 direction matches H4
    oscillator bonus  +3 when a reversal oscillator is at an extreme
    regime fit        trending 2, ranging/volatile 1, choppy/unknown 0
    macro alignment   supportive score up to 3, 1 when no intermarket data
    pattern quality   0-2 by pattern name

Tier risk comes from configuration and is scaled by a pattern multiplier.
"""

import logging
from typing import Dict, Optional, Sequence

from ..analysis.context import PipelineContext
from ..config import QualityConfig
from ..models import (
    CandidateSignal,
    Direction,
    QualityTier,
    SetupQuality,
    TrendDirection,
)


logger = logging.getLogger(__name__)


TIERS_ASCENDING = (QualityTier.B, QualityTier.B_PLUS, QualityTier.A, QualityTier.A_PLUS)


def tier_for_points(points: int, thresholds: Sequence[int]) -> QualityTier:
    """Highest tier whose minimum the point total meets."""
    tier = QualityTier.NONE
    for candidate, minimum in zip(TIERS_ASCENDING, thresholds):
        if points >= minimum:
            tier = candidate
    return tier


class SetupQualityEvaluator:
    """Converts market context and pattern identity into a quality tier."""

    def __init__(self, config: Optional[QualityConfig] = None):
        self.config = config or QualityConfig()

    def trend_points(self, direction: Direction, context: PipelineContext) -> int:
        d1, h4 = context.d1_trend, context.h4_trend
        points = 0
        if h4 is not TrendDirection.NEUTRAL and d1 is h4:
            points += 2
        elif h4 is not TrendDirection.NEUTRAL:
            points += 1
        if context.all_aligned:
            points += 1
        if h4.matches(direction):
            points += 1
        return points

    def regime_points(self, context: PipelineContext) -> int:
        return self.config.regime_points.get(context.regime_type.value, 0)

    def macro_points(self, direction: Direction, context: PipelineContext) -> int:
        macro = context.macro
        if not macro.intermarket_available:
            return self.config.macro_fallback_point
        supportive = macro.score_for(direction)
        if supportive <= 0:
            return 0
        return min(supportive, 3)

    def pattern_points(self, pattern: str) -> int:
        for fragment, points in self.config.pattern_points:
            if fragment in pattern:
                return points
        return 0

    def pattern_multiplier(self, pattern: str) -> float:
        cfg = self.config
        multiplier = 1.0
        if "MA Cross" in pattern:
            multiplier *= cfg.ma_cross_multiplier
        if pattern in ("Bullish Pin Bar", "Bullish Engulfing"):
            multiplier *= cfg.bullish_reversal_multiplier
        if "Bearish" in pattern:
            multiplier *= cfg.bearish_multiplier
        return multiplier

    def evaluate(
        self,
        candidate: CandidateSignal,
        context: PipelineContext,
        oscillator_extreme: bool = False,
    ) -> SetupQuality:
        """Score a candidate and assign its tier and risk."""
        breakdown: Dict[str, int] = {
            "trend": self.trend_points(candidate.direction, context),
            "oscillator": self.config.oscillator_bonus if oscillator_extreme else 0,
            "regime": self.regime_points(context),
            "macro": self.macro_points(candidate.direction, context),
            "pattern": self.pattern_points(candidate.pattern),
        }
        points = sum(breakdown.values())
        tier = tier_for_points(points, self.config.thresholds)

        quality = SetupQuality(
            tier=tier,
            points=points,
            base_risk_pct=self.config.tier_risk_pct.get(tier.value, 0.0),
            pattern_multiplier=self.pattern_multiplier(candidate.pattern),
            breakdown=breakdown,
        )
        logger.info(
            f"{candidate.pattern}: quality {tier.value} ({points} pts {breakdown}) "
            f"risk={quality.risk_pct:.2f}%"
        )
        return quality
