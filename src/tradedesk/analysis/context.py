"""Pipeline context handed from the classifiers to the downstream gates."""

from dataclasses import dataclass, field
from typing import Dict

from ..models import (
    MacroState,
    Regime,
    RegimeState,
    Timeframe,
    TrendDirection,
    TrendState,
)
from .trend import dominant_bias, is_aligned


@dataclass(frozen=True)
class PipelineContext:
    """Classifier output for one bar, passed by value.

    Attributes:
        trends: TrendState per timeframe
        regime: Current regime classification
        macro: Current macro bias
    """
    trends: Dict[Timeframe, TrendState] = field(default_factory=dict)
    regime: RegimeState = field(default_factory=RegimeState)
    macro: MacroState = field(default_factory=MacroState)

    def trend(self, timeframe: Timeframe) -> TrendState:
        return self.trends.get(timeframe) or TrendState(timeframe=timeframe)

    @property
    def d1_trend(self) -> TrendDirection:
        return self.trend(Timeframe.D1).direction

    @property
    def h4_trend(self) -> TrendDirection:
        return self.trend(Timeframe.H4).direction

    @property
    def h4_strength(self) -> float:
        return self.trend(Timeframe.H4).strength

    @property
    def dominant_bias(self) -> TrendDirection:
        return dominant_bias(self.trends)

    @property
    def all_aligned(self) -> bool:
        return len(self.trends) == 3 and is_aligned(self.trends.values())

    @property
    def regime_type(self) -> Regime:
        return self.regime.regime
