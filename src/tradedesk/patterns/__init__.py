"""Pattern detection and candidate selection."""

from .base import Candle, PatternDetector, candle_at
from .trend_following import (
    LiquiditySweepDetector,
    EngulfingDetector,
    PinBarDetector,
    MACrossAnomalyDetector,
    SRBounceDetector,
    VolatilityBreakoutDetector,
    ExternalBreakoutDetector,
)
from .mean_reversion import (
    MeanReversionDetector,
    BandMeanReversionDetector,
    RangeBoxDetector,
    FalseBreakoutFadeDetector,
)
from .registry import DETECTOR_REGISTRY, build_detectors
from .scorer import PatternScorer, run_detectors

__all__ = [
    "Candle",
    "PatternDetector",
    "candle_at",
    "LiquiditySweepDetector",
    "EngulfingDetector",
    "PinBarDetector",
    "MACrossAnomalyDetector",
    "SRBounceDetector",
    "VolatilityBreakoutDetector",
    "ExternalBreakoutDetector",
    "MeanReversionDetector",
    "BandMeanReversionDetector",
    "RangeBoxDetector",
    "FalseBreakoutFadeDetector",
    "DETECTOR_REGISTRY",
    "build_detectors",
    "PatternScorer",
    "run_detectors",
]
