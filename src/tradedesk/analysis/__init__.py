"""Market-state classification: trend, regime and macro bias."""

from .trend import TrendClassifier, dominant_bias, is_aligned
from .regime import RegimeClassifier
from .macro import MacroBias
from .context import PipelineContext

__all__ = [
    "TrendClassifier",
    "RegimeClassifier",
    "MacroBias",
    "PipelineContext",
    "dominant_bias",
    "is_aligned",
]
