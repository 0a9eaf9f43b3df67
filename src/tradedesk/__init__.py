"""
tradedesk - Multi-strategy trading-decision engine

Classifies market state, detects and scores candidate setups, gates them
through entry validation and confirmation, sizes risk adaptively and manages
exits for a single instrument traded on hourly bars.
"""

__version__ = "1.0.0"
__author__ = "tradedesk Team"

from .models import (
    Direction,
    TrendDirection,
    Regime,
    QualityTier,
    CandidateSignal,
    Position,
    PatternPerformanceStats,
)
from .config import ConfigManager, ConfigValidationError, EngineConfig, TradedeskError
from .market import MarketSnapshot, Quote, TimeframeData
from .engine import BarResult, TradingEngine

__all__ = [
    "Direction",
    "TrendDirection",
    "Regime",
    "QualityTier",
    "CandidateSignal",
    "Position",
    "PatternPerformanceStats",
    "ConfigManager",
    "ConfigValidationError",
    "EngineConfig",
    "TradedeskError",
    "MarketSnapshot",
    "Quote",
    "TimeframeData",
    "BarResult",
    "TradingEngine",
]
