"""Exit management: take-profit sizing, trailing stops, position management."""

from .take_profit import AdaptiveExitManager, ExitPlan
from .trailing import TrailingStopOptimizer
from .position_manager import AccountGuard, PositionManager

__all__ = [
    "AdaptiveExitManager",
    "ExitPlan",
    "TrailingStopOptimizer",
    "AccountGuard",
    "PositionManager",
]
