"""Risk management: adaptive position sizing."""

from .sizing import DynamicPositionSizer, SizingDecision

__all__ = ["DynamicPositionSizer", "SizingDecision"]
