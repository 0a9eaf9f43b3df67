"""Setup quality, entry validation and confirmation."""

from .oscillators import OscillatorExtremes
from .session import SessionClock
from .quality import SetupQualityEvaluator, tier_for_points
from .validator import GateOutcome, SignalValidator, ValidationResult
from .confirmation import (
    ConfirmationResult,
    ConfirmationStatus,
    PendingSignal,
    SignalConfirmation,
)

__all__ = [
    "OscillatorExtremes",
    "SessionClock",
    "SetupQualityEvaluator",
    "tier_for_points",
    "GateOutcome",
    "SignalValidator",
    "ValidationResult",
    "ConfirmationResult",
    "ConfirmationStatus",
    "PendingSignal",
    "SignalConfirmation",
]
