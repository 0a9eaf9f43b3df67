"""One-bar signal confirmation.

A validated signal is held with its pattern-bar high/low. On the next
completed bar it is confirmed or discarded; there is no second chance.

Long confirmation:
    close > pattern_high * strictness
    close > open
    low  >= pattern_low * low_tolerance
Shorts mirror this with the factors reflected around 1.0.

Entry is recomputed from the quote at confirmation time; the structural stop
is kept and the target preserves the original reward multiple.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from ..config import ConfirmationConfig, InstrumentConfig
from ..market import MarketSnapshot
from ..models import CandidateSignal, Direction
from ..patterns.base import candle_at


logger = logging.getLogger(__name__)


class ConfirmationStatus(Enum):
    NONE = "none"             # nothing pending or still waiting for the next bar
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass
class PendingSignal:
    """A validated candidate waiting for its confirmation bar."""
    candidate: CandidateSignal
    pattern_high: float
    pattern_low: float
    created_at: datetime


@dataclass
class ConfirmationResult:
    status: ConfirmationStatus
    signal: Optional[CandidateSignal] = None
    reason: str = ""

    @property
    def confirmed(self) -> bool:
        return self.status is ConfirmationStatus.CONFIRMED


class SignalConfirmation:
    """Holds at most one pending signal."""

    def __init__(
        self,
        config: Optional[ConfirmationConfig] = None,
        instrument: Optional[InstrumentConfig] = None,
    ):
        self.config = config or ConfirmationConfig()
        self.instrument = instrument or InstrumentConfig()
        self._pending: Optional[PendingSignal] = None

    @property
    def pending(self) -> Optional[PendingSignal]:
        return self._pending

    def hold(self, candidate: CandidateSignal, created_at: Optional[datetime] = None) -> PendingSignal:
        """Store a candidate, replacing any previous pending signal."""
        if self._pending is not None:
            logger.info(f"Replacing pending {self._pending.candidate.pattern} with {candidate.pattern}")
        self._pending = PendingSignal(
            candidate=candidate,
            pattern_high=candidate.pattern_high,
            pattern_low=candidate.pattern_low,
            created_at=created_at or candidate.detected_at,
        )
        logger.info(
            f"{candidate.pattern}: pending confirmation "
            f"(high={candidate.pattern_high:.2f} low={candidate.pattern_low:.2f})"
        )
        return self._pending

    def discard(self, reason: str = "") -> None:
        if self._pending is not None:
            logger.info(f"{self._pending.candidate.pattern}: pending signal discarded {reason}".rstrip())
        self._pending = None

    def is_confirmed(self, pending: PendingSignal, snapshot: MarketSnapshot) -> bool:
        """Check the last closed bar of the snapshot against the pattern bar."""
        bar = candle_at(snapshot.h1, 1)
        if bar is None:
            return False
        cfg = self.config
        if pending.candidate.direction is Direction.LONG:
            return (
                bar.close > pending.pattern_high * cfg.strictness
                and bar.close > bar.open
                and bar.low >= pending.pattern_low * cfg.low_tolerance
            )
        return (
            bar.close < pending.pattern_low * (2 - cfg.strictness)
            and bar.close < bar.open
            and bar.high <= pending.pattern_high * (2 - cfg.low_tolerance)
        )

    def evaluate(self, snapshot: MarketSnapshot) -> ConfirmationResult:
        """Resolve the pending signal on a new bar.

        The pending signal is cleared whatever the outcome.
        """
        pending = self._pending
        if pending is None:
            return ConfirmationResult(ConfirmationStatus.NONE)
        if snapshot.time <= pending.created_at:
            return ConfirmationResult(ConfirmationStatus.NONE, reason="confirmation bar not closed")

        self._pending = None
        candidate = pending.candidate
        if not self.is_confirmed(pending, snapshot):
            logger.info(f"{candidate.pattern}: not confirmed, discarded")
            return ConfirmationResult(ConfirmationStatus.REJECTED, reason="not confirmed")

        signal = self.reprice(candidate, snapshot)
        if signal is None:
            return ConfirmationResult(ConfirmationStatus.REJECTED, reason="invalid geometry at current price")

        logger.info(
            f"{signal.pattern}: confirmed, entry {candidate.entry:.2f} -> {signal.entry:.2f} "
            f"sl={signal.stop_loss:.2f} tp={signal.take_profit:.2f}"
        )
        return ConfirmationResult(ConfirmationStatus.CONFIRMED, signal=signal)

    def reprice(self, candidate: CandidateSignal, snapshot: MarketSnapshot) -> Optional[CandidateSignal]:
        """Recompute entry/stop/target against the current quote."""
        sign = candidate.direction.sign
        entry = snapshot.quote.entry_price(candidate.direction)
        stop = candidate.stop_loss

        if (entry - stop) * sign <= 0:
            logger.warning(
                f"{candidate.pattern}: price {entry:.2f} moved through stop {stop:.2f}, rejected"
            )
            return None
        if (entry - stop) * sign < self.instrument.min_stop_distance:
            stop = entry - sign * self.instrument.min_stop_distance

        reward_multiple = candidate.risk_reward
        risk = (entry - stop) * sign
        target = entry + sign * risk * reward_multiple
        repriced = replace(candidate, entry=entry, stop_loss=stop, take_profit=target,
                           detected_at=snapshot.time)
        if not repriced.has_valid_geometry:
            logger.warning(f"{candidate.pattern}: invalid geometry after repricing, rejected")
            return None
        return repriced
