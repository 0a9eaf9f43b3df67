"""Base class and shared geometry for pattern detectors.

Detectors look at closed bars only: on a new-bar snapshot index 1 is the last
closed bar. Each detector returns a CandidateSignal or None; nothing raises.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import InstrumentConfig, PatternConfig
from ..market import MarketSnapshot, TimeframeData
from ..models import CandidateSignal, Direction, PatternFamily


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candle:
    """One OHLC bar."""
    open: float
    high: float
    low: float
    close: float

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_high(self) -> float:
        return max(self.open, self.close)

    @property
    def body_low(self) -> float:
        return min(self.open, self.close)


def candle_at(data: TimeframeData, index: int) -> Optional[Candle]:
    """Candle at an index, or None if any price is missing."""
    values = [data.value(name, index) for name in ("open", "high", "low", "close")]
    if any(v is None for v in values):
        return None
    return Candle(*values)


def direction_label(direction: Direction) -> str:
    return "Bullish" if direction is Direction.LONG else "Bearish"


class PatternDetector:
    """Base class for all detectors.

    Subclasses set `name` (registry key), `label` (human pattern name without
    direction), `family`, `required` series and `min_bars`, and implement
    `_detect`.
    """

    name: str = ""
    label: str = ""
    family: PatternFamily = PatternFamily.TREND_FOLLOWING
    required: Tuple[str, ...] = ("open", "high", "low", "close", "atr")
    min_bars: int = 4

    def __init__(
        self,
        config: Optional[PatternConfig] = None,
        instrument: Optional[InstrumentConfig] = None,
    ):
        self.config = config or PatternConfig()
        self.instrument = instrument or InstrumentConfig()

    def detect(self, snapshot: MarketSnapshot) -> Optional[CandidateSignal]:
        """Run the detector on the signal timeframe.

        Returns:
            CandidateSignal on detection, None otherwise (incl. missing data)
        """
        data = snapshot.h1
        if not data.has_all(self.required, self.min_bars):
            return None
        return self._detect(snapshot, data)

    def _detect(self, snapshot: MarketSnapshot, data: TimeframeData) -> Optional[CandidateSignal]:
        raise NotImplementedError

    def pattern_name(self, direction: Direction) -> str:
        return f"{direction_label(direction)} {self.label}"

    def stop_buffer(self, snapshot: MarketSnapshot) -> float:
        """Buffer beyond the pattern extreme, widened by the volatility filter."""
        return self.instrument.stop_buffer * max(snapshot.confluence.volatility_sl_multiplier, 0.0)

    def protective_stop(
        self,
        direction: Direction,
        entry: float,
        extreme: float,
        snapshot: MarketSnapshot,
    ) -> Optional[float]:
        """Stop beyond the pattern extreme, floored at the minimum distance.

        Returns None if the extreme is not on the protective side of entry.
        """
        sign = direction.sign
        if (entry - extreme) * sign <= 0:
            return None
        stop = extreme - sign * self.stop_buffer(snapshot)
        if (entry - stop) * sign < self.instrument.min_stop_distance:
            stop = entry - sign * self.instrument.min_stop_distance
        return stop

    def build_signal(
        self,
        snapshot: MarketSnapshot,
        direction: Direction,
        extreme: float,
        pattern_high: float,
        pattern_low: float,
        target: Optional[float] = None,
    ) -> Optional[CandidateSignal]:
        """Compute entry/stop/target and validate geometry.

        Without an explicit target the target is a fixed multiple of risk.
        """
        entry = snapshot.quote.entry_price(direction)
        stop = self.protective_stop(direction, entry, extreme, snapshot)
        if stop is None:
            logger.debug(
                f"{self.pattern_name(direction)}: extreme {extreme:.2f} on wrong side "
                f"of entry {entry:.2f}, rejected"
            )
            return None

        risk = abs(entry - stop)
        if target is None:
            target = entry + direction.sign * risk * self.config.reward_multiple

        signal = CandidateSignal(
            direction=direction,
            pattern=self.pattern_name(direction),
            family=self.family,
            entry=entry,
            stop_loss=stop,
            take_profit=target,
            detected_at=snapshot.time,
            pattern_high=pattern_high,
            pattern_low=pattern_low,
            source=self.name,
        )
        if not signal.has_valid_geometry:
            logger.debug(f"{signal.pattern}: invalid geometry (risk={signal.risk:.2f}, "
                         f"reward={signal.reward:.2f}), rejected")
            return None
        return signal
