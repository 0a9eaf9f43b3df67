"""Market snapshot passed through the pipeline each bar.

All series are time-ordered with index 0 = most recent. On a new-bar event
index 0 is the bar that just opened, so index 1 is the last closed bar.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence

from .models import Direction, Timeframe


SERIES_FIELDS = (
    "open", "high", "low", "close",
    "fast_ma", "slow_ma", "long_ma",
    "rsi", "macd_main", "macd_signal",
    "stoch_main", "stoch_signal",
    "cci", "mfi", "adx", "atr",
    "bb_upper", "bb_middle", "bb_lower",
    "sar",
)


@dataclass(frozen=True)
class TimeframeData:
    """Price and indicator series for one timeframe."""
    open: Sequence[float] = ()
    high: Sequence[float] = ()
    low: Sequence[float] = ()
    close: Sequence[float] = ()
    fast_ma: Sequence[float] = ()
    slow_ma: Sequence[float] = ()
    long_ma: Sequence[float] = ()
    rsi: Sequence[float] = ()
    macd_main: Sequence[float] = ()
    macd_signal: Sequence[float] = ()
    stoch_main: Sequence[float] = ()
    stoch_signal: Sequence[float] = ()
    cci: Sequence[float] = ()
    mfi: Sequence[float] = ()
    adx: Sequence[float] = ()
    atr: Sequence[float] = ()
    bb_upper: Sequence[float] = ()
    bb_middle: Sequence[float] = ()
    bb_lower: Sequence[float] = ()
    sar: Sequence[float] = ()

    def has(self, name: str, length: int = 1) -> bool:
        """Check that a series exists with at least `length` values."""
        series = getattr(self, name, ())
        return series is not None and len(series) >= length

    def has_all(self, names: Sequence[str], length: int = 1) -> bool:
        return all(self.has(name, length) for name in names)

    def value(self, name: str, index: int = 0) -> Optional[float]:
        """Value of a series at an index, or None if unavailable."""
        series = getattr(self, name, ())
        if series is None or index >= len(series):
            return None
        return float(series[index])

    def window(self, name: str, start: int, count: int) -> Sequence[float]:
        """Slice `count` values starting at `start` (towards the past)."""
        series = getattr(self, name, ()) or ()
        return tuple(series[start:start + count])

    @property
    def bars(self) -> int:
        return len(self.close)


@dataclass(frozen=True)
class Quote:
    """Current bid/ask."""
    bid: float
    ask: float
    time: Optional[datetime] = None

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> float:
        return self.ask - self.bid

    def entry_price(self, direction: Direction) -> float:
        """Longs fill at the ask, shorts at the bid."""
        return self.ask if direction is Direction.LONG else self.bid

    def exit_price(self, direction: Direction) -> float:
        return self.bid if direction is Direction.LONG else self.ask


@dataclass(frozen=True)
class IntermarketData:
    """Optional intermarket series (index 0 = most recent)."""
    dxy_close: Sequence[float] = ()
    vix_close: Sequence[float] = ()


@dataclass(frozen=True)
class ExternalBreakout:
    """Candidate produced by the external breakout detector."""
    direction: Direction
    entry: float
    stop_loss: float
    take_profit: float
    pattern_high: float = 0.0
    pattern_low: float = 0.0


@dataclass(frozen=True)
class ConfluenceInputs:
    """Narrow numeric/boolean interfaces of the auxiliary filters.

    Attributes:
        structure_score: Structure-confluence score 0-100, None if unavailable
        supports_long: Structure analyzer supports a long
        supports_short: Structure analyzer supports a short
        zone_direction: Direction favoured by the zone price is inside, if any
        last_break: Direction of the most recent structural break, if any
        momentum_long_ok: Momentum filter verdict for longs (None = no verdict)
        momentum_short_ok: Momentum filter verdict for shorts
        breakout: Candidate from the breakout detector
        volatility_risk_multiplier: Risk multiplier from the volatility filter
        volatility_sl_multiplier: Stop-loss multiplier from the volatility filter
    """
    structure_score: Optional[float] = None
    supports_long: bool = False
    supports_short: bool = False
    zone_direction: Optional[Direction] = None
    last_break: Optional[Direction] = None
    momentum_long_ok: Optional[bool] = None
    momentum_short_ok: Optional[bool] = None
    breakout: Optional[ExternalBreakout] = None
    volatility_risk_multiplier: float = 1.0
    volatility_sl_multiplier: float = 1.0

    def supports(self, direction: Direction) -> bool:
        return self.supports_long if direction is Direction.LONG else self.supports_short

    def momentum_ok(self, direction: Direction) -> Optional[bool]:
        if direction is Direction.LONG:
            return self.momentum_long_ok
        return self.momentum_short_ok


@dataclass(frozen=True)
class MarketSnapshot:
    """Immutable view of the market handed to every component on a bar."""
    time: datetime
    quote: Quote
    frames: Dict[Timeframe, TimeframeData] = field(default_factory=dict)
    intermarket: Optional[IntermarketData] = None
    confluence: ConfluenceInputs = field(default_factory=ConfluenceInputs)

    def frame(self, timeframe: Timeframe) -> TimeframeData:
        return self.frames.get(timeframe) or TimeframeData()

    @property
    def h1(self) -> TimeframeData:
        return self.frame(Timeframe.H1)

    @property
    def h4(self) -> TimeframeData:
        return self.frame(Timeframe.H4)

    @property
    def d1(self) -> TimeframeData:
        return self.frame(Timeframe.D1)

    @property
    def price(self) -> float:
        return self.quote.mid


class Clock:
    """Time source. Session logic reads time only through a clock."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a given instant, for tests and replays."""

    def __init__(self, moment: datetime):
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = moment

    def advance(self, **kwargs) -> datetime:
        self._moment = self._moment + timedelta(**kwargs)
        return self._moment
