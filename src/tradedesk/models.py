"""Core data models for the tradedesk decision engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


class Direction(Enum):
    """Trade direction."""
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short."""
        return 1 if self is Direction.LONG else -1

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class TrendDirection(Enum):
    """Directional bias of a single timeframe."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    def matches(self, direction: Direction) -> bool:
        """Check whether this bias supports a trade direction."""
        if direction is Direction.LONG:
            return self is TrendDirection.BULLISH
        return self is TrendDirection.BEARISH

    def opposes(self, direction: Direction) -> bool:
        """Check whether this bias points against a trade direction."""
        return self is not TrendDirection.NEUTRAL and not self.matches(direction)


class Timeframe(Enum):
    """Timeframes consumed by the engine."""
    H1 = "H1"
    H4 = "H4"
    D1 = "D1"


class Regime(Enum):
    """Market regime classification."""
    TRENDING = "trending"
    RANGING = "ranging"
    VOLATILE = "volatile"
    CHOPPY = "choppy"
    UNKNOWN = "unknown"


class MacroBiasDirection(Enum):
    """Intermarket bias."""
    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"


class PatternFamily(Enum):
    """Pattern family used for regime-fit scoring."""
    TREND_FOLLOWING = "trend_following"
    MEAN_REVERSION = "mean_reversion"


class QualityTier(Enum):
    """Setup quality tier, ordered from worst to best."""
    NONE = "none"
    B = "B"
    B_PLUS = "B+"
    A = "A"
    A_PLUS = "A+"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = [
    QualityTier.NONE,
    QualityTier.B,
    QualityTier.B_PLUS,
    QualityTier.A,
    QualityTier.A_PLUS,
]


class TradeResult(Enum):
    """Outcome classification of a closed trade."""
    WIN = "WIN"
    LOSS = "LOSS"
    BE = "BE"


@dataclass
class TrendState:
    """Directional state of one timeframe, recomputed every bar.

    Attributes:
        timeframe: Timeframe this state describes
        direction: Bullish / bearish / neutral bias
        strength: Weighted strength score in [0, 1]
        fast_ma: Fast moving average value used
        slow_ma: Slow moving average value used
        higher_high: Swing structure printed a higher high
        lower_low: Swing structure printed a lower low
        timestamp: Bar time the state was computed for
    """
    timeframe: Timeframe
    direction: TrendDirection = TrendDirection.NEUTRAL
    strength: float = 0.0
    fast_ma: float = 0.0
    slow_ma: float = 0.0
    higher_high: bool = False
    lower_low: bool = False
    timestamp: Optional[datetime] = None


@dataclass
class RegimeState:
    """Result of regime classification."""
    regime: Regime = Regime.UNKNOWN
    adx: float = 0.0
    atr: float = 0.0
    atr_average: float = 0.0
    bb_width_pct: float = 0.0
    volatility_expanding: bool = False

    @property
    def atr_ratio(self) -> float:
        """Current ATR relative to its average (1.0 when unknown)."""
        if self.atr_average <= 0:
            return 1.0
        return self.atr / self.atr_average


@dataclass
class MacroState:
    """Intermarket bias.

    Attributes:
        bias: Bullish / neutral / bearish
        score: Signed integer score, positive is bullish for the instrument
        driver_scores: Sub-score per driver ("dxy", "vix", "structure")
        dxy_available: Currency-index data was present
        vix_available: Volatility-index data was present
    """
    bias: MacroBiasDirection = MacroBiasDirection.NEUTRAL
    score: int = 0
    driver_scores: Dict[str, int] = field(default_factory=dict)
    dxy_available: bool = False
    vix_available: bool = False

    @property
    def intermarket_available(self) -> bool:
        return self.dxy_available or self.vix_available

    def score_for(self, direction: Direction) -> int:
        """Macro score oriented to a trade direction (positive = supportive)."""
        return self.score * direction.sign


@dataclass
class CandidateSignal:
    """A setup emitted by a pattern detector.

    Transient: created during detection/scoring and discarded after selection
    unless it wins and passes validation.
    """
    direction: Direction
    pattern: str
    family: PatternFamily
    entry: float
    stop_loss: float
    take_profit: float
    detected_at: datetime
    pattern_high: float = 0.0
    pattern_low: float = 0.0
    score: float = 0.0
    source: str = ""

    @property
    def risk(self) -> float:
        """Distance from entry to stop in price units."""
        return (self.entry - self.stop_loss) * self.direction.sign

    @property
    def reward(self) -> float:
        return (self.take_profit - self.entry) * self.direction.sign

    @property
    def risk_reward(self) -> float:
        if self.risk <= 0:
            return 0.0
        return self.reward / self.risk

    @property
    def has_valid_geometry(self) -> bool:
        """Stop on the protective side of entry, target on the profit side."""
        return self.risk > 0 and self.reward > 0


@dataclass
class SetupQuality:
    """Quality tier assigned to a setup and the risk it earns."""
    tier: QualityTier
    points: int
    base_risk_pct: float
    pattern_multiplier: float
    breakdown: Dict[str, int] = field(default_factory=dict)

    @property
    def risk_pct(self) -> float:
        return self.base_risk_pct * self.pattern_multiplier

    @property
    def is_tradeable(self) -> bool:
        return self.tier is not QualityTier.NONE


@dataclass
class Position:
    """An open position managed tick by tick.

    tp2 is only evaluated once tp1_closed is set, and at_breakeven is set no
    later than the TP1 partial close.
    """
    ticket: int
    direction: Direction
    pattern: str
    lots: float
    entry_price: float
    stop_loss: float
    tp1: float
    tp2: float
    open_time: datetime
    quality_tier: QualityTier
    initial_risk_pct: float
    initial_stop: float = 0.0
    tp1_closed: bool = False
    tp2_closed: bool = False
    at_breakeven: bool = False
    remaining_lots: float = 0.0

    def __post_init__(self):
        if self.initial_stop == 0.0:
            self.initial_stop = self.stop_loss
        if self.remaining_lots == 0.0:
            self.remaining_lots = self.lots

    @property
    def initial_risk(self) -> float:
        """Entry-to-original-stop distance in price units."""
        return abs(self.entry_price - self.initial_stop)

    def profit_distance(self, price: float) -> float:
        """Favourable excursion of price from entry (negative when losing)."""
        return (price - self.entry_price) * self.direction.sign

    def r_multiple(self, price: float) -> float:
        if self.initial_risk <= 0:
            return 0.0
        return self.profit_distance(price) / self.initial_risk

    def improves_stop(self, new_stop: float) -> bool:
        """True when new_stop is strictly more protective than the current stop."""
        if self.direction is Direction.LONG:
            return new_stop > self.stop_loss
        return new_stop < self.stop_loss


@dataclass
class TradeOutcome:
    """A closed trade as seen by the position sizer."""
    pattern: str
    r_multiple: float
    pnl: float
    closed_at: Optional[datetime] = None

    @property
    def result(self) -> TradeResult:
        if self.pnl > 0:
            return TradeResult.WIN
        if self.pnl < 0:
            return TradeResult.LOSS
        return TradeResult.BE


@dataclass
class PatternPerformanceStats:
    """Aggregate statistics per pattern, accumulated for the whole session."""
    pattern: str
    trades: int = 0
    wins: int = 0
    losses: int = 0
    gross_win_r: float = 0.0
    gross_loss_r: float = 0.0
    kelly_fraction: float = 0.0
    recommended_risk_pct: float = 0.0

    @property
    def win_rate(self) -> float:
        if self.trades == 0:
            return 0.0
        return self.wins / self.trades

    @property
    def average_r(self) -> float:
        if self.trades == 0:
            return 0.0
        return (self.gross_win_r - self.gross_loss_r) / self.trades

    @property
    def average_win_r(self) -> float:
        return self.gross_win_r / self.wins if self.wins else 0.0

    @property
    def average_loss_r(self) -> float:
        return self.gross_loss_r / self.losses if self.losses else 0.0

    @property
    def win_loss_ratio(self) -> float:
        """Average win over average loss, in R."""
        if self.average_loss_r <= 0:
            return 0.0
        return self.average_win_r / self.average_loss_r

    @property
    def profit_factor(self) -> float:
        if self.gross_loss_r <= 0:
            return float("inf") if self.gross_win_r > 0 else 0.0
        return self.gross_win_r / self.gross_loss_r

    def record(self, outcome: TradeOutcome) -> None:
        """Fold one closed trade into the aggregates."""
        self.trades += 1
        result = outcome.result
        if result is TradeResult.WIN:
            self.wins += 1
            self.gross_win_r += abs(outcome.r_multiple)
        elif result is TradeResult.LOSS:
            self.losses += 1
            self.gross_loss_r += abs(outcome.r_multiple)


@dataclass
class TrailState:
    """Per-position bookkeeping used by stepped and hybrid trailing."""
    ticket: int
    highest_price: float
    lowest_price: float
    steps_taken: int = 0
    step_size: float = 0.0
    active: bool = False

    def track(self, price: float) -> None:
        self.highest_price = max(self.highest_price, price)
        self.lowest_price = min(self.lowest_price, price)


@dataclass
class AccountState:
    """Balance and floating equity reported by the broker."""
    balance: float
    equity: float
