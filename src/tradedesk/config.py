"""Configuration management for tradedesk.

Every component gets its own frozen dataclass. Values are supplied once at
startup and never change during a session.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

from dotenv import load_dotenv


class TradedeskError(Exception):
    """Base class for tradedesk errors."""
    pass


class ConfigValidationError(TradedeskError):
    """Raised when configuration validation fails."""
    pass


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigValidationError(message)


def _freeze_mappings(config, *names: str) -> None:
    """Replace mapping fields of a frozen config with read-only views."""
    for name in names:
        value = getattr(config, name)
        _require(isinstance(value, Mapping), f"{name} must be a mapping")
        frozen = {
            key: MappingProxyType(dict(item)) if isinstance(item, Mapping) else item
            for key, item in value.items()
        }
        object.__setattr__(config, name, MappingProxyType(frozen))


@dataclass(frozen=True)
class InstrumentConfig:
    """Contract specification of the traded instrument."""
    symbol: str = "XAUUSD"
    point: float = 0.01
    contract_size: float = 100.0     # units per 1.0 lot
    lot_step: float = 0.01
    min_lot: float = 0.01
    max_lot: float = 50.0
    min_stop_distance: float = 3.0   # floor for detector stops (price units)
    stop_buffer: float = 0.5         # offset beyond pattern extreme
    broker_min_stop_distance: float = 0.5

    def __post_init__(self):
        _require(self.point > 0, "instrument.point must be > 0")
        _require(self.contract_size > 0, "instrument.contract_size must be > 0")
        _require(0 < self.min_lot <= self.max_lot, "instrument lot bounds invalid")
        _require(self.lot_step > 0, "instrument.lot_step must be > 0")
        _require(self.min_stop_distance >= 0, "instrument.min_stop_distance must be >= 0")


@dataclass(frozen=True)
class TrendConfig:
    """TrendClassifier parameters."""
    swing_lookback: int = 5
    separation_atr_cap: float = 1.0  # MA separation (in ATR) earning full credit
    separation_weight: float = 0.4
    structure_weight: float = 0.3
    direction_weight: float = 0.3
    early_warning_enabled: bool = True

    def __post_init__(self):
        _require(self.swing_lookback >= 1, "trend.swing_lookback must be >= 1")
        _require(self.separation_atr_cap > 0, "trend.separation_atr_cap must be > 0")


@dataclass(frozen=True)
class RegimeConfig:
    """RegimeClassifier thresholds. Rule order is fixed in code."""
    adx_trending: float = 25.0
    adx_ranging: float = 20.0
    atr_average_period: int = 50
    volatile_atr_ratio: float = 1.3
    choppy_atr_low: float = 0.9
    choppy_atr_high: float = 1.1
    choppy_max_bb_width_pct: float = 1.5
    trending_atr_low: float = 0.8
    trending_atr_high: float = 1.3
    ranging_atr_ratio: float = 0.9
    transition_atr_ratio: float = 1.0
    band_expansion_pct: float = 0.25
    expansion_lookback: int = 5

    def __post_init__(self):
        _require(
            self.adx_ranging < self.adx_trending,
            "regime.adx_ranging must be below regime.adx_trending",
        )
        _require(self.atr_average_period >= 1, "regime.atr_average_period must be >= 1")
        _require(self.expansion_lookback >= 1, "regime.expansion_lookback must be >= 1")


@dataclass(frozen=True)
class MacroConfig:
    """MacroBias parameters."""
    enabled: bool = True
    dxy_ma_period: int = 20
    dxy_momentum_bars: int = 5
    dxy_weight: int = 2
    dxy_inverse: bool = True         # instrument moves against the dollar index
    vix_elevated: float = 20.0
    vix_extreme: float = 30.0
    vix_low: float = 14.0
    vix_momentum_bars: int = 3
    bias_threshold: int = 2
    structure_fallback: bool = True


DEFAULT_DETECTORS = (
    "liquidity_sweep",
    "engulfing",
    "pin_bar",
    "ma_cross_anomaly",
    "sr_bounce",
    "volatility_breakout",
    "bb_mean_reversion",
    "range_box",
    "false_breakout_fade",
    "external_breakout",
)


@dataclass(frozen=True)
class PatternConfig:
    """Detector and scorer parameters."""
    enabled_detectors: Tuple[str, ...] = DEFAULT_DETECTORS
    score_offsets: Mapping[str, float] = field(default_factory=dict)
    reward_multiple: float = 2.0
    # trend-following geometry
    sweep_lookback: int = 10
    engulf_body_ratio: float = 0.8
    pin_wick_ratio: float = 0.66
    pin_body_ratio: float = 0.33
    ma_cross_min_separation_atr: float = 0.05
    sr_lookback: int = 20
    sr_tolerance_atr: float = 0.3
    breakout_lookback: int = 10
    breakout_range_atr: float = 1.5
    # mean-reversion geometry
    mr_max_atr: float = 15.0
    mr_rsi_oversold: float = 30.0
    mr_rsi_overbought: float = 70.0
    box_bars: int = 20
    box_max_width_atr: float = 6.0
    box_edge_fraction: float = 0.2
    # scoring
    base_score: float = 50.0
    regime_fit: Mapping[str, Mapping[str, float]] = field(default_factory=lambda: {
        "trend_following": {
            "trending": 20.0, "volatile": 5.0, "ranging": -15.0,
            "choppy": -20.0, "unknown": 0.0,
        },
        "mean_reversion": {
            "trending": -20.0, "volatile": -15.0, "ranging": 20.0,
            "choppy": 10.0, "unknown": 0.0,
        },
    })
    trend_alignment_bonus: float = 15.0
    trend_alignment_penalty: float = 15.0
    rr_good: float = 1.5
    rr_better: float = 2.0
    rr_best: float = 2.5
    rr_good_bonus: float = 10.0
    rr_better_bonus: float = 15.0
    rr_best_bonus: float = 20.0
    rr_poor_penalty: float = 10.0

    def __post_init__(self):
        _require(len(self.enabled_detectors) == len(set(self.enabled_detectors)),
                 "patterns.enabled_detectors contains duplicates")
        _require(self.reward_multiple > 0, "patterns.reward_multiple must be > 0")
        _require(self.rr_good < self.rr_better < self.rr_best,
                 "patterns risk-reward tiers must be strictly increasing")
        _freeze_mappings(self, "score_offsets", "regime_fit")


@dataclass(frozen=True)
class OscillatorConfig:
    """Thresholds for reversal-oscillator extremes."""
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    stoch_oversold: float = 20.0
    stoch_overbought: float = 80.0
    cci_extreme: float = 150.0
    mfi_oversold: float = 20.0
    mfi_overbought: float = 80.0
    min_confirmations: int = 0       # how many of stoch/cci/mfi must agree with RSI


@dataclass(frozen=True)
class QualityConfig:
    """SetupQualityEvaluator point table and tier risk."""
    thresholds: Tuple[int, int, int, int] = (5, 7, 9, 11)  # B, B+, A, A+
    tier_risk_pct: Mapping[str, float] = field(default_factory=lambda: {
        "none": 0.0, "B": 0.5, "B+": 0.75, "A": 1.0, "A+": 1.5,
    })
    regime_points: Mapping[str, int] = field(default_factory=lambda: {
        "trending": 2, "ranging": 1, "volatile": 1, "unknown": 0, "choppy": 0,
    })
    pattern_points: Tuple[Tuple[str, int], ...] = (
        ("Liquidity Sweep", 2),
        ("Engulfing", 2),
        ("MA Cross", 2),
        ("Pin Bar", 1),
        ("SR Bounce", 1),
        ("Breakout", 1),
        ("Mean Reversion", 1),
        ("Range Box", 1),
        ("False Breakout", 1),
    )
    oscillator_bonus: int = 3
    macro_fallback_point: int = 1
    ma_cross_multiplier: float = 1.2
    bullish_reversal_multiplier: float = 1.1
    bearish_multiplier: float = 0.5

    def __post_init__(self):
        _require(len(self.thresholds) == 4, "quality.thresholds needs four values")
        _require(
            all(a < b for a, b in zip(self.thresholds, self.thresholds[1:])),
            "quality.thresholds must be strictly increasing",
        )
        _require(self.thresholds[0] >= 0, "quality.thresholds must be non-negative")
        _freeze_mappings(self, "tier_risk_pct", "regime_points")


@dataclass(frozen=True)
class SessionConfig:
    """Trading session windows in broker server hours [start, end)."""
    server_utc_offset_hours: int = 2
    asia: Tuple[int, int] = (1, 9)
    london: Tuple[int, int] = (10, 18)
    new_york: Tuple[int, int] = (15, 23)


@dataclass(frozen=True)
class ValidationConfig:
    """SignalValidator gates and exceptions."""
    long_bias_enabled: bool = True
    trust_faster_timeframe: bool = False
    breakout_patterns: Tuple[str, ...] = ("Breakout",)
    mean_reversion_low_strength: float = 0.5
    strong_macro_score: int = 3
    mean_reversion_macro_support: int = 1
    counter_bias_sessions: Tuple[str, ...] = ("asia",)
    liquidity_sweep_exception: bool = True
    macro_opposition: Mapping[str, int] = field(default_factory=lambda: {
        "trending": 3, "ranging": 2, "volatile": 2, "choppy": 1, "unknown": 2,
    })
    confluence_enabled: bool = False
    min_confluence: float = 40.0
    neutral_confluence: float = 50.0
    counter_structure_blocking: bool = False
    momentum_filter_enabled: bool = True

    def __post_init__(self):
        _require(0 <= self.min_confluence <= 100, "validation.min_confluence must be in [0, 100]")
        _freeze_mappings(self, "macro_opposition")


@dataclass(frozen=True)
class ConfirmationConfig:
    """SignalConfirmation parameters."""
    enabled: bool = True
    strictness: float = 0.995
    low_tolerance: float = 0.998

    def __post_init__(self):
        _require(0 < self.strictness <= 1.0, "confirmation.strictness must be in (0, 1]")
        _require(0 < self.low_tolerance <= 1.0, "confirmation.low_tolerance must be in (0, 1]")


@dataclass(frozen=True)
class SizingConfig:
    """DynamicPositionSizer parameters."""
    base_risk_pct: float = 1.0
    min_risk_pct: float = 0.25
    max_risk_pct: float = 2.0
    history_size: int = 200
    min_trades_for_kelly: int = 20
    kelly_cap: float = 0.25
    fractional_kelly: float = 0.25
    kelly_full_weight_trades: int = 50
    min_trades_for_performance: int = 10
    pf_excellent: float = 2.0
    pf_good: float = 1.5
    pf_breakeven: float = 1.0
    pf_excellent_mult: float = 1.25
    pf_good_mult: float = 1.1
    pf_poor_mult: float = 0.7
    low_volatility_ratio: float = 0.8
    high_volatility_ratio: float = 1.5
    low_volatility_mult: float = 1.2
    high_volatility_mult: float = 0.6
    regime_multipliers: Mapping[str, float] = field(default_factory=lambda: {
        "trending": 1.1, "ranging": 0.9, "volatile": 0.7, "choppy": 0.6, "unknown": 0.8,
    })
    drawdown_tier1: float = 0.05
    drawdown_tier2: float = 0.10
    drawdown_tier1_mult: float = 0.75
    drawdown_tier2_mult: float = 0.5
    win_streak_threshold: int = 3
    win_streak_mult: float = 1.2
    loss_streak_threshold: int = 3
    loss_streak_mult: float = 0.8
    quality_multipliers: Mapping[str, float] = field(default_factory=lambda: {
        "none": 0.5, "B": 0.8, "B+": 1.0, "A": 1.1, "A+": 1.2,
    })

    def __post_init__(self):
        _require(0 < self.min_risk_pct <= self.max_risk_pct,
                 "sizing.min_risk_pct must be > 0 and <= sizing.max_risk_pct")
        _require(0 <= self.kelly_cap <= 0.25, "sizing.kelly_cap must be in [0, 0.25]")
        _require(self.history_size >= 1, "sizing.history_size must be >= 1")
        _require(self.kelly_full_weight_trades >= 1, "sizing.kelly_full_weight_trades must be >= 1")
        _require(self.drawdown_tier1 < self.drawdown_tier2,
                 "sizing drawdown tiers must be strictly increasing")
        _require(self.low_volatility_ratio < self.high_volatility_ratio,
                 "sizing volatility ratios must be strictly increasing")
        _freeze_mappings(self, "regime_multipliers", "quality_multipliers")


@dataclass(frozen=True)
class ExitConfig:
    """AdaptiveExitManager take-profit parameters (multiples of initial risk)."""
    low_volatility_ratio: float = 0.8
    high_volatility_ratio: float = 1.3
    low_volatility_tp: Tuple[float, float] = (1.2, 2.0)
    normal_volatility_tp: Tuple[float, float] = (1.5, 2.5)
    high_volatility_tp: Tuple[float, float] = (2.0, 3.5)
    adx_strong: float = 40.0
    adx_trending: float = 25.0
    adx_weak: float = 20.0
    adx_strong_mult: float = 1.2
    adx_trending_mult: float = 1.1
    adx_weak_mult: float = 0.9
    trending_regime_mult: float = 1.1
    choppy_regime_mult: float = 0.85
    pattern_multipliers: Tuple[Tuple[str, float], ...] = (
        ("Breakout", 1.15),
        ("Liquidity Sweep", 1.1),
        ("Mean Reversion", 0.8),
        ("Range Box", 0.8),
        ("False Breakout", 0.85),
    )
    min_tp1: float = 1.2
    min_tp_gap: float = 0.2
    structure_enabled: bool = True
    structure_lookback: int = 30
    structure_blend_weight: float = 0.5

    def __post_init__(self):
        _require(self.min_tp1 > 0, "exits.min_tp1 must be > 0")
        _require(self.min_tp_gap > 0, "exits.min_tp_gap must be > 0")
        _require(0 <= self.structure_blend_weight <= 1,
                 "exits.structure_blend_weight must be in [0, 1]")


TRAILING_STRATEGIES = ("atr", "swing", "parabolic", "chandelier", "stepped", "hybrid")


@dataclass(frozen=True)
class TrailingConfig:
    """TrailingStopOptimizer parameters."""
    strategy: str = "hybrid"
    activation_atr_mult: float = 1.0
    atr_mult: float = 2.0
    swing_bars: int = 5
    chandelier_bars: int = 22
    chandelier_atr_mult: float = 3.0
    step_atr_fraction: float = 0.5
    hybrid_members: Tuple[str, ...] = ("atr", "swing", "parabolic", "chandelier")

    def __post_init__(self):
        _require(self.strategy in TRAILING_STRATEGIES,
                 f"trailing.strategy must be one of {TRAILING_STRATEGIES}")
        _require(all(m in TRAILING_STRATEGIES and m != "hybrid" for m in self.hybrid_members),
                 "trailing.hybrid_members may only name non-hybrid strategies")
        _require(self.step_atr_fraction > 0, "trailing.step_atr_fraction must be > 0")


@dataclass(frozen=True)
class PositionConfig:
    """Per-tick position management and account risk limits."""
    tp1_close_fraction: float = 0.5
    tp2_close_fraction: float = 0.5
    breakeven_buffer: float = 0.1
    breakeven_trigger_r: float = 0.0  # 0 disables the early breakeven move
    max_positions: int = 1
    max_drawdown_close_all_pct: float = 15.0
    daily_loss_limit_pct: float = 5.0

    def __post_init__(self):
        _require(0 < self.tp1_close_fraction <= 1, "positions.tp1_close_fraction must be in (0, 1]")
        _require(0 < self.tp2_close_fraction <= 1, "positions.tp2_close_fraction must be in (0, 1]")
        _require(self.max_positions >= 1, "positions.max_positions must be >= 1")


@dataclass(frozen=True)
class ExecutionConfig:
    """Order retry policy."""
    max_attempts: int = 3

    def __post_init__(self):
        _require(self.max_attempts >= 1, "execution.max_attempts must be >= 1")


@dataclass(frozen=True)
class EngineConfig:
    """Main configuration container."""
    instrument: InstrumentConfig = field(default_factory=InstrumentConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    regime: RegimeConfig = field(default_factory=RegimeConfig)
    macro: MacroConfig = field(default_factory=MacroConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    oscillators: OscillatorConfig = field(default_factory=OscillatorConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    exits: ExitConfig = field(default_factory=ExitConfig)
    trailing: TrailingConfig = field(default_factory=TrailingConfig)
    positions: PositionConfig = field(default_factory=PositionConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)


def _build_section(cls, data: Dict[str, Any], section: str):
    """Build a config dataclass from a dict, rejecting unknown keys."""
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigValidationError(
            f"Unknown keys in '{section}' section: {', '.join(unknown)}"
        )
    kwargs = {}
    for name, value in data.items():
        # JSON has no tuples
        if isinstance(value, list):
            value = tuple(tuple(v) if isinstance(v, list) else v for v in value)
        kwargs[name] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigValidationError(f"Invalid '{section}' section: {e}")


def config_from_dict(data: Dict[str, Any]) -> EngineConfig:
    """Create an EngineConfig from a (JSON-decoded) dictionary."""
    sections = {f.name: f for f in fields(EngineConfig)}
    unknown = sorted(set(data) - set(sections))
    if unknown:
        raise ConfigValidationError(f"Unknown configuration sections: {', '.join(unknown)}")

    kwargs = {}
    for name, section_field in sections.items():
        section_data = data.get(name)
        if section_data is None:
            continue
        if not isinstance(section_data, dict):
            raise ConfigValidationError(f"Section '{name}' must be an object")
        kwargs[name] = _build_section(section_field.default_factory, section_data, name)
    return EngineConfig(**kwargs)


class ConfigManager:
    """Manages loading and validation of configuration."""

    ENV_PREFIX = "TRADEDESK_"

    def __init__(self, config_path: str | Path | None = None, load_env: bool = True):
        """Initialize configuration manager.

        Args:
            config_path: Path to a JSON config file. If None, uses config/tradedesk.json.
            load_env: Whether to load .env file. Set to False for testing.
        """
        self.config_path = Path(config_path) if config_path else Path("config/tradedesk.json")
        self._config: EngineConfig | None = None
        self._load_env = load_env
        if load_env:
            load_dotenv()

    def load(self) -> EngineConfig:
        """Load configuration from file and environment variables.

        Returns:
            Loaded and validated EngineConfig.

        Raises:
            ConfigValidationError: If the file or any value is invalid.
        """
        config_data = self._load_json()
        config = config_from_dict(config_data)
        self._config = self._override_from_env(config)
        return self._config

    def _load_json(self) -> dict[str, Any]:
        """Load JSON configuration file."""
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON in {self.config_path}: {e}")

    def _override_from_env(self, config: EngineConfig) -> EngineConfig:
        """Apply environment overrides (TRADEDESK_*)."""
        if not self._load_env:
            return config

        sizing = config.sizing
        sizing_changes = {}
        if value := os.getenv(f"{self.ENV_PREFIX}BASE_RISK_PCT"):
            sizing_changes["base_risk_pct"] = self._as_float("BASE_RISK_PCT", value)
        if value := os.getenv(f"{self.ENV_PREFIX}MIN_RISK_PCT"):
            sizing_changes["min_risk_pct"] = self._as_float("MIN_RISK_PCT", value)
        if value := os.getenv(f"{self.ENV_PREFIX}MAX_RISK_PCT"):
            sizing_changes["max_risk_pct"] = self._as_float("MAX_RISK_PCT", value)
        if sizing_changes:
            sizing = replace(sizing, **sizing_changes)

        sessions = config.sessions
        if value := os.getenv(f"{self.ENV_PREFIX}SERVER_UTC_OFFSET"):
            try:
                sessions = replace(sessions, server_utc_offset_hours=int(value))
            except ValueError:
                raise ConfigValidationError(
                    f"{self.ENV_PREFIX}SERVER_UTC_OFFSET must be an integer, got '{value}'"
                )

        trailing = config.trailing
        if value := os.getenv(f"{self.ENV_PREFIX}TRAILING_STRATEGY"):
            trailing = replace(trailing, strategy=value.lower())

        return replace(config, sizing=sizing, sessions=sessions, trailing=trailing)

    def _as_float(self, name: str, value: str) -> float:
        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(f"{self.ENV_PREFIX}{name} must be a number, got '{value}'")

    @property
    def config(self) -> EngineConfig:
        """Get loaded configuration."""
        if not self._config:
            raise ConfigValidationError("Configuration not loaded. Call load() first.")
        return self._config
