"""Dynamic position sizing.

Risk per trade starts from the setup's base risk, is blended with a
Kelly-derived risk once a pattern has enough history, and then passes
through a chain of multipliers:

    pattern performance (profit-factor tiers)
    volatility          (ATR ratio, linear between the low/high bands)
    regime
    drawdown protection (two tiers)
    win streak          (only without a drawdown cut)
    loss streak
    setup quality
    external volatility-regime multiplier

The result is clamped to [min_risk_pct, max_risk_pct].

Kelly formula: f* = win_rate - (1 - win_rate) / avg_win_loss_ratio,
clamped to [0, kelly_cap].
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Optional

import numpy as np

from ..config import InstrumentConfig, SizingConfig
from ..models import (
    PatternPerformanceStats,
    QualityTier,
    Regime,
    SetupQuality,
    TradeOutcome,
    TradeResult,
)


logger = logging.getLogger(__name__)


@dataclass
class SizingDecision:
    """Risk percentage and how it was reached."""
    risk_pct: float
    base_risk_pct: float
    kelly_weight: float = 0.0
    multipliers: Dict[str, float] = field(default_factory=dict)


class DynamicPositionSizer:
    """Kelly-blended, multiplier-adjusted position risk."""

    def __init__(
        self,
        config: Optional[SizingConfig] = None,
        instrument: Optional[InstrumentConfig] = None,
    ):
        self.config = config or SizingConfig()
        self.instrument = instrument or InstrumentConfig()
        self._history: Deque[TradeOutcome] = deque(maxlen=self.config.history_size)
        self._stats: Dict[str, PatternPerformanceStats] = {}
        self._win_streak = 0
        self._loss_streak = 0
        self.peak_balance = 0.0
        self.equity = 0.0

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[TradeOutcome]:
        return list(self._history)

    @property
    def win_streak(self) -> int:
        return self._win_streak

    @property
    def loss_streak(self) -> int:
        return self._loss_streak

    def stats(self, pattern: str) -> PatternPerformanceStats:
        if pattern not in self._stats:
            self._stats[pattern] = PatternPerformanceStats(pattern=pattern)
        return self._stats[pattern]

    def all_stats(self) -> Dict[str, PatternPerformanceStats]:
        return dict(self._stats)

    def seed(self, stats: Iterable[PatternPerformanceStats]) -> None:
        """Load prior per-pattern statistics (e.g. from tester reports)."""
        for item in stats:
            self._stats[item.pattern] = item
            self._refresh_kelly(item)
            logger.info(
                f"Seeded {item.pattern}: {item.trades} trades, win rate {item.win_rate:.1%}, "
                f"kelly {item.kelly_fraction:.3f}"
            )

    def record_outcome(self, outcome: TradeOutcome) -> None:
        """Fold a closed trade into history, pattern stats and streaks."""
        self._history.append(outcome)
        stats = self.stats(outcome.pattern)
        stats.record(outcome)
        self._refresh_kelly(stats)

        result = outcome.result
        if result is TradeResult.WIN:
            self._win_streak += 1
            self._loss_streak = 0
        elif result is TradeResult.LOSS:
            self._loss_streak += 1
            self._win_streak = 0

        logger.info(
            f"Recorded {outcome.pattern} {result.value} {outcome.r_multiple:+.2f}R "
            f"(streak W{self._win_streak}/L{self._loss_streak})"
        )

    def _refresh_kelly(self, stats: PatternPerformanceStats) -> None:
        stats.kelly_fraction = self.kelly_fraction(stats)
        stats.recommended_risk_pct = self.kelly_risk_pct(stats)

    # ------------------------------------------------------------------
    # Account state
    # ------------------------------------------------------------------

    def update_equity(self, balance: float, equity: Optional[float] = None) -> None:
        """Track the balance peak and the current equity."""
        self.peak_balance = max(self.peak_balance, balance)
        self.equity = equity if equity is not None else balance

    @property
    def drawdown(self) -> float:
        """(peak_balance - equity) / peak_balance, never negative."""
        if self.peak_balance <= 0:
            return 0.0
        return max((self.peak_balance - self.equity) / self.peak_balance, 0.0)

    # ------------------------------------------------------------------
    # Kelly
    # ------------------------------------------------------------------

    def calculate_kelly_fraction(self, win_rate: float, win_loss_ratio: float) -> float:
        """Kelly fraction clamped to [0, kelly_cap]."""
        if win_loss_ratio <= 0:
            return 0.0
        kelly = win_rate - (1 - win_rate) / win_loss_ratio
        return min(max(kelly, 0.0), self.config.kelly_cap)

    def kelly_fraction(self, stats: PatternPerformanceStats) -> float:
        """Kelly for a pattern, 0 until the minimum sample size is reached."""
        if stats.trades < self.config.min_trades_for_kelly:
            return 0.0
        ratio = stats.win_loss_ratio
        if ratio <= 0 and stats.losses == 0 and stats.wins > 0:
            # no losses yet: treat payoff as the average win
            ratio = max(stats.average_win_r, 1.0)
        return self.calculate_kelly_fraction(stats.win_rate, ratio)

    def kelly_risk_pct(self, stats: PatternPerformanceStats) -> float:
        return self.kelly_fraction(stats) * self.config.fractional_kelly * 100

    def kelly_weight(self, stats: PatternPerformanceStats) -> float:
        """Sample-size weight of the Kelly risk, full at kelly_full_weight_trades."""
        if stats.trades < self.config.min_trades_for_kelly:
            return 0.0
        return min(stats.trades / self.config.kelly_full_weight_trades, 1.0)

    # ------------------------------------------------------------------
    # Multipliers
    # ------------------------------------------------------------------

    def performance_multiplier(self, stats: PatternPerformanceStats) -> float:
        cfg = self.config
        if stats.trades < cfg.min_trades_for_performance:
            return 1.0
        pf = stats.profit_factor
        if pf >= cfg.pf_excellent:
            return cfg.pf_excellent_mult
        if pf >= cfg.pf_good:
            return cfg.pf_good_mult
        if pf >= cfg.pf_breakeven:
            return 1.0
        return cfg.pf_poor_mult

    def volatility_multiplier(self, atr_ratio: float) -> float:
        """Boost below the low band, cut above the high band, interpolate between."""
        cfg = self.config
        return float(np.interp(
            atr_ratio,
            [cfg.low_volatility_ratio, cfg.high_volatility_ratio],
            [cfg.low_volatility_mult, cfg.high_volatility_mult],
        ))

    def regime_multiplier(self, regime: Regime) -> float:
        return self.config.regime_multipliers.get(regime.value, 1.0)

    def drawdown_multiplier(self) -> float:
        cfg = self.config
        drawdown = self.drawdown
        if drawdown >= cfg.drawdown_tier2:
            return cfg.drawdown_tier2_mult
        if drawdown >= cfg.drawdown_tier1:
            return cfg.drawdown_tier1_mult
        return 1.0

    def streak_multiplier(self, drawdown_active: bool) -> float:
        cfg = self.config
        multiplier = 1.0
        if self._win_streak >= cfg.win_streak_threshold and not drawdown_active:
            multiplier *= cfg.win_streak_mult
        if self._loss_streak >= cfg.loss_streak_threshold:
            multiplier *= cfg.loss_streak_mult
        return multiplier

    def quality_multiplier(self, tier: QualityTier) -> float:
        return self.config.quality_multipliers.get(tier.value, 1.0)

    # ------------------------------------------------------------------
    # Risk
    # ------------------------------------------------------------------

    def calculate(
        self,
        pattern: str,
        regime: Regime = Regime.UNKNOWN,
        atr_ratio: float = 1.0,
        quality: Optional[SetupQuality] = None,
        external_multiplier: float = 1.0,
    ) -> SizingDecision:
        """Compute the risk percentage for a new position.

        Args:
            pattern: Pattern name of the setup
            regime: Current regime
            atr_ratio: Current ATR / average ATR
            quality: Setup quality; its tier risk is the starting risk
            external_multiplier: Volatility-regime collaborator multiplier
        """
        cfg = self.config
        base = cfg.base_risk_pct
        if quality is not None and quality.risk_pct > 0:
            base = quality.risk_pct

        stats = self.stats(pattern)
        weight = self.kelly_weight(stats)
        risk = base
        if weight > 0:
            risk = base * (1 - weight) + self.kelly_risk_pct(stats) * weight

        drawdown_mult = self.drawdown_multiplier()
        multipliers = {
            "performance": self.performance_multiplier(stats),
            "volatility": self.volatility_multiplier(atr_ratio),
            "regime": self.regime_multiplier(regime),
            "drawdown": drawdown_mult,
            "streak": self.streak_multiplier(drawdown_active=drawdown_mult < 1.0),
            "quality": self.quality_multiplier(quality.tier) if quality else 1.0,
            "external": max(external_multiplier, 0.0),
        }
        for value in multipliers.values():
            risk *= value

        clamped = min(max(risk, cfg.min_risk_pct), cfg.max_risk_pct)
        logger.info(
            f"{pattern}: risk {clamped:.2f}% (base {base:.2f}%, kelly weight {weight:.2f}, "
            f"raw {risk:.2f}%)"
        )
        logger.debug(f"{pattern}: sizing multipliers {multipliers}")
        return SizingDecision(
            risk_pct=clamped,
            base_risk_pct=base,
            kelly_weight=weight,
            multipliers=multipliers,
        )

    def lots_for(self, risk_pct: float, balance: float, stop_distance: float) -> float:
        """Convert a risk percentage into a lot size.

        Lots are floored to the lot step. Returns 0.0 when the position would
        be smaller than the minimum lot.
        """
        inst = self.instrument
        if balance <= 0 or stop_distance <= 0 or risk_pct <= 0:
            return 0.0
        risk_amount = balance * risk_pct / 100
        raw = risk_amount / (stop_distance * inst.contract_size)
        steps = math.floor(round(raw / inst.lot_step, 6))
        lots = round(steps * inst.lot_step, 8)
        if lots < inst.min_lot:
            logger.info(f"Position of {raw:.4f} lots below minimum lot {inst.min_lot}, skipped")
            return 0.0
        return min(lots, inst.max_lot)

    def risk_amount(self, lots: float, stop_distance: float) -> float:
        """Currency at risk for a position."""
        return lots * stop_distance * self.instrument.contract_size
