"""Signal validation gate cascade.

Gates run in a fixed order and the first failing gate rejects the signal:

1. Long-horizon bias (price vs daily long MA) with explicit exceptions
2. Daily / four-hour trend conflict
3. Regime-specific direction filter
4. Macro opposition (threshold per regime)
5. Momentum filter veto (when the collaborator provides a verdict)
6. Structure-confluence veto (when enabled and a score is available)

Gates have no side effects; the result records which gate decided and which
exceptions were used.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..analysis.context import PipelineContext
from ..config import ValidationConfig
from ..market import MarketSnapshot
from ..models import CandidateSignal, Direction, PatternFamily, Regime, TrendDirection
from .oscillators import OscillatorExtremes
from .session import SessionClock


logger = logging.getLogger(__name__)


@dataclass
class GateOutcome:
    """Outcome of one gate."""
    passed: bool
    gate: str
    reason: str = ""
    exception: Optional[str] = None


@dataclass
class ValidationResult:
    """Outcome of the full cascade."""
    accepted: bool
    gate: str = ""
    reason: str = ""
    exceptions: List[str] = field(default_factory=list)
    outcomes: List[GateOutcome] = field(default_factory=list)


class SignalValidator:
    """Applies the entry gates to a selected candidate."""

    GATES = ("long_bias", "mtf_conflict", "regime", "macro", "momentum", "confluence")

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        oscillators: Optional[OscillatorExtremes] = None,
        sessions: Optional[SessionClock] = None,
    ):
        self.config = config or ValidationConfig()
        self.oscillators = oscillators or OscillatorExtremes()
        self.sessions = sessions or SessionClock()

    def validate(
        self,
        candidate: CandidateSignal,
        snapshot: MarketSnapshot,
        context: PipelineContext,
    ) -> ValidationResult:
        """Run every gate in order, stopping at the first rejection."""
        extreme = self.oscillators.is_extreme(snapshot.h1, candidate.direction)
        checks = (
            lambda: self.check_long_bias(candidate, snapshot, context, extreme),
            lambda: self.check_timeframe_conflict(context, extreme),
            lambda: self.check_regime(candidate, context, extreme),
            lambda: self.check_macro(candidate, context, extreme),
            lambda: self.check_momentum(candidate, snapshot),
            lambda: self.check_confluence(candidate, snapshot),
        )

        result = ValidationResult(accepted=True)
        for check in checks:
            outcome = check()
            result.outcomes.append(outcome)
            if outcome.exception:
                result.exceptions.append(outcome.exception)
            if not outcome.passed:
                result.accepted = False
                result.gate = outcome.gate
                result.reason = outcome.reason
                logger.info(f"{candidate.pattern}: Rejected at {outcome.gate} - {outcome.reason}")
                return result

        if result.exceptions:
            logger.info(f"{candidate.pattern}: Accepted with exceptions {result.exceptions}")
        else:
            logger.info(f"{candidate.pattern}: Accepted by all gates")
        return result

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def long_horizon_bias(self, snapshot: MarketSnapshot) -> Optional[Direction]:
        """Direction favoured by price relative to the daily long MA."""
        long_ma = snapshot.d1.value("long_ma", 0)
        if long_ma is None or snapshot.price == long_ma:
            return None
        return Direction.LONG if snapshot.price > long_ma else Direction.SHORT

    def check_long_bias(
        self,
        candidate: CandidateSignal,
        snapshot: MarketSnapshot,
        context: PipelineContext,
        oscillator_extreme: bool,
    ) -> GateOutcome:
        gate = "long_bias"
        if not self.config.long_bias_enabled:
            return GateOutcome(True, gate, "disabled")

        bias = self.long_horizon_bias(snapshot)
        if bias is None:
            return GateOutcome(True, gate, "no long-horizon bias")
        if bias is candidate.direction:
            return GateOutcome(True, gate, f"with {bias.value} bias")

        exception = self._long_bias_exception(candidate, snapshot, context, oscillator_extreme)
        if exception:
            return GateOutcome(True, gate, f"against {bias.value} bias", exception)
        return GateOutcome(
            False, gate,
            f"{candidate.direction.value} against {bias.value} long-horizon bias",
        )

    def _long_bias_exception(
        self,
        candidate: CandidateSignal,
        snapshot: MarketSnapshot,
        context: PipelineContext,
        oscillator_extreme: bool,
    ) -> Optional[str]:
        cfg = self.config
        direction = candidate.direction
        macro_support = context.macro.score_for(direction)

        is_breakout = any(name in candidate.pattern for name in cfg.breakout_patterns)
        if is_breakout and context.h4_trend.matches(direction):
            return "h4_breakout"

        if macro_support >= cfg.strong_macro_score:
            return "strong_macro"

        in_counter_session = self.sessions.in_any(cfg.counter_bias_sessions, snapshot.time)
        if (
            candidate.family is PatternFamily.MEAN_REVERSION
            and context.h4_strength < cfg.mean_reversion_low_strength
            and (macro_support >= cfg.mean_reversion_macro_support or in_counter_session)
        ):
            return "weak_trend_mean_reversion"

        if oscillator_extreme:
            return "oscillator_extreme"

        if in_counter_session:
            return "session"
        return None

    def check_timeframe_conflict(
        self,
        context: PipelineContext,
        oscillator_extreme: bool,
    ) -> GateOutcome:
        gate = "mtf_conflict"
        d1, h4 = context.d1_trend, context.h4_trend
        conflict = (
            d1 is not TrendDirection.NEUTRAL
            and h4 is not TrendDirection.NEUTRAL
            and d1 is not h4
        )
        if not conflict:
            return GateOutcome(True, gate)
        if self.config.trust_faster_timeframe:
            return GateOutcome(True, gate, "D1/H4 conflict", "trust_faster_timeframe")
        if oscillator_extreme:
            return GateOutcome(True, gate, "D1/H4 conflict", "oscillator_extreme")
        return GateOutcome(False, gate, f"D1 {d1.value} vs H4 {h4.value}")

    def check_regime(
        self,
        candidate: CandidateSignal,
        context: PipelineContext,
        oscillator_extreme: bool,
    ) -> GateOutcome:
        gate = "regime"
        regime = context.regime_type
        direction = candidate.direction

        if regime in (Regime.TRENDING, Regime.RANGING, Regime.VOLATILE):
            bias = context.dominant_bias
            if not bias.opposes(direction):
                return GateOutcome(True, gate)
            if oscillator_extreme:
                return GateOutcome(True, gate, f"against {bias.value}", "oscillator_extreme")
            if self.config.liquidity_sweep_exception and "Liquidity Sweep" in candidate.pattern:
                return GateOutcome(True, gate, f"against {bias.value}", "liquidity_sweep")
            return GateOutcome(
                False, gate,
                f"{direction.value} against {bias.value} trend in {regime.value} regime",
            )

        # choppy / unknown: dominant trend bias only
        if not context.dominant_bias.opposes(direction):
            return GateOutcome(True, gate)
        if oscillator_extreme:
            return GateOutcome(True, gate, f"{regime.value} regime", "oscillator_extreme")
        return GateOutcome(False, gate, f"{direction.value} against bias in {regime.value} regime")

    def check_macro(
        self,
        candidate: CandidateSignal,
        context: PipelineContext,
        oscillator_extreme: bool,
    ) -> GateOutcome:
        gate = "macro"
        regime = context.regime_type.value
        threshold = self.config.macro_opposition.get(regime, 2)
        opposition = -context.macro.score_for(candidate.direction)
        if opposition < threshold:
            return GateOutcome(True, gate)
        if oscillator_extreme:
            return GateOutcome(True, gate, f"macro opposition {opposition}", "oscillator_extreme")
        return GateOutcome(
            False, gate,
            f"macro score {context.macro.score} opposes {candidate.direction.value} "
            f"(threshold {threshold} in {regime})",
        )

    def check_momentum(self, candidate: CandidateSignal, snapshot: MarketSnapshot) -> GateOutcome:
        gate = "momentum"
        if not self.config.momentum_filter_enabled:
            return GateOutcome(True, gate, "disabled")
        verdict = snapshot.confluence.momentum_ok(candidate.direction)
        if verdict is False:
            return GateOutcome(False, gate, f"momentum filter failed for {candidate.direction.value}")
        return GateOutcome(True, gate)

    def check_confluence(self, candidate: CandidateSignal, snapshot: MarketSnapshot) -> GateOutcome:
        gate = "confluence"
        cfg = self.config
        confluence = snapshot.confluence
        score = confluence.structure_score
        if not cfg.confluence_enabled or score is None:
            return GateOutcome(True, gate, "unavailable")

        if score < cfg.min_confluence:
            return GateOutcome(False, gate, f"confluence {score:.0f} below {cfg.min_confluence:.0f}")

        if cfg.counter_structure_blocking:
            against = candidate.direction.opposite
            if (
                not confluence.supports(candidate.direction)
                and confluence.zone_direction is against
                and confluence.last_break is against
                and score < cfg.neutral_confluence
            ):
                return GateOutcome(
                    False, gate,
                    f"inside {against.value} zone after {against.value} break "
                    f"(confluence {score:.0f})",
                )
        return GateOutcome(True, gate)
