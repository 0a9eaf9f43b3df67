"""Trading engine: the single-threaded bar/tick event loop.

On each new bar:
    classify trend / regime / macro -> resolve a pending confirmation ->
    detect and score candidates -> quality -> validation -> hold for
    confirmation (or open directly when confirmation is disabled)

On each tick:
    account limits -> partial closes, breakeven and trailing stops

Every component is constructed once and injected; nothing reads another
component's live state outside the snapshot and the pipeline context.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Sequence

from .analysis import MacroBias, PipelineContext, RegimeClassifier, TrendClassifier
from .config import EngineConfig
from .execution import (
    CloseAllOrder,
    ExecutedInstruction,
    ExecutionReport,
    Instruction,
    OpenPositionOrder,
    OrderExecutor,
    OrderRetryPolicy,
    PaperExecutor,
)
from .exits import AccountGuard, AdaptiveExitManager, PositionManager, TrailingStopOptimizer
from .journal import TradeJournal
from .market import Clock, MarketSnapshot, Quote, SystemClock, TimeframeData
from .models import AccountState, CandidateSignal, Position, QualityTier, SetupQuality, Timeframe
from .patterns import PatternDetector, PatternScorer, build_detectors, run_detectors
from .risk import DynamicPositionSizer
from .validation import (
    ConfirmationResult,
    ConfirmationStatus,
    OscillatorExtremes,
    SessionClock,
    SetupQualityEvaluator,
    SignalConfirmation,
    SignalValidator,
    ValidationResult,
)


logger = logging.getLogger(__name__)


@dataclass
class BarResult:
    """What happened on one bar."""
    time: datetime
    context: PipelineContext
    candidates: List[CandidateSignal] = field(default_factory=list)
    selected: Optional[CandidateSignal] = None
    quality: Optional[SetupQuality] = None
    validation: Optional[ValidationResult] = None
    confirmation: Optional[ConfirmationResult] = None
    pending: bool = False
    opened: Optional[Position] = None
    skipped_reason: str = ""


class TradingEngine:
    """Wires the decision pipeline together."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        executor: Optional[OrderExecutor] = None,
        clock: Optional[Clock] = None,
        detectors: Optional[Sequence[PatternDetector]] = None,
    ):
        self.config = config or EngineConfig()
        cfg = self.config
        self.clock = clock or SystemClock()
        self.executor = executor or PaperExecutor()

        self.trend = TrendClassifier(cfg.trend)
        self.regime = RegimeClassifier(cfg.regime)
        self.macro = MacroBias(cfg.macro)

        self.detectors = list(detectors) if detectors is not None else build_detectors(
            cfg.patterns, cfg.instrument
        )
        self.scorer = PatternScorer(cfg.patterns)

        self.oscillators = OscillatorExtremes(cfg.oscillators)
        self.sessions = SessionClock(cfg.sessions, self.clock)
        self.quality = SetupQualityEvaluator(cfg.quality)
        self.validator = SignalValidator(cfg.validation, self.oscillators, self.sessions)
        self.confirmation = SignalConfirmation(cfg.confirmation, cfg.instrument)

        self.sizer = DynamicPositionSizer(cfg.sizing, cfg.instrument)
        self.exits = AdaptiveExitManager(cfg.exits)
        self.positions = PositionManager(
            cfg.positions,
            TrailingStopOptimizer(cfg.trailing, cfg.instrument),
            cfg.instrument,
        )
        self.guard = AccountGuard(cfg.positions)
        self.retry = OrderRetryPolicy(cfg.execution, cfg.instrument)
        self.journal = TradeJournal()

        self.account = AccountState(balance=0.0, equity=0.0)
        self._last_snapshot: Optional[MarketSnapshot] = None
        self._last_quote: Optional[Quote] = None
        self.executed: List[ExecutedInstruction] = []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def update_account(self, account: AccountState) -> None:
        self.account = account
        self.sizer.update_equity(account.balance, account.equity)

    def context(self) -> PipelineContext:
        return PipelineContext(
            trends=self.trend.states(),
            regime=self.regime.state,
            macro=self.macro.state,
        )

    def on_bar(self, snapshot: MarketSnapshot, account: Optional[AccountState] = None) -> BarResult:
        """Full pipeline evaluation on a new bar."""
        if account is not None:
            self.update_account(account)
        self._last_snapshot = snapshot
        self._last_quote = snapshot.quote

        self.trend.update(snapshot)
        self.regime.update(snapshot)
        self.macro.update(snapshot, self.trend.direction(Timeframe.H4))
        context = self.context()
        result = BarResult(time=snapshot.time, context=context)

        if self.confirmation.pending is not None:
            result.confirmation = self._resolve_pending(snapshot, context, result)

        if not self.guard.entries_allowed(snapshot.time):
            result.skipped_reason = "entries blocked for the day"
            logger.info(f"{snapshot.time}: {result.skipped_reason}")
            return result
        if not self.positions.has_capacity():
            result.skipped_reason = f"max positions ({self.config.positions.max_positions}) open"
            logger.debug(f"{snapshot.time}: {result.skipped_reason}")
            return result

        result.candidates = run_detectors(self.detectors, snapshot)
        if not result.candidates:
            logger.debug(f"{snapshot.time}: no pattern")
            return result

        selected = self.scorer.select(result.candidates, context)
        result.selected = selected

        accepted = self._qualify(selected, snapshot, context, result)
        if not accepted:
            return result

        if self.config.confirmation.enabled:
            self.confirmation.hold(selected, snapshot.time)
            result.pending = True
        else:
            result.opened = self._open(selected, snapshot, context, result.quality)
        return result

    def on_tick(
        self,
        quote: Quote,
        account: Optional[AccountState] = None,
        data: Optional[TimeframeData] = None,
    ) -> List[ExecutedInstruction]:
        """Position management and account limits on a price update."""
        if account is not None:
            self.update_account(account)
        self._last_quote = quote
        now = quote.time or self.clock.now()
        if data is None and self._last_snapshot is not None:
            data = self._last_snapshot.h1

        executed: List[ExecutedInstruction] = []
        close_all = self.guard.check(self.account, now)
        if close_all is not None:
            executed.append(self._execute(close_all, now))
            self.confirmation.discard("after account limit")
            return executed

        for instruction in self.positions.manage_all(quote, data):
            done = self._execute(instruction, now)
            self.positions.apply(done.instruction, done.report)
            executed.append(done)
        return executed

    def on_position_closed(
        self,
        ticket: int,
        exit_price: float,
        pnl: float,
        exit_time: Optional[datetime] = None,
    ) -> None:
        """Broker reported a fully closed position."""
        exit_time = exit_time or self.clock.now()
        self.positions.remove(ticket)
        outcome = self.journal.record_close(ticket, exit_time, exit_price, pnl)
        if outcome is not None:
            self.sizer.record_outcome(outcome)

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _qualify(
        self,
        candidate: CandidateSignal,
        snapshot: MarketSnapshot,
        context: PipelineContext,
        result: BarResult,
    ) -> bool:
        extreme = self.oscillators.is_extreme(snapshot.h1, candidate.direction)
        result.quality = self.quality.evaluate(candidate, context, extreme)
        if not result.quality.is_tradeable:
            logger.info(
                f"{candidate.pattern}: Rejected - quality below B ({result.quality.points} pts)"
            )
            return False

        result.validation = self.validator.validate(candidate, snapshot, context)
        return result.validation.accepted

    def _resolve_pending(
        self,
        snapshot: MarketSnapshot,
        context: PipelineContext,
        result: BarResult,
    ) -> ConfirmationResult:
        confirmation = self.confirmation.evaluate(snapshot)
        if confirmation.status is not ConfirmationStatus.CONFIRMED:
            return confirmation

        signal = confirmation.signal
        revalidation = self.validator.validate(signal, snapshot, context)
        if not revalidation.accepted:
            logger.info(f"{signal.pattern}: failed revalidation at confirmation, abandoned")
            return ConfirmationResult(ConfirmationStatus.REJECTED, signal, "revalidation failed")
        if not self.positions.has_capacity() or not self.guard.entries_allowed(snapshot.time):
            return ConfirmationResult(ConfirmationStatus.REJECTED, signal, "entries not allowed")

        extreme = self.oscillators.is_extreme(snapshot.h1, signal.direction)
        quality = self.quality.evaluate(signal, context, extreme)
        if not quality.is_tradeable:
            return ConfirmationResult(ConfirmationStatus.REJECTED, signal, "quality dropped")
        result.opened = self._open(signal, snapshot, context, quality)
        return confirmation

    def _open(
        self,
        signal: CandidateSignal,
        snapshot: MarketSnapshot,
        context: PipelineContext,
        quality: Optional[SetupQuality],
    ) -> Optional[Position]:
        """Size, target and submit a position."""
        decision = self.sizer.calculate(
            signal.pattern,
            regime=context.regime_type,
            atr_ratio=context.regime.atr_ratio,
            quality=quality,
            external_multiplier=snapshot.confluence.volatility_risk_multiplier,
        )
        stop_distance = abs(signal.entry - signal.stop_loss)
        lots = self.sizer.lots_for(decision.risk_pct, self.account.balance, stop_distance)
        if lots <= 0:
            logger.info(f"{signal.pattern}: position size is zero, skipped")
            return None

        plan = self.exits.plan(signal, context.regime, snapshot.h1)
        order = OpenPositionOrder(
            direction=signal.direction,
            lots=lots,
            stop_loss=signal.stop_loss,
            tp1=plan.tp1,
            tp2=plan.tp2,
            tag=f"{signal.pattern} {quality.tier.value if quality else ''}".strip(),
            pattern=signal.pattern,
            risk_pct=decision.risk_pct,
            quality_tier=quality.tier if quality else QualityTier.NONE,
        )
        done = self._execute(order, snapshot.time)
        if not done.report.success:
            return None

        submitted = done.instruction
        entry = done.report.price if done.report.price is not None else signal.entry
        position = Position(
            ticket=done.report.ticket,
            direction=signal.direction,
            pattern=signal.pattern,
            lots=lots,
            entry_price=entry,
            stop_loss=submitted.stop_loss,
            tp1=plan.tp1,
            tp2=plan.tp2,
            open_time=snapshot.time,
            quality_tier=order.quality_tier,
            initial_risk_pct=decision.risk_pct,
        )
        self.positions.add(position)
        self.journal.record_open(position, self.sizer.risk_amount(lots, abs(entry - position.stop_loss)))
        return position

    def _execute(self, instruction: Instruction, at: datetime) -> ExecutedInstruction:
        if isinstance(instruction, CloseAllOrder):
            report: ExecutionReport = self.executor.execute(instruction, self._current_quote())
            if not report.success:
                logger.warning(f"Close all failed: {report.status.value} {report.message}")
            final = instruction
        else:
            report = self.retry.submit(self.executor, instruction, self._current_quote)
            final = instruction
            if report.adjusted_stop is not None and hasattr(instruction, "stop_loss"):
                final = replace(instruction, stop_loss=report.adjusted_stop)
        done = ExecutedInstruction(final, report, at)
        self.executed.append(done)
        return done

    def _current_quote(self) -> Quote:
        return self._last_quote
