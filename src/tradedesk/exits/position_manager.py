"""Per-tick management of open positions and account risk limits.

For every open position, in order:
1. optional early breakeven at `breakeven_trigger_r`
2. TP1 partial close, then breakeven plus buffer
3. TP2 partial close (only after TP1)
4. trailing stop on the remainder

Instructions are returned to the caller for execution; position state only
changes when `apply` is called with a successful report.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from ..config import InstrumentConfig, PositionConfig
from ..execution import (
    CloseAllOrder,
    ExecutionReport,
    Instruction,
    ModifyStopOrder,
    PartialCloseOrder,
)
from ..market import Quote, TimeframeData
from ..models import AccountState, Direction, Position
from .trailing import TrailingStopOptimizer


logger = logging.getLogger(__name__)


class PositionManager:
    """Owns the open positions of the engine."""

    def __init__(
        self,
        config: Optional[PositionConfig] = None,
        trailing: Optional[TrailingStopOptimizer] = None,
        instrument: Optional[InstrumentConfig] = None,
    ):
        self.config = config or PositionConfig()
        self.instrument = instrument or InstrumentConfig()
        self.trailing = trailing or TrailingStopOptimizer(instrument=self.instrument)
        self._positions: Dict[int, Position] = {}

    @property
    def positions(self) -> List[Position]:
        return list(self._positions.values())

    def get(self, ticket: int) -> Optional[Position]:
        return self._positions.get(ticket)

    def count(self) -> int:
        return len(self._positions)

    def has_capacity(self) -> bool:
        return len(self._positions) < self.config.max_positions

    def add(self, position: Position) -> None:
        self._positions[position.ticket] = position
        logger.info(
            f"Ticket {position.ticket}: opened {position.direction.value} {position.pattern} "
            f"{position.lots} lots @ {position.entry_price:.2f} sl={position.stop_loss:.2f} "
            f"tp1={position.tp1:.2f} tp2={position.tp2:.2f}"
        )

    def remove(self, ticket: int) -> Optional[Position]:
        self.trailing.forget(ticket)
        return self._positions.pop(ticket, None)

    def breakeven_level(self, position: Position) -> float:
        return position.entry_price + position.direction.sign * self.config.breakeven_buffer

    def _reached(self, position: Position, price: float, level: float) -> bool:
        if position.direction is Direction.LONG:
            return price >= level
        return price <= level

    def _close_lots(self, position: Position, fraction: float) -> float:
        step = self.instrument.lot_step
        lots = round(int(round(position.remaining_lots * fraction / step, 6)) * step, 8)
        return min(max(lots, self.instrument.min_lot), position.remaining_lots)

    def manage(
        self,
        position: Position,
        quote: Quote,
        data: Optional[TimeframeData] = None,
    ) -> List[Instruction]:
        """Instructions for one position on a tick."""
        cfg = self.config
        price = quote.exit_price(position.direction)
        instructions: List[Instruction] = []
        pending_stop = position.stop_loss

        def propose_stop(stop: float, reason: str) -> None:
            nonlocal pending_stop
            improves = stop > pending_stop if position.direction is Direction.LONG else stop < pending_stop
            if improves:
                pending_stop = stop
                instructions.append(ModifyStopOrder(position.ticket, stop, reason))

        if (
            not position.at_breakeven
            and cfg.breakeven_trigger_r > 0
            and position.r_multiple(price) >= cfg.breakeven_trigger_r
        ):
            propose_stop(self.breakeven_level(position), "breakeven")

        if not position.tp1_closed and self._reached(position, price, position.tp1):
            lots = self._close_lots(position, cfg.tp1_close_fraction)
            instructions.append(PartialCloseOrder(position.ticket, cfg.tp1_close_fraction, lots, "TP1"))
            propose_stop(self.breakeven_level(position), "breakeven after TP1")
        elif (
            position.tp1_closed
            and not position.tp2_closed
            and self._reached(position, price, position.tp2)
        ):
            lots = self._close_lots(position, cfg.tp2_close_fraction)
            instructions.append(PartialCloseOrder(position.ticket, cfg.tp2_close_fraction, lots, "TP2"))

        if position.at_breakeven:
            # a failed breakeven modify is retried on later ticks
            propose_stop(self.breakeven_level(position), "breakeven")

        if data is not None:
            trail = self.trailing.update(position, price, data)
            if trail is not None:
                propose_stop(trail, "trailing")

        return instructions

    def manage_all(self, quote: Quote, data: Optional[TimeframeData] = None) -> List[Instruction]:
        instructions: List[Instruction] = []
        for position in self.positions:
            instructions.extend(self.manage(position, quote, data))
        return instructions

    def apply(self, instruction: Instruction, report: ExecutionReport) -> None:
        """Update position state after an instruction was executed."""
        if not report.success:
            return
        if isinstance(instruction, ModifyStopOrder):
            position = self._positions.get(instruction.ticket)
            if position is None or not position.improves_stop(instruction.stop_loss):
                return
            position.stop_loss = instruction.stop_loss
            if instruction.reason.startswith("breakeven"):
                position.at_breakeven = True
            logger.info(f"Ticket {position.ticket}: SL -> {position.stop_loss:.2f} ({instruction.reason})")
        elif isinstance(instruction, PartialCloseOrder):
            position = self._positions.get(instruction.ticket)
            if position is None:
                return
            position.remaining_lots = round(max(position.remaining_lots - instruction.lots, 0.0), 8)
            if instruction.reason == "TP1":
                position.tp1_closed = True
                position.at_breakeven = True
            elif instruction.reason == "TP2":
                position.tp2_closed = True
            logger.info(
                f"Ticket {position.ticket}: {instruction.reason} closed {instruction.lots} lots, "
                f"{position.remaining_lots} remaining"
            )


class AccountGuard:
    """Account-level drawdown and daily-loss limits.

    Breaching either limit produces a close-all instruction and blocks new
    entries until the next trading day.
    """

    def __init__(self, config: Optional[PositionConfig] = None):
        self.config = config or PositionConfig()
        self.peak_balance = 0.0
        self._day: Optional[date] = None
        self._day_start_balance = 0.0
        self._blocked_day: Optional[date] = None

    def _roll_day(self, account: AccountState, now: datetime) -> None:
        today = now.date()
        if self._day != today:
            self._day = today
            self._day_start_balance = account.balance

    def drawdown_pct(self, account: AccountState) -> float:
        if self.peak_balance <= 0:
            return 0.0
        return max((self.peak_balance - account.equity) / self.peak_balance * 100, 0.0)

    def daily_loss_pct(self, account: AccountState) -> float:
        if self._day_start_balance <= 0:
            return 0.0
        return max((self._day_start_balance - account.equity) / self._day_start_balance * 100, 0.0)

    def entries_allowed(self, now: datetime) -> bool:
        return self._blocked_day != now.date()

    def check(self, account: AccountState, now: datetime) -> Optional[CloseAllOrder]:
        """Evaluate the limits on a tick."""
        self._roll_day(account, now)
        self.peak_balance = max(self.peak_balance, account.balance)
        if not self.entries_allowed(now):
            return None

        cfg = self.config
        drawdown = self.drawdown_pct(account)
        if drawdown >= cfg.max_drawdown_close_all_pct:
            reason = f"drawdown {drawdown:.1f}% >= {cfg.max_drawdown_close_all_pct:.1f}%"
        else:
            daily = self.daily_loss_pct(account)
            if daily < cfg.daily_loss_limit_pct:
                return None
            reason = f"daily loss {daily:.1f}% >= {cfg.daily_loss_limit_pct:.1f}%"

        self._blocked_day = now.date()
        logger.warning(f"Account limit hit: {reason}, closing all and blocking entries for today")
        return CloseAllOrder(reason)
