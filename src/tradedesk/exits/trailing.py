"""Trailing stop optimizer.

Six interchangeable strategies compute a candidate stop once the position is
at least `activation_atr_mult` ATRs in profit:

- atr:        ATR offset from current price
- swing:      extreme of the last N closed bars
- parabolic:  parabolic SAR value
- chandelier: ATR offset from the N-bar extreme (or the extreme since entry)
- stepped:    locks profit in discrete ATR-fraction steps
- hybrid:     most protective of its members, never on the losing side of entry

A candidate is applied only if it strictly tightens the current stop, so a
long stop never moves down and a short stop never moves up.
"""

import logging
import math
from typing import Callable, Dict, Optional

from ..config import InstrumentConfig, TrailingConfig
from ..market import TimeframeData
from ..models import Direction, Position, TrailState


logger = logging.getLogger(__name__)


class TrailingStopOptimizer:
    """Computes trailing stop updates for open positions."""

    def __init__(
        self,
        config: Optional[TrailingConfig] = None,
        instrument: Optional[InstrumentConfig] = None,
    ):
        self.config = config or TrailingConfig()
        self.instrument = instrument or InstrumentConfig()
        self._states: Dict[int, TrailState] = {}
        self._strategies: Dict[str, Callable[..., Optional[float]]] = {
            "atr": self._atr_stop,
            "swing": self._swing_stop,
            "parabolic": self._parabolic_stop,
            "chandelier": self._chandelier_stop,
            "stepped": self._stepped_stop,
            "hybrid": self._hybrid_stop,
        }

    def state(self, position: Position) -> TrailState:
        if position.ticket not in self._states:
            self._states[position.ticket] = TrailState(
                ticket=position.ticket,
                highest_price=position.entry_price,
                lowest_price=position.entry_price,
            )
        return self._states[position.ticket]

    def forget(self, ticket: int) -> None:
        self._states.pop(ticket, None)

    def is_activated(self, position: Position, price: float, atr: float) -> bool:
        return position.profit_distance(price) >= self.config.activation_atr_mult * atr

    def update(
        self,
        position: Position,
        price: float,
        data: TimeframeData,
        strategy: Optional[str] = None,
    ) -> Optional[float]:
        """New stop for the position, or None when the stop should stay.

        Args:
            position: Open position
            price: Current exit-side price
            data: Signal timeframe series (ATR, highs/lows, SAR)
            strategy: Override of the configured strategy
        """
        state = self.state(position)
        state.track(price)

        atr = data.value("atr", 1)
        if atr is None or atr <= 0 or math.isnan(atr):
            return None
        if not state.active:
            if not self.is_activated(position, price, atr):
                return None
            state.active = True
            state.step_size = self.config.step_atr_fraction * atr
            logger.info(f"Ticket {position.ticket}: trailing activated at {price:.2f}")

        name = strategy or self.config.strategy
        candidate = self._strategies[name](position, price, atr, data, state)
        if candidate is None:
            return None

        candidate = self._respect_broker_distance(position.direction, candidate, price)
        if not position.improves_stop(candidate):
            return None
        logger.debug(
            f"Ticket {position.ticket}: {name} trail {position.stop_loss:.2f} -> {candidate:.2f}"
        )
        return candidate

    def _respect_broker_distance(self, direction: Direction, stop: float, price: float) -> float:
        gap = self.instrument.broker_min_stop_distance
        if direction is Direction.LONG:
            return min(stop, price - gap)
        return max(stop, price + gap)

    def _on_protective_side(self, direction: Direction, stop: float, price: float) -> bool:
        if stop is None or math.isnan(stop):
            return False
        return (price - stop) * direction.sign > 0

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _atr_stop(self, position, price, atr, data, state) -> Optional[float]:
        return price - position.direction.sign * self.config.atr_mult * atr

    def _swing_stop(self, position, price, atr, data, state) -> Optional[float]:
        bars = self.config.swing_bars
        if position.direction is Direction.LONG:
            lows = data.window("low", 1, bars)
            stop = min(lows) if len(lows) == bars else None
        else:
            highs = data.window("high", 1, bars)
            stop = max(highs) if len(highs) == bars else None
        if stop is None or not self._on_protective_side(position.direction, stop, price):
            return None
        return stop

    def _parabolic_stop(self, position, price, atr, data, state) -> Optional[float]:
        sar = data.value("sar", 0)
        if sar is None or not self._on_protective_side(position.direction, sar, price):
            return None
        return sar

    def _chandelier_stop(self, position, price, atr, data, state) -> Optional[float]:
        cfg = self.config
        offset = cfg.chandelier_atr_mult * atr
        if position.direction is Direction.LONG:
            highs = data.window("high", 0, cfg.chandelier_bars)
            extreme = max(list(highs) + [state.highest_price])
            return extreme - offset
        lows = data.window("low", 0, cfg.chandelier_bars)
        extreme = min(list(lows) + [state.lowest_price])
        return extreme + offset

    def _stepped_stop(self, position, price, atr, data, state) -> Optional[float]:
        """Stop trails one step behind the number of whole steps in profit.

        Steps already locked are read from the position's current stop, so a
        rejected modify is proposed again on the next tick.
        """
        step = state.step_size
        if step <= 0:
            return None
        locked = (position.stop_loss - position.entry_price) * position.direction.sign
        state.steps_taken = math.floor(locked / step + 1e-9) + 1 if locked >= 0 else 0
        steps = math.floor(position.profit_distance(price) / step)
        if steps <= state.steps_taken or steps < 1:
            return None
        return position.entry_price + position.direction.sign * (steps - 1) * step

    def _hybrid_stop(self, position, price, atr, data, state) -> Optional[float]:
        direction = position.direction
        candidates = []
        for name in self.config.hybrid_members:
            stop = self._strategies[name](position, price, atr, data, state)
            if stop is not None and self._on_protective_side(direction, stop, price):
                candidates.append(stop)
        if not candidates:
            return None

        if direction is Direction.LONG:
            return max(max(candidates), position.entry_price)
        return min(min(candidates), position.entry_price)
