"""Order instructions handed to the execution layer.

The broker side is an external collaborator behind `OrderExecutor`. Every
call is synchronous and reports back an `ExecutionReport`. `OrderRetryPolicy`
retries a rejected instruction a bounded number of times, applying one
corrective adjustment per rejection:

- INVALID_STOPS:  nudge the stop to the broker's minimum distance
- REQUOTE / PRICE_CHANGED: re-fetch the quote and resubmit
- REJECTED:       not correctable, abandoned at once
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Union

from .config import ExecutionConfig, InstrumentConfig
from .market import Quote
from .models import Direction, QualityTier


logger = logging.getLogger(__name__)


class ExecutionStatus(Enum):
    FILLED = "filled"
    INVALID_STOPS = "invalid_stops"
    REQUOTE = "requote"
    PRICE_CHANGED = "price_changed"
    REJECTED = "rejected"


RETRYABLE = (ExecutionStatus.INVALID_STOPS, ExecutionStatus.REQUOTE, ExecutionStatus.PRICE_CHANGED)


@dataclass(frozen=True)
class OpenPositionOrder:
    """Open a market position with a stop and two targets."""
    direction: Direction
    lots: float
    stop_loss: float
    tp1: float
    tp2: float
    tag: str = ""
    pattern: str = ""
    risk_pct: float = 0.0
    quality_tier: QualityTier = QualityTier.NONE


@dataclass(frozen=True)
class ModifyStopOrder:
    ticket: int
    stop_loss: float
    reason: str = ""


@dataclass(frozen=True)
class PartialCloseOrder:
    ticket: int
    fraction: float
    lots: float
    reason: str = ""


@dataclass(frozen=True)
class CloseAllOrder:
    reason: str = ""


Instruction = Union[OpenPositionOrder, ModifyStopOrder, PartialCloseOrder, CloseAllOrder]


@dataclass
class ExecutionReport:
    """Broker response to one instruction.

    Attributes:
        status: Outcome
        ticket: Ticket of the opened / modified position
        price: Fill price, if any
        message: Broker message
        attempts: Number of submissions made
        adjusted_stop: Stop actually accepted when the retry policy nudged it
    """
    status: ExecutionStatus
    ticket: Optional[int] = None
    price: Optional[float] = None
    message: str = ""
    attempts: int = 1
    adjusted_stop: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.FILLED


class OrderExecutor:
    """Interface of the execution collaborator."""

    def execute(self, instruction: Instruction, quote: Quote) -> ExecutionReport:
        raise NotImplementedError


class PaperExecutor(OrderExecutor):
    """Fills every instruction at the quote. Used for dry runs and tests.

    Scripted responses can be queued with `queue_status`; each queued status
    answers one submission before normal fills resume.
    """

    def __init__(self, first_ticket: int = 1):
        self._next_ticket = first_ticket
        self._scripted: List[ExecutionStatus] = []
        self.submitted: List[Instruction] = []

    def queue_status(self, *statuses: ExecutionStatus) -> None:
        self._scripted.extend(statuses)

    def execute(self, instruction: Instruction, quote: Quote) -> ExecutionReport:
        self.submitted.append(instruction)
        if self._scripted:
            status = self._scripted.pop(0)
            if status is not ExecutionStatus.FILLED:
                return ExecutionReport(status, message=f"scripted {status.value}")

        if isinstance(instruction, OpenPositionOrder):
            ticket = self._next_ticket
            self._next_ticket += 1
            return ExecutionReport(
                ExecutionStatus.FILLED,
                ticket=ticket,
                price=quote.entry_price(instruction.direction),
            )
        ticket = getattr(instruction, "ticket", None)
        return ExecutionReport(ExecutionStatus.FILLED, ticket=ticket)


class OrderRetryPolicy:
    """Bounded retry with a corrective adjustment per rejection."""

    def __init__(
        self,
        config: Optional[ExecutionConfig] = None,
        instrument: Optional[InstrumentConfig] = None,
    ):
        self.config = config or ExecutionConfig()
        self.instrument = instrument or InstrumentConfig()

    def submit(
        self,
        executor: OrderExecutor,
        instruction: Instruction,
        quote_source: Callable[[], Quote],
    ) -> ExecutionReport:
        """Submit until filled, not correctable, or attempts are exhausted.

        Args:
            executor: Execution collaborator
            instruction: Instruction to submit
            quote_source: Returns the current quote (re-fetched after requotes)
        """
        original = instruction
        quote = quote_source()
        report = ExecutionReport(ExecutionStatus.REJECTED, message="not submitted", attempts=0)
        for attempt in range(1, self.config.max_attempts + 1):
            report = executor.execute(instruction, quote)
            report.attempts = attempt
            stop = getattr(instruction, "stop_loss", None)
            if stop is not None and stop != getattr(original, "stop_loss", None):
                report.adjusted_stop = stop
            if report.success:
                if attempt > 1:
                    logger.info(f"{self.describe(instruction)}: filled on attempt {attempt}")
                return report

            logger.info(
                f"{self.describe(instruction)}: attempt {attempt} {report.status.value} "
                f"{report.message}".rstrip()
            )
            if report.status not in RETRYABLE:
                break
            if report.status is ExecutionStatus.INVALID_STOPS:
                instruction = self.nudge_stop(instruction, quote)
            else:
                quote = quote_source()

        logger.warning(
            f"{self.describe(instruction)}: abandoned after {report.attempts} attempt(s), "
            f"last status {report.status.value}"
        )
        return report

    def nudge_stop(self, instruction: Instruction, quote: Quote) -> Instruction:
        """Move the stop out to at least the broker minimum distance."""
        gap = self.instrument.broker_min_stop_distance
        if isinstance(instruction, OpenPositionOrder):
            direction = instruction.direction
            reference = quote.entry_price(direction)
        elif isinstance(instruction, ModifyStopOrder):
            # a modify has no direction; infer it from which side the stop is on
            direction = Direction.LONG if instruction.stop_loss < quote.mid else Direction.SHORT
            reference = quote.exit_price(direction)
        else:
            return instruction

        if direction is Direction.LONG:
            stop = min(instruction.stop_loss, reference - gap)
        else:
            stop = max(instruction.stop_loss, reference + gap)
        if stop != instruction.stop_loss:
            logger.info(f"{self.describe(instruction)}: stop nudged {instruction.stop_loss:.2f} -> {stop:.2f}")
        return replace(instruction, stop_loss=stop)

    @staticmethod
    def describe(instruction: Instruction) -> str:
        if isinstance(instruction, OpenPositionOrder):
            return f"Open {instruction.direction.value} {instruction.lots} lots {instruction.tag}".rstrip()
        if isinstance(instruction, ModifyStopOrder):
            return f"Modify #{instruction.ticket} SL {instruction.stop_loss:.2f}"
        if isinstance(instruction, PartialCloseOrder):
            return f"Partial close #{instruction.ticket} {instruction.fraction:.0%}"
        return "Close all"


@dataclass
class ExecutedInstruction:
    """An instruction paired with its final report."""
    instruction: Instruction
    report: ExecutionReport
    at: Optional[datetime] = None
