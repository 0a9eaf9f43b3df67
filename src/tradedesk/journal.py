"""Trade journal.

One row per trade in the export schema consumed by the trade-history
collaborator. Closing a trade yields the `TradeOutcome` fed to the sizer.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .models import Position, TradeOutcome, TradeResult


logger = logging.getLogger(__name__)


COLUMNS = [
    "ticket", "pattern", "direction", "entry_time", "entry_price",
    "stop_loss", "tp1", "tp2", "risk_pct", "risk_amount", "lots",
    "quality_tier", "exit_time", "exit_price", "pnl", "pnl_r", "result",
]


@dataclass
class TradeRecord:
    """A single journal row."""
    ticket: int
    pattern: str
    direction: str
    entry_time: datetime
    entry_price: float
    stop_loss: float
    tp1: float
    tp2: float
    risk_pct: float
    risk_amount: float
    lots: float
    quality_tier: str
    exit_time: Optional[datetime] = None
    exit_price: Optional[float] = None
    pnl: float = 0.0
    pnl_r: float = 0.0
    result: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.exit_time is not None


class TradeJournal:
    """Keeps open and closed trade records."""

    def __init__(self):
        self._open: Dict[int, TradeRecord] = {}
        self._closed: List[TradeRecord] = []

    @property
    def records(self) -> List[TradeRecord]:
        return list(self._closed)

    def open_record(self, ticket: int) -> Optional[TradeRecord]:
        return self._open.get(ticket)

    def record_open(self, position: Position, risk_amount: float) -> TradeRecord:
        record = TradeRecord(
            ticket=position.ticket,
            pattern=position.pattern,
            direction=position.direction.value,
            entry_time=position.open_time,
            entry_price=position.entry_price,
            stop_loss=position.initial_stop,
            tp1=position.tp1,
            tp2=position.tp2,
            risk_pct=position.initial_risk_pct,
            risk_amount=risk_amount,
            lots=position.lots,
            quality_tier=position.quality_tier.value,
        )
        self._open[position.ticket] = record
        return record

    def record_close(
        self,
        ticket: int,
        exit_time: datetime,
        exit_price: float,
        pnl: float,
    ) -> Optional[TradeOutcome]:
        """Close a record and return the outcome for the sizer.

        Returns None for unknown tickets.
        """
        record = self._open.pop(ticket, None)
        if record is None:
            logger.warning(f"Ticket {ticket}: close reported for unknown trade")
            return None

        record.exit_time = exit_time
        record.exit_price = exit_price
        record.pnl = pnl
        record.pnl_r = pnl / record.risk_amount if record.risk_amount > 0 else 0.0
        outcome = TradeOutcome(
            pattern=record.pattern,
            r_multiple=record.pnl_r,
            pnl=pnl,
            closed_at=exit_time,
        )
        record.result = outcome.result.value
        self._closed.append(record)
        logger.info(
            f"Ticket {ticket}: closed {record.pattern} {record.result} "
            f"pnl={pnl:.2f} ({record.pnl_r:+.2f}R)"
        )
        return outcome

    def to_dataframe(self) -> pd.DataFrame:
        """Closed trades as a DataFrame with the export columns."""
        rows = [asdict(r) for r in self._closed]
        return pd.DataFrame(rows, columns=COLUMNS)

    def to_csv(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(path, index=False)
        logger.info(f"Wrote {len(self._closed)} trade(s) to {path}")
        return path

    def summary(self) -> Dict[str, float]:
        """Win/loss counts and totals over closed trades."""
        df = self.to_dataframe()
        if df.empty:
            return {"trades": 0, "wins": 0, "losses": 0, "net_pnl": 0.0, "total_r": 0.0}
        return {
            "trades": int(len(df)),
            "wins": int((df["result"] == TradeResult.WIN.value).sum()),
            "losses": int((df["result"] == TradeResult.LOSS.value).sum()),
            "net_pnl": float(df["pnl"].sum()),
            "total_r": float(df["pnl_r"].sum()),
        }
