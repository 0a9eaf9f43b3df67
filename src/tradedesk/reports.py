"""Strategy-tester report metrics.

Scans per-pattern, per-year tester reports named `<Pattern>_<Year>.html` and
extracts net profit, profit factor, total trades and win rate. Reports are
often saved as UTF-16, so NUL bytes are stripped before parsing. Each value
is read from the line following its label.

Usage:
    tradedesk-report reports/
    tradedesk-report reports/ --summary
    tradedesk-report reports/ --csv metrics.csv
"""

import argparse
import logging
import re
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .config import TradedeskError
from .models import PatternPerformanceStats


logger = logging.getLogger(__name__)


REPORT_GLOB = "*_202?.html"
HEADER = "Pattern|Year|NetProfit|ProfitFactor|TotalTrades|WinRate"
COLUMNS = ["pattern", "year", "net_profit", "profit_factor", "total_trades", "win_rate"]

_FILENAME = re.compile(r"^(?P<pattern>.+)_(?P<year>202\d)\.html$")
_SIGNED_DECIMAL = re.compile(r"-?\d+\.\d+")
_DECIMAL = re.compile(r"\d+\.\d+")
_INTEGER = re.compile(r"\d+")
_PERCENT = re.compile(r"(\d+\.\d+)%")
_THOUSANDS = re.compile(r"(?<=\d)[   ](?=\d{3}\b)")


class ReportParseError(TradedeskError):
    """Raised when a report file or directory cannot be read."""
    pass


@dataclass
class ReportMetrics:
    """Metrics extracted from one tester report."""
    pattern: str
    year: int
    net_profit: Optional[float] = None
    profit_factor: Optional[float] = None
    total_trades: Optional[int] = None
    win_rate: Optional[float] = None  # percent

    def to_row(self) -> str:
        """Pipe-delimited output row; missing values are empty."""
        def fmt(value, spec):
            return "" if value is None else format(value, spec)

        return "|".join([
            self.pattern,
            str(self.year),
            fmt(self.net_profit, ".2f"),
            fmt(self.profit_factor, ".2f"),
            fmt(self.total_trades, "d"),
            "" if self.win_rate is None else f"{self.win_rate:.2f}%",
        ])


def read_report_text(path: Path) -> str:
    """Read a report, dropping NUL bytes left by UTF-16 encoding."""
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise ReportParseError(f"Cannot read report {path}: {e}")
    return raw.replace(b"\x00", b"").decode("utf-8", errors="ignore")


def _value_after(lines: List[str], label: str, pattern: re.Pattern) -> Optional[str]:
    """First match of `pattern` on the line after the last line holding `label`."""
    index = None
    for i, line in enumerate(lines):
        if label in line:
            index = i
    if index is None:
        return None

    candidates = []
    if index + 1 < len(lines):
        candidates.append(lines[index + 1])
    # value on the same line as the label
    candidates.append(lines[index].split(label, 1)[1])
    for text in candidates:
        match = pattern.search(_THOUSANDS.sub("", text))
        if match:
            return match.group(1) if match.groups() else match.group(0)
    return None


def parse_filename(path: Path) -> Optional[tuple[str, int]]:
    match = _FILENAME.match(Path(path).name)
    if match is None:
        return None
    return match.group("pattern"), int(match.group("year"))


def parse_report(path, pattern: Optional[str] = None, year: Optional[int] = None) -> ReportMetrics:
    """Extract the metrics of one report.

    Pattern and year default to the values encoded in the file name.

    Raises:
        ReportParseError: If the file cannot be read or its name carries no
            pattern/year and none were given.
    """
    path = Path(path)
    if pattern is None or year is None:
        parsed = parse_filename(path)
        if parsed is None:
            raise ReportParseError(f"Report name {path.name} does not match <Pattern>_<Year>.html")
        pattern = pattern or parsed[0]
        year = year or parsed[1]

    lines = read_report_text(path).splitlines()
    net_profit = _value_after(lines, "Total Net Profit:", _SIGNED_DECIMAL)
    profit_factor = _value_after(lines, "Profit Factor:", _DECIMAL)
    total_trades = _value_after(lines, "Total Trades:", _INTEGER)
    win_rate = _value_after(lines, "Profit Trades", _PERCENT)

    metrics = ReportMetrics(
        pattern=pattern,
        year=year,
        net_profit=float(net_profit) if net_profit is not None else None,
        profit_factor=float(profit_factor) if profit_factor is not None else None,
        total_trades=int(total_trades) if total_trades is not None else None,
        win_rate=float(win_rate) if win_rate is not None else None,
    )
    logger.debug(f"Parsed {path.name}: {metrics}")
    return metrics


def collect_metrics(directory) -> pd.DataFrame:
    """Parse every `<Pattern>_<Year>.html` report in a directory.

    Raises:
        ReportParseError: If the directory does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ReportParseError(f"Not a directory: {directory}")

    rows = []
    for path in sorted(directory.glob(REPORT_GLOB)):
        if parse_filename(path) is None:
            continue
        rows.append(asdict(parse_report(path)))
    logger.info(f"Parsed {len(rows)} report(s) from {directory}")
    return pd.DataFrame(rows, columns=COLUMNS)


def summarize_by_pattern(df: pd.DataFrame) -> pd.DataFrame:
    """Aggregate per pattern across years.

    Net profit and trades are summed, profit factor is averaged and the win
    rate is weighted by trade count.
    """
    if df.empty:
        return pd.DataFrame(columns=["pattern", "years", "net_profit", "profit_factor",
                                     "total_trades", "win_rate"])

    work = df.copy()
    work["wins"] = work["total_trades"].fillna(0) * work["win_rate"].fillna(0) / 100
    grouped = work.groupby("pattern", sort=True)
    summary = pd.DataFrame({
        "years": grouped["year"].nunique(),
        "net_profit": grouped["net_profit"].sum(min_count=1),
        "profit_factor": grouped["profit_factor"].mean(),
        "total_trades": grouped["total_trades"].sum(min_count=1),
        "wins": grouped["wins"].sum(),
    })
    trades = summary["total_trades"].where(summary["total_trades"] > 0)
    summary["win_rate"] = summary["wins"] / trades * 100
    return summary.drop(columns=["wins"]).reset_index()


def seed_stats(
    df: pd.DataFrame,
    name_map: Optional[Dict[str, str]] = None,
) -> Dict[str, PatternPerformanceStats]:
    """Convert tester results into prior per-pattern statistics.

    Losses are counted at 1R each and gross wins follow from the profit
    factor. Patterns without trades or profit factor are skipped.

    Args:
        df: Output of `collect_metrics` (or `summarize_by_pattern`)
        name_map: Optional report-name -> engine pattern-name mapping
    """
    name_map = name_map or {}
    summary = df if "years" in df.columns else summarize_by_pattern(df)

    stats: Dict[str, PatternPerformanceStats] = {}
    for row in summary.itertuples(index=False):
        if pd.isna(row.total_trades) or pd.isna(row.profit_factor) or pd.isna(row.win_rate):
            continue
        trades = int(row.total_trades)
        if trades <= 0:
            continue
        wins = int(round(trades * row.win_rate / 100))
        losses = trades - wins
        gross_loss_r = float(losses)
        gross_win_r = float(row.profit_factor) * gross_loss_r if losses else float(wins)

        pattern = name_map.get(row.pattern, row.pattern)
        stats[pattern] = PatternPerformanceStats(
            pattern=pattern,
            trades=trades,
            wins=wins,
            losses=losses,
            gross_win_r=gross_win_r,
            gross_loss_r=gross_loss_r,
        )
    return stats


def format_table(df: pd.DataFrame) -> str:
    lines = [HEADER]
    for row in df.itertuples(index=False):
        metrics = ReportMetrics(
            pattern=row.pattern,
            year=int(row.year),
            net_profit=None if pd.isna(row.net_profit) else float(row.net_profit),
            profit_factor=None if pd.isna(row.profit_factor) else float(row.profit_factor),
            total_trades=None if pd.isna(row.total_trades) else int(row.total_trades),
            win_rate=None if pd.isna(row.win_rate) else float(row.win_rate),
        )
        lines.append(metrics.to_row())
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tradedesk-report",
        description="Extract strategy-tester metrics from <Pattern>_<Year>.html reports.",
    )
    parser.add_argument("directory", help="Directory holding the tester reports")
    parser.add_argument("--summary", action="store_true", help="Aggregate per pattern across years")
    parser.add_argument("--csv", metavar="PATH", help="Also write the table to a CSV file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s',
        datefmt='%H:%M:%S',
    )

    try:
        df = collect_metrics(args.directory)
    except ReportParseError as e:
        logger.error(f"❌ {e}")
        return 1

    if args.summary:
        table = summarize_by_pattern(df)
        print(table.to_string(index=False))
    else:
        table = df
        print(format_table(df))

    if args.csv:
        table.to_csv(args.csv, index=False)
        logger.info(f"Wrote {args.csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
