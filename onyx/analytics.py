"""
analytics.py
-------------

This module contains functions to compute performance metrics from a
collection of Trade objects. Splitting analytics into its own module
makes it easy to reuse these functions in different contexts (ledger,
Flask API, exports) without coupling them to UI or storage concerns.

Trades are dated by their `id` (creation time in epoch milliseconds).
The stat cards follow the selected period while the journal table and
the tag breakdown always use the full history.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

from .config import INFINITY_SYMBOL, TRADES_PER_PAGE
from .models import Trade

PERIODS = ("1D", "1W", "1M", "1Y", "ALL")


@dataclass
class TagStat:
    tag: str
    count: int
    win_rate: float
    roi: float

    def to_dict(self) -> Dict[str, Any]:
        return {"tag": self.tag, "count": self.count, "winRate": self.win_rate, "roi": self.roi}


@dataclass
class Analytics:
    """Aggregate statistics of a trade collection.

    Attributes
    ----------
    net_profit: float
        Sum of realised profit over the period trades.
    win_rate: float
        Percentage of period trades with positive realised profit.
    avg_rr: str
        Average win over average loss, two decimals, or the infinity
        symbol when there are wins but no losses.
    profit_factor: str
        Gross win over gross loss, two decimals, or the infinity symbol
        when the gross loss is zero.
    total_trades: int
        Number of period trades.
    daily_stats: List[Trade]
        Full history, newest first.
    tag_stats: List[TagStat]
        Per-tag breakdown over the full history, most used first.
    """

    net_profit: float = 0.0
    win_rate: float = 0.0
    avg_rr: str = "0.00"
    profit_factor: str = INFINITY_SYMBOL
    total_trades: int = 0
    daily_stats: List[Trade] = field(default_factory=list)
    tag_stats: List[TagStat] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "netProfit": self.net_profit,
            "winRate": self.win_rate,
            "avgRR": self.avg_rr,
            "profitFactor": self.profit_factor,
            "totalTrades": self.total_trades,
            "dailyStats": [t.to_dict() for t in self.daily_stats],
            "tagStats": [s.to_dict() for s in self.tag_stats],
        }


@dataclass
class DailyPnL:
    date: str
    pnl: float
    trades: List[Trade] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "pnl": self.pnl, "trades": [t.to_dict() for t in self.trades]}


# ---------- helpers ----------
def trade_datetime(trade: Trade, tz: Optional[tzinfo] = None) -> datetime:
    """Creation time of a trade; naive local time when `tz` is None."""
    return datetime.fromtimestamp(trade.id / 1000, tz)


def win_rate(trades: Sequence[Trade]) -> float:
    if not trades:
        return 0.0
    wins = [t for t in trades if t.realized_profit > 0]
    return len(wins) / len(trades) * 100


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Lower bound of a rolling window, or None for ALL / 1D / unknown tokens."""
    if period == "1W":
        return now - timedelta(days=7)
    if period == "1M":
        return now - relativedelta(months=1)
    if period == "1Y":
        return now - relativedelta(years=1)
    return None


# ---------- filtering ----------
def filter_trades_by_period(
    trades: Iterable[Trade],
    period: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[Trade]:
    """Return the trades created inside the period ending at `now`.

    `1D` matches the calendar day of `now` in `tz`; `1W`, `1M` and `1Y` keep
    trades created at or after `now` minus one week, month or year. `ALL`
    (and any unrecognised token) returns every trade in the original order.
    """
    trades = list(trades)
    if period not in PERIODS or period == "ALL":
        return trades

    if now is None:
        now = datetime.now(tz)
    elif tz is not None:
        # a naive `now` is read as wall time in `tz`
        now = now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)
    tz = tz or now.tzinfo

    if period == "1D":
        today = now.date()
        return [t for t in trades if trade_datetime(t, tz).date() == today]

    start = period_start(period, now)
    return [t for t in trades if trade_datetime(t, tz) >= start]


# ---------- aggregates ----------
def compute_analytics(
    period_trades: Sequence[Trade],
    history: Sequence[Trade],
    tags: Iterable[str],
) -> Analytics:
    """Compute performance statistics.

    Parameters
    ----------
    period_trades: Sequence[Trade]
        Trades already filtered to the selected period; drive the stat cards.
    history: Sequence[Trade]
        The unfiltered strategy history; drives the journal table and the
        tag breakdown.
    tags: Iterable[str]
        The tag vocabulary.
    """
    wins = [t.realized_profit for t in period_trades if t.realized_profit > 0]
    losses = [t.realized_profit for t in period_trades if t.realized_profit < 0]
    total = len(period_trades)

    net_profit = sum(t.realized_profit for t in period_trades)
    rate = len(wins) / total * 100 if total > 0 else 0.0

    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = abs(sum(losses) / len(losses)) if losses else 0.0
    if avg_loss > 0:
        avg_rr = f"{avg_win / avg_loss:.2f}"
    elif avg_win > 0:
        avg_rr = INFINITY_SYMBOL
    else:
        avg_rr = "0.00"

    gross_win = sum(wins)
    gross_loss = abs(sum(losses))
    profit_factor = f"{gross_win / gross_loss:.2f}" if gross_loss > 0 else INFINITY_SYMBOL

    daily_stats = sorted(history, key=lambda t: t.id, reverse=True)

    return Analytics(
        net_profit=net_profit,
        win_rate=rate,
        avg_rr=avg_rr,
        profit_factor=profit_factor,
        total_trades=total,
        daily_stats=daily_stats,
        tag_stats=compute_tag_stats(history, tags),
    )


def compute_tag_stats(history: Sequence[Trade], tags: Iterable[str]) -> List[TagStat]:
    out: List[TagStat] = []
    for tag in tags:
        tagged = [t for t in history if tag in t.tags]
        if not tagged:
            continue
        net = sum(t.realized_profit for t in tagged)
        total_risk = sum(t.risk for t in tagged)
        roi = net / total_risk * 100 if total_risk > 0 else 0.0
        out.append(TagStat(tag=tag, count=len(tagged), win_rate=win_rate(tagged), roi=roi))
    # stable sort keeps vocabulary order between equal counts
    out.sort(key=lambda s: s.count, reverse=True)
    return out


# ---------- calendar / equity ----------
def compute_daily_pnl(history: Sequence[Trade], tz: Optional[tzinfo] = None) -> List[DailyPnL]:
    """Group realised profit by calendar day of trade creation, oldest day first."""
    trades = list(history)
    if not trades:
        return []

    df = pd.DataFrame(
        {
            "day": [trade_datetime(t, tz).date() for t in trades],
            "pnl": [t.realized_profit for t in trades],
        }
    )
    out: List[DailyPnL] = []
    for day, grp in df.groupby("day", sort=True):
        out.append(
            DailyPnL(
                date=day.isoformat(),
                pnl=float(grp["pnl"].sum()),
                trades=[trades[i] for i in grp.index],
            )
        )
    return out


def equity_curve(history: Sequence[Trade], tz: Optional[tzinfo] = None) -> List[Tuple[str, float]]:
    """Cumulative realised P&L at the end of each trading day."""
    days = compute_daily_pnl(history, tz)
    if not days:
        return []
    series = pd.Series([d.pnl for d in days], index=[d.date for d in days]).cumsum()
    return [(day, float(value)) for day, value in series.items()]


def paginate(trades: Sequence[Trade], page: int, per_page: int = TRADES_PER_PAGE) -> Tuple[List[Trade], int]:
    """Return the trades on 1-based `page` and the total page count."""
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(trades) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return list(trades[start:start + per_page]), total_pages
