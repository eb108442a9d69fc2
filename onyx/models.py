"""
models.py
---------

Defines the data model of the journal: strategies and their checklist
rules, trades with their journal of close events, investment positions
and portfolio value snapshots. Keeping these in a separate module lets
the ledgers, the analytics and the persistence layer share one shape.

Every record converts to and from the plain dictionary shape that is
persisted (camelCase keys, epoch-millisecond timestamps). A record that
is saved and reloaded compares equal to the original.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# trade status
RUNNING = "RUNNING"
WIN = "WIN"
LOSS = "LOSS"
BE = "BE"

# journal entry types
PARTIAL = "PARTIAL"
CLOSE = "CLOSE"
STOP_LOSS = "STOP_LOSS"
STOP_BE = "STOP_BE"

# execution request types
EXEC_PARTIAL = "PARTIAL"
EXEC_FULL = "FULL"
EXEC_SL = "SL"

CATEGORIES = ("Crypto", "Stock", "Index", "Custom")


# -------------------------
# small parse helpers
# -------------------------
def _to_float(x: Any, default: float = 0.0) -> float:
    """Lenient float parse: None, blanks, junk, NaN and inf give `default`."""
    if x is None or isinstance(x, bool):
        return default
    if isinstance(x, str):
        x = x.strip()
        if not x:
            return default
    try:
        value = float(x)
    except (TypeError, ValueError):
        return default
    if math.isnan(value) or math.isinf(value):
        return default
    return value


def _to_int(x: Any, default: int = 0) -> int:
    value = _to_float(x, float("nan"))
    if math.isnan(value):
        return default
    return int(value)


def now_ms() -> int:
    return int(time.time() * 1000)


# -------------------------
# strategies
# -------------------------
@dataclass
class Rule:
    id: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Rule":
        return cls(id=str(d.get("id", "")), text=str(d.get("text", "")))


@dataclass
class Strategy:
    """A named checklist plus the default dollar risk of its trades."""

    id: str
    name: str
    risk: float
    rules: List[Rule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "risk": self.risk,
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Strategy":
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            risk=_to_float(d.get("risk")),
            rules=[Rule.from_dict(r) for r in d.get("rules") or []],
        )


# -------------------------
# trades
# -------------------------
@dataclass(frozen=True)
class JournalEntry:
    """One close event of a trade.

    Attributes
    ----------
    timestamp: int
        Epoch milliseconds of the event.
    type: str
        One of PARTIAL, CLOSE, STOP_LOSS, STOP_BE.
    percent_closed: float
        Percent of the position closed by this entry alone.
    profit_banked: float
        Signed dollar amount realised by this entry.
    image_uris: Tuple[str, ...]
        Chart image references owned by the trade.
    note: str
        Free text.
    """

    timestamp: int
    type: str
    percent_closed: float
    profit_banked: float
    image_uris: Tuple[str, ...] = ()
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "type": self.type,
            "percentClosed": self.percent_closed,
            "profitBanked": self.profit_banked,
            "imageUris": list(self.image_uris),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "JournalEntry":
        uris = d.get("imageUris")
        if uris is None:
            # legacy single-image shape
            uris = [d["imageUri"]] if d.get("imageUri") else []
        return cls(
            timestamp=_to_int(d.get("timestamp")),
            type=str(d.get("type") or ""),
            percent_closed=_to_float(d.get("percentClosed")),
            profit_banked=_to_float(d.get("profitBanked")),
            image_uris=tuple(str(u) for u in uris),
            note=str(d.get("note") or ""),
        )


@dataclass
class Trade:
    """A single execution under one strategy.

    `id` is the creation time in epoch milliseconds and doubles as the
    trade's date for period filtering. The journal is most-recent-first.
    """

    id: int
    strategy_id: str
    direction: str
    risk: float
    date_str: str = ""
    time_str: str = ""
    realized_profit: float = 0.0
    percent_closed: float = 0.0
    status: str = RUNNING
    journal: List[JournalEntry] = field(default_factory=list)
    is_breakeven: bool = False
    tags: List[str] = field(default_factory=list)
    closed_at: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.status == RUNNING

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "strategyId": self.strategy_id,
            "direction": self.direction,
            "dateStr": self.date_str,
            "timeStr": self.time_str,
            "risk": self.risk,
            "realizedProfit": self.realized_profit,
            "percentClosed": self.percent_closed,
            "status": self.status,
            "journal": [j.to_dict() for j in self.journal],
            "isBreakeven": self.is_breakeven,
            "tags": list(self.tags),
        }
        if self.closed_at is not None:
            d["closedAt"] = self.closed_at
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Trade":
        closed_at = d.get("closedAt")
        return cls(
            id=_to_int(d.get("id")),
            strategy_id=str(d.get("strategyId") or ""),
            direction=str(d.get("direction") or ""),
            risk=_to_float(d.get("risk")),
            date_str=str(d.get("dateStr") or ""),
            time_str=str(d.get("timeStr") or ""),
            realized_profit=_to_float(d.get("realizedProfit")),
            percent_closed=_to_float(d.get("percentClosed")),
            status=str(d.get("status") or RUNNING),
            journal=[JournalEntry.from_dict(j) for j in d.get("journal") or []],
            is_breakeven=bool(d.get("isBreakeven", False)),
            tags=[str(t) for t in d.get("tags") or []],
            closed_at=_to_int(closed_at) if closed_at is not None else None,
        )


# -------------------------
# portfolio
# -------------------------
@dataclass
class Investment:
    """A long-held position tracked for unrealised P&L.

    A position with a `coinlore_id` has a live price feed; the others are
    priced manually.
    """

    id: int
    asset_name: str
    ticker: str
    category: str
    entry_price: float
    quantity: float
    entry_date: str
    current_price: float
    thesis_notes: str = ""
    image_uris: List[str] = field(default_factory=list)
    coinlore_id: Optional[str] = None

    @property
    def has_live_feed(self) -> bool:
        return bool(self.coinlore_id)

    @property
    def invested(self) -> float:
        return self.entry_price * self.quantity

    @property
    def current_value(self) -> float:
        return self.current_price * self.quantity

    @property
    def pnl(self) -> float:
        return (self.current_price - self.entry_price) * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "assetName": self.asset_name,
            "ticker": self.ticker,
            "category": self.category,
            "entryPrice": self.entry_price,
            "quantity": self.quantity,
            "entryDate": self.entry_date,
            "currentPrice": self.current_price,
            "thesisNotes": self.thesis_notes,
            "imageUris": list(self.image_uris),
        }
        if self.coinlore_id:
            d["coinloreId"] = self.coinlore_id
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Investment":
        uris = d.get("imageUris")
        if uris is None:
            uris = [d["imageUri"]] if d.get("imageUri") else []
        entry_price = _to_float(d.get("entryPrice"))
        return cls(
            id=_to_int(d.get("id")),
            asset_name=str(d.get("assetName") or ""),
            ticker=str(d.get("ticker") or ""),
            category=str(d.get("category") or "Custom"),
            entry_price=entry_price,
            quantity=_to_float(d.get("quantity")),
            entry_date=str(d.get("entryDate") or ""),
            current_price=_to_float(d.get("currentPrice"), entry_price),
            thesis_notes=str(d.get("thesisNotes") or ""),
            image_uris=[str(u) for u in uris],
            coinlore_id=str(d["coinloreId"]) if d.get("coinloreId") else None,
        )


@dataclass(frozen=True)
class PortfolioSnapshot:
    timestamp: int
    total_value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "totalValue": self.total_value}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PortfolioSnapshot":
        return cls(timestamp=_to_int(d.get("timestamp")), total_value=_to_float(d.get("totalValue")))
