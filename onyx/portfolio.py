"""
portfolio.py
------------

The portfolio ledger owns long-term investment positions and the time
series of total portfolio value used for the equity-over-time chart.

Adding a lot of an asset that is already held (same ticker, ignoring
case, and same category) averages it into the existing position. Every
mutation that changes the portfolio value records a snapshot; snapshots
closer together than the throttle window overwrite the latest point.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from .config import SNAPSHOT_CAP, SNAPSHOT_THROTTLE_MS
from .models import CATEGORIES, Investment, PortfolioSnapshot, _to_float, now_ms

logger = logging.getLogger(__name__)

SLOT_PORTFOLIO = "portfolio"
SLOT_PORTFOLIO_HISTORY = "portfolio_history"


class PriceLookup(Protocol):
    def fetch_prices_by_ids(self, ids: Sequence[str]) -> Dict[str, float]:
        ...


@dataclass
class PositionValuation:
    investment: Investment
    current_val: float
    invested: float
    pnl: float
    pnl_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.investment.to_dict(),
            "currentVal": self.current_val,
            "invested": self.invested,
            "pnl": self.pnl,
            "pnlPercent": self.pnl_percent,
        }


@dataclass
class PortfolioAnalytics:
    current_value: float = 0.0
    total_invested: float = 0.0
    total_pnl: float = 0.0
    total_pnl_percent: float = 0.0
    positions: List[PositionValuation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentValue": self.current_value,
            "totalInvested": self.total_invested,
            "totalPnL": self.total_pnl,
            "totalPnLPercent": self.total_pnl_percent,
            "positions": [p.to_dict() for p in self.positions],
        }


def compute_portfolio_analytics(investments: Iterable[Investment]) -> PortfolioAnalytics:
    positions: List[PositionValuation] = []
    for inv in investments:
        invested = inv.invested
        positions.append(
            PositionValuation(
                investment=inv,
                current_val=inv.current_value,
                invested=invested,
                pnl=inv.pnl,
                pnl_percent=inv.pnl / invested * 100 if invested > 0 else 0.0,
            )
        )
    current_value = sum(p.current_val for p in positions)
    total_invested = sum(p.invested for p in positions)
    total_pnl = current_value - total_invested
    return PortfolioAnalytics(
        current_value=current_value,
        total_invested=total_invested,
        total_pnl=total_pnl,
        total_pnl_percent=total_pnl / total_invested * 100 if total_invested > 0 else 0.0,
        positions=positions,
    )


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Canonical category name, matched ignoring case; blank means Custom, unknown gives None."""
    key = (category or "").strip().lower()
    if not key:
        return "Custom"
    for name in CATEGORIES:
        if name.lower() == key:
            return name
    return None


def record_snapshot(
    series: Sequence[PortfolioSnapshot],
    snapshot: PortfolioSnapshot,
    throttle_ms: int = SNAPSHOT_THROTTLE_MS,
    cap: int = SNAPSHOT_CAP,
) -> List[PortfolioSnapshot]:
    """Append `snapshot`, or overwrite the latest point when it is too recent."""
    out = list(series)
    if out and snapshot.timestamp - out[-1].timestamp < throttle_ms:
        out[-1] = snapshot
    else:
        out.append(snapshot)
    return out[-cap:]


class PortfolioLedger:
    """In-memory owner of investment positions and value snapshots.

    Parameters
    ----------
    price_source: PriceLookup
        Batch price collaborator used by `refresh_live_prices`.
    clock: Callable[[], int]
        Current time in epoch milliseconds.
    """

    def __init__(
        self,
        investments: Optional[Sequence[Investment]] = None,
        snapshots: Optional[Sequence[PortfolioSnapshot]] = None,
        price_source: Optional[PriceLookup] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._investments: List[Investment] = list(investments or [])
        self._snapshots: List[PortfolioSnapshot] = list(snapshots or [])
        self.price_source = price_source
        self._clock = clock
        self._last_id = max((i.id for i in self._investments), default=0)

    @property
    def investments(self) -> List[Investment]:
        return list(self._investments)

    @property
    def snapshots(self) -> List[PortfolioSnapshot]:
        return list(self._snapshots)

    def get(self, investment_id: int) -> Optional[Investment]:
        for inv in self._investments:
            if inv.id == investment_id:
                return inv
        return None

    def analytics(self) -> PortfolioAnalytics:
        return compute_portfolio_analytics(self._investments)

    # ---------- internals ----------
    def _next_id(self) -> int:
        self._last_id = max(int(self._clock()), self._last_id + 1)
        return self._last_id

    def _snapshot(self) -> None:
        value = self.analytics().current_value
        if not value > 0:
            return
        self._snapshots = record_snapshot(self._snapshots, PortfolioSnapshot(int(self._clock()), value))
        logger.debug("portfolio snapshot %.2f (%d points)", value, len(self._snapshots))

    def _find_lot_match(self, ticker: str, category: str) -> Optional[Investment]:
        key = ticker.lower()
        for inv in self._investments:
            if inv.ticker.lower() == key and inv.category == category:
                return inv
        return None

    # ---------- mutations ----------
    def add_investment(
        self,
        asset_name: str,
        entry_price: Any,
        quantity: Any,
        ticker: str = "",
        category: str = "",
        entry_date: str = "",
        coinlore_id: Optional[str] = None,
        thesis_notes: str = "",
        image_uris: Sequence[str] = (),
    ) -> Optional[Investment]:
        """Add a lot, merging it into an existing position of the same asset.

        Returns the new or merged position, or None when the input is
        rejected (blank name, unknown category, non-positive or unparseable
        price/quantity).
        """
        name = (asset_name or "").strip()
        price = _to_float(entry_price)
        qty = _to_float(quantity)
        canonical = normalize_category(category)
        if not name or price <= 0 or qty <= 0 or canonical is None:
            logger.warning(
                "investment rejected: name=%r price=%r quantity=%r category=%r",
                asset_name, entry_price, quantity, category,
            )
            return None

        ticker = (ticker or name).strip()
        category = canonical
        existing = self._find_lot_match(ticker, category)
        if existing is not None:
            total_qty = existing.quantity + qty
            avg_price = (existing.quantity * existing.entry_price + qty * price) / total_qty
            result = replace(
                existing,
                entry_price=avg_price,
                quantity=total_qty,
                image_uris=[*existing.image_uris, *image_uris],
            )
            self._investments = [result if i.id == existing.id else i for i in self._investments]
            logger.info("merged %s lot into position %s: %s @ %.4f", ticker, existing.id, total_qty, avg_price)
        else:
            result = Investment(
                id=self._next_id(),
                asset_name=name,
                ticker=ticker,
                category=category,
                entry_price=price,
                quantity=qty,
                entry_date=(entry_date or "").strip() or datetime.now().strftime("%m/%d/%Y"),
                current_price=price,
                thesis_notes=thesis_notes or "",
                image_uris=list(image_uris),
                coinlore_id=coinlore_id or None,
            )
            self._investments = [result, *self._investments]
            logger.info("added position %s (%s)", result.id, ticker)
        self._snapshot()
        return result

    def update_current_price(self, investment_id: int, price: Any) -> Optional[Investment]:
        """Manually override the current price of a position."""
        value = _to_float(price)
        inv = self.get(investment_id)
        if inv is None or value <= 0:
            logger.warning("price update ignored: id=%s price=%r", investment_id, price)
            return None
        updated = replace(inv, current_price=value)
        self._investments = [updated if i.id == investment_id else i for i in self._investments]
        self._snapshot()
        return updated

    def update_investment_images(self, investment_id: int, image_uris: Sequence[str]) -> Optional[Investment]:
        inv = self.get(investment_id)
        if inv is None:
            return None
        updated = replace(inv, image_uris=[*inv.image_uris, *image_uris])
        self._investments = [updated if i.id == investment_id else i for i in self._investments]
        return updated

    def delete_investment(self, investment_id: int) -> bool:
        if self.get(investment_id) is None:
            return False
        self._investments = [i for i in self._investments if i.id != investment_id]
        self._snapshot()
        return True

    def refresh_live_prices(self) -> int:
        """Pull live prices for positions with a feed id; returns how many changed.

        Collaborator failures leave prices untouched and are never raised.
        """
        ids = sorted({i.coinlore_id for i in self._investments if i.coinlore_id})
        if not ids or self.price_source is None:
            return 0
        try:
            prices = dict(self.price_source.fetch_prices_by_ids(ids) or {})
        except Exception as e:
            logger.warning("live price refresh failed: %s", e)
            return 0

        updated = 0
        investments = []
        for inv in self._investments:
            raw = prices.get(inv.coinlore_id) if inv.coinlore_id else None
            if raw is not None:
                price = _to_float(raw, float("nan"))
                # positive prices only
                if price > 0:
                    inv = replace(inv, current_price=price)
                    updated += 1
                else:
                    logger.warning("live price for %s ignored: %r", inv.coinlore_id, raw)
            investments.append(inv)
        self._investments = investments
        if updated:
            self._snapshot()
        logger.info("live refresh: %d/%d positions priced", updated, len(ids))
        return updated

    # ---------- state in / out ----------
    def to_slots(self) -> Dict[str, Any]:
        return {
            SLOT_PORTFOLIO: [i.to_dict() for i in self._investments],
            SLOT_PORTFOLIO_HISTORY: [s.to_dict() for s in self._snapshots],
        }

    @classmethod
    def from_slots(cls, slots: Dict[str, Any], **kwargs) -> "PortfolioLedger":
        return cls(
            investments=[Investment.from_dict(i) for i in slots.get(SLOT_PORTFOLIO) or []],
            snapshots=[PortfolioSnapshot.from_dict(s) for s in slots.get(SLOT_PORTFOLIO_HISTORY) or []],
            **kwargs,
        )
