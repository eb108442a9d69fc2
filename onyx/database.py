"""
database.py
-----------

This module encapsulates all interactions with the SQLite database used
to persist journal state. The ledgers themselves never touch storage;
they hand out plain serialisable slots (history, active trades,
strategies, ...) and this layer stores each slot as one JSON document.
Keeping storage here makes it easy to swap the backend later without
affecting other parts of the application.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List

from .config import DB_PATH
from .ledger import (
    SLOT_ACTIVE,
    SLOT_CURRENT_STRATEGY,
    SLOT_HISTORY,
    SLOT_PROFILE,
    SLOT_STRATEGIES,
    SLOT_TAGS,
    TradeLedger,
)
from .portfolio import SLOT_PORTFOLIO, SLOT_PORTFOLIO_HISTORY, PortfolioLedger

logger = logging.getLogger(__name__)

TRADE_SLOTS = (SLOT_HISTORY, SLOT_ACTIVE, SLOT_STRATEGIES, SLOT_CURRENT_STRATEGY, SLOT_TAGS, SLOT_PROFILE)
PORTFOLIO_SLOTS = (SLOT_PORTFOLIO, SLOT_PORTFOLIO_HISTORY)


class JournalDB:
    """SQLite-backed key/value store of named state slots."""

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    # ---------- schema ----------
    def _create_tables(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS slots (
                    name TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,  -- JSON
                    updated_at TEXT NOT NULL -- ISO8601
                )
                """
            )

    # ---------- slots ----------
    def save(self, slot: str, value: Any) -> None:
        """Insert or replace one slot."""
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO slots(name, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    payload=excluded.payload,
                    updated_at=excluded.updated_at
                """,
                (slot, json.dumps(value), datetime.now().isoformat()),
            )

    def save_many(self, slots: Dict[str, Any]) -> None:
        for name, value in slots.items():
            self.save(name, value)

    def load(self, slot: str, default: Any = None) -> Any:
        row = self.conn.execute("SELECT payload FROM slots WHERE name = ?", (slot,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["payload"])
        except json.JSONDecodeError:
            logger.warning("slot %s holds unreadable JSON; using default", slot)
            return default

    def load_many(self, slots: Iterable[str]) -> Dict[str, Any]:
        """Return the stored slots among `slots`; absent ones are omitted."""
        out: Dict[str, Any] = {}
        for name in slots:
            value = self.load(name)
            if value is not None:
                out[name] = value
        return out

    def slot_names(self) -> List[str]:
        return [row[0] for row in self.conn.execute("SELECT name FROM slots ORDER BY name")]

    # ---------- housekeeping ----------
    def close(self) -> None:
        self.conn.close()


# ---------- ledger load / save ----------
def load_trade_ledger(db: JournalDB, **kwargs) -> TradeLedger:
    return TradeLedger.from_slots(db.load_many(TRADE_SLOTS), **kwargs)


def save_trade_ledger(db: JournalDB, ledger: TradeLedger) -> None:
    db.save_many(ledger.to_slots())


def load_portfolio(db: JournalDB, **kwargs) -> PortfolioLedger:
    return PortfolioLedger.from_slots(db.load_many(PORTFOLIO_SLOTS), **kwargs)


def save_portfolio(db: JournalDB, portfolio: PortfolioLedger) -> None:
    db.save_many(portfolio.to_slots())
