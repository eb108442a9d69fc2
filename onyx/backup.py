"""
backup.py
---------

Backup export and import. Exports carry the full journal state plus the
list of chart images it references so the file layer can bundle them.
Imports accept older files, where a journal entry may hold a single
`imageUri` instead of the `imageUris` list, and normalise them into the
current shape before they reach the ledger.
"""

import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import BACKUP_VERSION
from .ledger import TradeLedger
from .models import Strategy, Trade


def referenced_images(trades: List[Dict[str, Any]]) -> List[str]:
    """Every image path referenced by serialised trades, first occurrence order."""
    seen: Dict[str, None] = {}
    for trade in trades:
        for entry in trade.get("journal") or []:
            uris = entry.get("imageUris")
            if isinstance(uris, list):
                for uri in uris:
                    if uri:
                        seen.setdefault(uri)
            elif entry.get("imageUri"):
                seen.setdefault(entry["imageUri"])
    return list(seen)


def export_backup(ledger: TradeLedger) -> Dict[str, Any]:
    history = [t.to_dict() for t in ledger.history]
    active = [t.to_dict() for t in ledger.active]
    return {
        "history": history,
        "activeTrades": active,
        "strategies": [s.to_dict() for s in ledger.strategies],
        "tags": ledger.tags.to_list(),
        "profile": dict(ledger.profile),
        "imagePaths": referenced_images(history + active),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": BACKUP_VERSION,
    }


def _relocate(trade: Trade, chart_dir: str) -> Trade:
    journal = [
        replace(j, image_uris=tuple(os.path.join(chart_dir, os.path.basename(u)) for u in j.image_uris))
        for j in trade.journal
    ]
    return replace(trade, journal=journal)


def import_backup(data: Dict[str, Any], chart_dir: Optional[str] = None) -> Dict[str, Any]:
    """Parse a backup into keyword arguments for `TradeLedger.apply_imported_data`.

    Only the sections present in `data` are returned. With `chart_dir`,
    image paths are rewritten to point at that directory.
    """
    out: Dict[str, Any] = {}
    if data.get("strategies") is not None:
        out["strategies"] = [Strategy.from_dict(s) for s in data["strategies"]]
    if data.get("tags") is not None:
        out["tags"] = [str(t) for t in data["tags"]]
    if data.get("profile") is not None:
        out["profile"] = dict(data["profile"])
    for src, dest in (("history", "history"), ("activeTrades", "active_trades")):
        if data.get(src) is None:
            continue
        trades = [Trade.from_dict(t) for t in data[src]]
        if chart_dir:
            trades = [_relocate(t, chart_dir) for t in trades]
        out[dest] = trades
    return out
