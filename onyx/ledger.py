"""
ledger.py
---------

The trade ledger owns every strategy's open ("active") and closed
("history") trades together with the strategy list, the tag vocabulary
and the trader profile. All lifecycle operations go through here:
opening a trade, banking partial closes, stop-loss hits, breakeven
protection, note edits and tagging.

A trade lives in exactly one of the two collections. Operations on an
unknown trade id are logged and ignored so that a stale action from the
UI never raises.
"""

import copy
import logging
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from .config import BE_TOLERANCE, DEFAULT_PROFILE, DEFAULT_RULES, DEFAULT_STRATEGY
from .model_builder import strategy_from_model
from .models import (
    BE,
    CLOSE,
    EXEC_PARTIAL,
    EXEC_SL,
    LOSS,
    PARTIAL,
    STOP_BE,
    STOP_LOSS,
    WIN,
    JournalEntry,
    Rule,
    Strategy,
    Trade,
    _to_float,
    now_ms,
)
from .tags import TagLedger, toggle_membership

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
CLOSED = "CLOSED"

FEEDBACK_SUCCESS = "success"
FEEDBACK_ERROR = "error"

# persistence slot names
SLOT_HISTORY = "history"
SLOT_ACTIVE = "active"
SLOT_STRATEGIES = "strategies"
SLOT_CURRENT_STRATEGY = "current_strategy"
SLOT_TAGS = "tags"
SLOT_PROFILE = "profile"


class LocatedTrade(NamedTuple):
    trade: Trade
    state: str  # ACTIVE | CLOSED


@dataclass
class ExecutionRequest:
    trade_id: int
    type: str = EXEC_PARTIAL
    percent: float = 0.0
    image_uris: Sequence[str] = ()
    note: str = ""


@dataclass
class ExecutionResult:
    closed_full: bool
    is_win: bool
    trade: Optional[Trade] = None


def final_status(realized_profit: float) -> str:
    if realized_profit > 0:
        return WIN
    if abs(realized_profit) < BE_TOLERANCE:
        return BE
    return LOSS


def _default_strategy() -> Strategy:
    return Strategy.from_dict(copy.deepcopy(DEFAULT_STRATEGY))


class TradeLedger:
    """In-memory owner of trades, strategies, tags and profile.

    Parameters
    ----------
    clock: Callable[[], int]
        Returns the current time in epoch milliseconds. Trade ids come
        from it, bumped when needed so they stay unique and increasing.
    tz: tzinfo
        Zone for the display date/time strings captured at creation.
    on_feedback: Callable[[str], None]
        Called with "success" or "error" whenever a trade is finalised.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[Strategy]] = None,
        current_strategy_id: Optional[str] = None,
        history: Optional[Sequence[Trade]] = None,
        active: Optional[Sequence[Trade]] = None,
        tags: Optional[TagLedger] = None,
        profile: Optional[Dict[str, Any]] = None,
        clock: Callable[[], int] = now_ms,
        tz: Optional[tzinfo] = None,
        on_feedback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._strategies: List[Strategy] = list(strategies) if strategies else [_default_strategy()]
        self.current_strategy_id = current_strategy_id or self._strategies[0].id
        self._history: List[Trade] = list(history or [])
        self._active: List[Trade] = list(active or [])
        self.tags = tags if tags is not None else TagLedger()
        self.profile: Dict[str, Any] = dict(profile) if profile else dict(DEFAULT_PROFILE)
        self._clock = clock
        self._tz = tz
        self._on_feedback = on_feedback
        self._last_stamp = max((t.id for t in [*self._history, *self._active]), default=0)

    # ---------- views ----------
    @property
    def history(self) -> List[Trade]:
        return list(self._history)

    @property
    def active(self) -> List[Trade]:
        return list(self._active)

    @property
    def strategies(self) -> List[Strategy]:
        return list(self._strategies)

    @property
    def active_strategy(self) -> Strategy:
        for s in self._strategies:
            if s.id == self.current_strategy_id:
                return s
        return self._strategies[0]

    def strategy_history(self, strategy_id: Optional[str] = None) -> List[Trade]:
        sid = strategy_id or self.current_strategy_id
        return [t for t in self._history if t.strategy_id == sid]

    def strategy_active(self, strategy_id: Optional[str] = None) -> List[Trade]:
        sid = strategy_id or self.current_strategy_id
        return [t for t in self._active if t.strategy_id == sid]

    def find(self, trade_id: Optional[int]) -> Optional[LocatedTrade]:
        """Locate a trade, searching the active set before the history."""
        if trade_id is None:
            return None
        for t in self._active:
            if t.id == trade_id:
                return LocatedTrade(t, ACTIVE)
        for t in self._history:
            if t.id == trade_id:
                return LocatedTrade(t, CLOSED)
        return None

    def check_invariants(self) -> List[str]:
        """Return a description of every broken invariant (empty when sound)."""
        problems: List[str] = []
        active_ids = [t.id for t in self._active]
        history_ids = [t.id for t in self._history]
        for tid in set(active_ids) & set(history_ids):
            problems.append(f"trade {tid} is both active and closed")
        for ids, name in ((active_ids, "active"), (history_ids, "history")):
            dupes = {i for i in ids if ids.count(i) > 1}
            for tid in dupes:
                problems.append(f"trade {tid} appears more than once in {name}")
        for t in self._active:
            if not 0 <= t.percent_closed < 100 or not t.is_open:
                problems.append(f"active trade {t.id} has percent {t.percent_closed} / status {t.status}")
        for t in self._history:
            if t.percent_closed != 100 or t.is_open or t.closed_at is None:
                problems.append(f"closed trade {t.id} is not finalised")
        return problems

    # ---------- internals ----------
    def _stamp(self) -> int:
        stamp = max(int(self._clock()), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    def _emit(self, kind: str) -> None:
        if self._on_feedback is not None:
            self._on_feedback(kind)

    def _replace_trade(self, updated: Trade, state: str) -> None:
        if state == ACTIVE:
            self._active = [updated if t.id == updated.id else t for t in self._active]
        else:
            self._history = [updated if t.id == updated.id else t for t in self._history]

    # ---------- trade lifecycle ----------
    def execute(self, direction: Optional[str], custom_risk: Optional[float] = None) -> Trade:
        """Open a trade under the active strategy.

        The risk is `custom_risk` when positive, else the strategy's risk.
        """
        strategy = self.active_strategy
        override = _to_float(custom_risk)
        risk = override if override > 0 else strategy.risk
        trade_id = self._stamp()
        opened = datetime.fromtimestamp(trade_id / 1000, self._tz)
        trade = Trade(
            id=trade_id,
            strategy_id=strategy.id,
            direction=direction.upper() if direction else "",
            risk=risk,
            date_str=opened.strftime("%m/%d/%Y"),
            time_str=opened.strftime("%H:%M"),
        )
        self._active = [trade, *self._active]
        logger.info("trade %s opened (%s, risk %.2f, strategy %s)", trade.id, trade.direction or "-", risk, strategy.id)
        return trade

    def submit_execution(self, request: ExecutionRequest, manual_profit: Any = "") -> ExecutionResult:
        """Bank a partial close, a full close or a stop-loss on an active trade.

        For stop-losses the banked profit is derived from the risk on the
        remaining position (zero once breakeven is armed); otherwise it is
        the manually entered amount, defaulting to 0 when unparseable.
        """
        located = self.find(request.trade_id)
        if located is None or located.state != ACTIVE:
            logger.warning("execution ignored: trade %s is not active", request.trade_id)
            return ExecutionResult(closed_full=False, is_win=False)

        trade = located.trade
        if request.type == EXEC_SL:
            entry_percent = 100 - trade.percent_closed
            profit = 0.0 if trade.is_breakeven else -(trade.risk * (entry_percent / 100))
            new_percent = 100.0
            log_type = STOP_BE if trade.is_breakeven else STOP_LOSS
        else:
            entry_percent = max(0.0, _to_float(request.percent))
            profit = _to_float(manual_profit)
            new_percent = min(100.0, trade.percent_closed + entry_percent)
            log_type = CLOSE if new_percent >= 100 else PARTIAL

        stamp = self._stamp()
        entry = JournalEntry(
            timestamp=stamp,
            type=log_type,
            percent_closed=entry_percent,
            profit_banked=profit,
            image_uris=tuple(request.image_uris or ()),
            note=request.note or "",
        )
        updated = replace(
            trade,
            realized_profit=trade.realized_profit + profit,
            percent_closed=new_percent,
            journal=[entry, *trade.journal],
        )

        if new_percent < 100:
            self._replace_trade(updated, ACTIVE)
            logger.debug("trade %s %s %.1f%% (now %.1f%%)", trade.id, log_type, entry_percent, new_percent)
            return ExecutionResult(closed_full=False, is_win=False, trade=updated)

        updated = replace(updated, status=final_status(updated.realized_profit), closed_at=stamp)
        self._history = [updated, *self._history]
        self._active = [t for t in self._active if t.id != trade.id]
        is_win = updated.status == WIN
        self._emit(FEEDBACK_SUCCESS if is_win else FEEDBACK_ERROR)
        logger.info("trade %s closed %s (%.2f)", trade.id, updated.status, updated.realized_profit)
        return ExecutionResult(closed_full=True, is_win=is_win, trade=updated)

    def stop_loss_hit(self, trade_id: int) -> ExecutionResult:
        """One-shot stop-loss on the remaining position."""
        return self.submit_execution(ExecutionRequest(trade_id=trade_id, type=EXEC_SL))

    def toggle_breakeven(self, trade_id: int) -> Optional[Trade]:
        located = self.find(trade_id)
        if located is None or located.state != ACTIVE:
            logger.warning("breakeven toggle ignored: trade %s is not active", trade_id)
            return None
        updated = replace(located.trade, is_breakeven=not located.trade.is_breakeven)
        self._replace_trade(updated, ACTIVE)
        return updated

    def save_edited_note(self, trade_id: Optional[int], entry_index: Optional[int], text: str) -> Optional[Trade]:
        """Replace the note of journal entry `entry_index` (newest first)."""
        located = self.find(trade_id)
        if located is None or entry_index is None:
            return None
        journal = list(located.trade.journal)
        if not 0 <= entry_index < len(journal):
            logger.warning("note edit ignored: trade %s has no entry %s", trade_id, entry_index)
            return None
        journal[entry_index] = replace(journal[entry_index], note=text)
        updated = replace(located.trade, journal=journal)
        self._replace_trade(updated, located.state)
        return updated

    def toggle_tag(self, trade_id: int, tag: str) -> Optional[Trade]:
        """Add `tag` to a trade, or remove it when already present."""
        located = self.find(trade_id)
        if located is None:
            logger.warning("tag toggle ignored: unknown trade %s", trade_id)
            return None
        if tag not in located.trade.tags and tag not in self.tags:
            logger.warning("tag toggle ignored: %r is not in the vocabulary", tag)
            return None
        updated = replace(located.trade, tags=toggle_membership(located.trade.tags, tag))
        self._replace_trade(updated, located.state)
        return updated

    def create_tag(self, text: str) -> bool:
        return self.tags.create_tag(text)

    # ---------- strategies ----------
    def select_strategy(self, strategy_id: str) -> bool:
        if not any(s.id == strategy_id for s in self._strategies):
            return False
        self.current_strategy_id = strategy_id
        return True

    def add_strategy(self) -> Strategy:
        strategy = Strategy(
            id=str(self._stamp()),
            name="New Strategy",
            risk=100,
            rules=[Rule.from_dict(r) for r in DEFAULT_RULES],
        )
        self._strategies = [*self._strategies, strategy]
        self.current_strategy_id = strategy.id
        return strategy

    def save_strategy(self, edited: Strategy) -> bool:
        if not any(s.id == edited.id for s in self._strategies):
            return False
        self._strategies = [edited if s.id == edited.id else s for s in self._strategies]
        return True

    def delete_strategy(self, strategy_id: str) -> bool:
        """Delete a strategy unless it is the last one left."""
        if len(self._strategies) <= 1:
            logger.warning("cannot delete strategy %s: at least one must remain", strategy_id)
            return False
        remaining = [s for s in self._strategies if s.id != strategy_id]
        if len(remaining) == len(self._strategies):
            return False
        self._strategies = remaining
        if self.current_strategy_id == strategy_id:
            self.current_strategy_id = remaining[0].id
        logger.info("strategy %s deleted", strategy_id)
        return True

    def create_strategy_from_model(self, selected_tags: Sequence[str]) -> Optional[Strategy]:
        strategy = strategy_from_model(selected_tags, self.active_strategy.risk, lambda: str(self._stamp()))
        if strategy is None:
            return None
        self._strategies = [*self._strategies, strategy]
        self.current_strategy_id = strategy.id
        logger.info("strategy %s created from model %s", strategy.id, list(selected_tags))
        return strategy

    # ---------- state in / out ----------
    def to_slots(self) -> Dict[str, Any]:
        return {
            SLOT_HISTORY: [t.to_dict() for t in self._history],
            SLOT_ACTIVE: [t.to_dict() for t in self._active],
            SLOT_STRATEGIES: [s.to_dict() for s in self._strategies],
            SLOT_CURRENT_STRATEGY: self.current_strategy_id,
            SLOT_TAGS: self.tags.to_list(),
            SLOT_PROFILE: dict(self.profile),
        }

    @classmethod
    def from_slots(cls, slots: Dict[str, Any], **kwargs) -> "TradeLedger":
        """Build a ledger from persisted slots; missing slots fall back to defaults."""
        strategies = [Strategy.from_dict(s) for s in slots.get(SLOT_STRATEGIES) or []]
        tags = slots.get(SLOT_TAGS)
        return cls(
            strategies=strategies or None,
            current_strategy_id=slots.get(SLOT_CURRENT_STRATEGY),
            history=[Trade.from_dict(t) for t in slots.get(SLOT_HISTORY) or []],
            active=[Trade.from_dict(t) for t in slots.get(SLOT_ACTIVE) or []],
            tags=TagLedger(tags) if tags is not None else None,
            profile=slots.get(SLOT_PROFILE),
            **kwargs,
        )

    def apply_imported_data(
        self,
        history: Optional[Sequence[Trade]] = None,
        active_trades: Optional[Sequence[Trade]] = None,
        strategies: Optional[Sequence[Strategy]] = None,
        tags: Optional[Sequence[str]] = None,
        profile: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Replace only the parts of the state that an import provides."""
        if strategies:
            self._strategies = list(strategies)
            if not any(s.id == self.current_strategy_id for s in self._strategies):
                self.current_strategy_id = self._strategies[0].id
        if tags is not None:
            self.tags.replace(tags)
        if profile is not None:
            self.profile = dict(profile)
        if history is not None:
            self._history = list(history)
        if active_trades is not None:
            self._active = list(active_trades)
        self._last_stamp = max([self._last_stamp, *(t.id for t in [*self._history, *self._active])])
        logger.info("imported %d closed / %d active trades", len(self._history), len(self._active))
