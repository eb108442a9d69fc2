"""
model_builder.py
----------------

A "model" is the slice of a strategy's closed trades that carry every
one of a set of selected tags. Its combined stats tell whether the tag
combination deserves to become a strategy of its own.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from .analytics import win_rate
from .models import Rule, Strategy, Trade


@dataclass
class ModelStats:
    count: int
    win_rate: float
    net_profit: float

    def to_dict(self):
        return {"count": self.count, "winRate": self.win_rate, "netProfit": self.net_profit}


def matching_trades(history: Iterable[Trade], selected_tags: Sequence[str]) -> List[Trade]:
    """Trades whose tags include all of `selected_tags` (logical AND)."""
    wanted = set(selected_tags)
    return [t for t in history if wanted.issubset(t.tags)]


def compute_model_stats(history: Iterable[Trade], selected_tags: Sequence[str]) -> Optional[ModelStats]:
    """Return stats for the AND-of-tags slice, or None when nothing is selected."""
    if not selected_tags:
        return None
    trades = matching_trades(history, selected_tags)
    return ModelStats(
        count=len(trades),
        win_rate=win_rate(trades),
        net_profit=sum(t.realized_profit for t in trades),
    )


def strategy_from_model(
    selected_tags: Sequence[str],
    risk: float,
    make_id: Callable[[], str],
) -> Optional[Strategy]:
    """Build a strategy with one checklist rule per tag, in tag order."""
    if not selected_tags:
        return None
    base_id = make_id()
    rules = [Rule(id=f"{base_id}{i}", text=tag) for i, tag in enumerate(selected_tags)]
    return Strategy(
        id=base_id,
        name="Model: " + " + ".join(selected_tags),
        risk=risk,
        rules=rules,
    )
