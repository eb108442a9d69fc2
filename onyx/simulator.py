"""
simulator.py
------------

Equity simulator: the closed-form expectation of a fixed-risk system
next to one random path of the same system. The random path is a
single draw; repeated calls with the same inputs give different
results unless a seeded generator is passed in.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from .config import SIM_MAX_TRADES, SIM_RISK_FRACTION
from .models import _to_float, _to_int

logger = logging.getLogger(__name__)


@dataclass
class SimResult:
    final: float
    growth: float
    dd: float
    expected: float

    def to_dict(self) -> Dict[str, float]:
        return {"final": self.final, "growth": self.growth, "dd": self.dd, "expected": self.expected}


def run_simulation(
    balance: Any,
    win_rate: Any,
    rr: Any,
    trades: Any,
    rng: Optional[np.random.Generator] = None,
) -> SimResult:
    """Simulate `trades` trades risking 1% of the starting balance each.

    Inputs may be numbers or the raw strings typed by the user; anything
    unparseable counts as 0. `win_rate` is a percentage. Runs longer than
    SIM_MAX_TRADES are cut to that length, expectation included.
    """
    start = _to_float(balance)
    p_win = min(max(_to_float(win_rate) / 100, 0.0), 1.0)
    reward = _to_float(rr)
    n = max(0, _to_int(trades))
    if n > SIM_MAX_TRADES:
        logger.warning("simulation capped at %d trades (asked for %d)", SIM_MAX_TRADES, n)
        n = SIM_MAX_TRADES
    risk = start * SIM_RISK_FRACTION

    ev_per_trade = risk * reward * p_win - risk * (1 - p_win)
    expected = start + ev_per_trade * n

    if n == 0:
        return SimResult(final=start, growth=0.0, dd=0.0, expected=expected)

    rng = rng if rng is not None else np.random.default_rng()
    wins = rng.random(n) < p_win
    equity = start + np.cumsum(np.where(wins, risk * reward, -risk))
    peaks = np.maximum.accumulate(np.concatenate(([start], equity)))[1:]

    # drawdown is undefined while the peak is not positive
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - equity) / peaks * 100, 0.0)

    final = float(equity[-1])
    growth = (final - start) / start * 100 if start else 0.0
    return SimResult(final=final, growth=growth, dd=max(0.0, float(drawdowns.max())), expected=expected)
