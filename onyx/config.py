"""
config.py
---------

Defaults and environment-driven settings shared by the journal modules.
Values that a deployment may want to change are read from the
environment; everything else is a plain module constant.
"""

import os
from zoneinfo import ZoneInfo

DB_PATH = os.getenv("ONYX_DB", "onyx.db")
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
COINLORE_URL = os.getenv("COINLORE_URL", "https://api.coinlore.net/api")
DEFAULT_TIMEOUT = 15

# Calendar-day logic (1D filter, daily P&L) runs in this zone.
_tz_name = os.getenv("ONYX_TZ")
LOCAL_TZ = ZoneInfo(_tz_name) if _tz_name else None

TRADES_PER_PAGE = 5

# Trade lifecycle
BE_TOLERANCE = 0.01
INFINITY_SYMBOL = "∞"

# Portfolio snapshots
SNAPSHOT_THROTTLE_MS = 5 * 60 * 1000
SNAPSHOT_CAP = 100

# Equity simulator: fixed fraction of the starting balance risked per trade
SIM_RISK_FRACTION = 0.01
# longest path drawn in one run
SIM_MAX_TRADES = 100_000

BACKUP_VERSION = "4.1"

DEFAULT_RULES = [
    {"id": "1", "text": "Identify Key Level (S/R)"},
    {"id": "2", "text": "Wait for Rejection Candle"},
    {"id": "3", "text": "Confirm Trend Direction"},
    {"id": "4", "text": "Risk/Reward > 1:2"},
]

DEFAULT_STRATEGY = {
    "id": "default_pa",
    "name": "Price Action Basics",
    "risk": 100,
    "rules": DEFAULT_RULES,
}

DEFAULT_TAGS = ["A+ Setup", "Trend", "Reversal", "Impulse", "Chop"]

DEFAULT_PROFILE = {
    "name": "Trader",
    "goal": "Consistent Profitability",
    "mantra": "Plan the trade, trade the plan.",
    "biometricsEnabled": False,
}
