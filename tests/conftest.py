from datetime import datetime, timezone

import pytest

from onyx.ledger import TradeLedger
from onyx.portfolio import PortfolioLedger

START = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = int(start.timestamp() * 1000)

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now += int((minutes * 60 + seconds) * 1000)


class FakePrices:
    def __init__(self, prices=None, error=None):
        self.prices = dict(prices or {})
        self.error = error
        self.calls = []

    def fetch_prices_by_ids(self, ids):
        self.calls.append(list(ids))
        if self.error is not None:
            raise self.error
        return {i: p for i, p in self.prices.items() if i in ids}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def feedback():
    return []


@pytest.fixture
def ledger(clock, feedback):
    return TradeLedger(clock=clock, tz=timezone.utc, on_feedback=feedback.append)


@pytest.fixture
def prices():
    return FakePrices()


@pytest.fixture
def portfolio(clock, prices):
    return PortfolioLedger(price_source=prices, clock=clock)
