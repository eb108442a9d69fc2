"""
coinlore.py
-----------

Price lookup against the public CoinLore API. The portfolio ledger only
needs `fetch_prices_by_ids`; failures inside the client surface as
`CoinloreAPIError` from `_request`, and the public lookups turn them
into empty results so a bad network never breaks a refresh.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from .config import COINLORE_URL, DEFAULT_TIMEOUT
from .models import _to_float

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
LIST_PAGES = 2


@dataclass
class CoinloreAPIError(Exception):
    status_code: int
    code: Optional[str]
    message: str
    payload: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        code_str = f" [{self.code}]" if self.code else ""
        return f"CoinloreAPIError{code_str}: {self.message} (HTTP {self.status_code})"


class CoinloreClient:
    """Thin client over the CoinLore ticker endpoints."""

    def __init__(self, base_url: str = COINLORE_URL, timeout: float = DEFAULT_TIMEOUT, verbose: bool = False):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verbose = verbose
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": "onyx-journal"})

    # ---------- logging ----------
    def _log(self, msg: str) -> None:
        if self.verbose:
            logger.info("[Coinlore] %s", msg)

    # ---------- transport ----------
    def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        self._log(f"REQUEST GET {path} params={params}")
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise CoinloreAPIError(0, "timeout", f"Timeout calling {path}") from e
        except requests.ConnectionError as e:
            raise CoinloreAPIError(0, "connection_error", f"Network error calling {path}") from e
        except requests.RequestException as e:
            raise CoinloreAPIError(0, "unknown_error", f"Unexpected error calling {path}: {e}") from e

        self._log(f"RESPONSE {r.status_code} for {path}")
        if r.status_code >= 400:
            raise CoinloreAPIError(r.status_code, None, "HTTP error", {"text": r.text[:200]})
        try:
            return r.json()
        except ValueError:
            raise CoinloreAPIError(r.status_code, "bad_json", "Response not JSON", {"text": r.text[:200]})

    # ---------- endpoints ----------
    def fetch_prices_by_ids(self, ids: Iterable[str]) -> Dict[str, float]:
        """Batch price lookup. Ids missing from the response are simply absent."""
        ids = [str(i) for i in ids if i]
        prices: Dict[str, float] = {}
        if not ids:
            return prices
        try:
            data = self._request("/ticker/", params={"id": ",".join(ids)})
        except CoinloreAPIError as e:
            logger.warning("batch price fetch failed: %s", e)
            return prices
        if not isinstance(data, list):
            return prices
        for coin in data:
            price = _to_float(coin.get("price_usd"), float("nan"))
            if coin.get("id") is not None and not math.isnan(price):
                prices[str(coin["id"])] = price
        self._log(f"prices fetched={len(prices)}/{len(ids)}")
        return prices

    def fetch_price_by_id(self, coin_id: str) -> Optional[float]:
        return self.fetch_prices_by_ids([coin_id]).get(str(coin_id))

    def fetch_coin_list(self) -> List[Dict[str, Any]]:
        """First LIST_PAGES pages of /tickers/ (top coins by rank)."""
        out: List[Dict[str, Any]] = []
        for page in range(LIST_PAGES):
            try:
                data = self._request("/tickers/", params={"start": page * PAGE_SIZE, "limit": PAGE_SIZE})
            except CoinloreAPIError as e:
                logger.warning("coin list page %d failed: %s", page, e)
                continue
            out.extend((data or {}).get("data") or [])
        return out

    def search_coins(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        q = (query or "").strip().lower()
        if not q:
            return []
        matches = [
            c for c in self.fetch_coin_list()
            if q in str(c.get("symbol", "")).lower() or q in str(c.get("name", "")).lower()
        ]
        return matches[:limit]
