"""
Alert Engine — Upstream Fetcher (Yahoo Finance)
────────────────────────────────────────────────
Pulls raw data from Yahoo's v8/chart endpoint (no key needed):
  - fetch_quote(symbol)                      → current price
  - fetch_daily_series(symbol, lookback)     → daily closes, oldest first
  - fetch_intraday_series(symbol)            → previous close + today's bars

Null points (holidays, halted minutes) are filtered out before anything
else sees them. On any transport or parse failure these return None
instead of raising, so one bad symbol never aborts a monitoring tick.
"""

import logging
from typing import List, Optional

import httpx

from alert_engine.models import IntradayBar, IntradaySeries

log = logging.getLogger("alerts.fetcher")

REQUEST_TIMEOUT = 10

YAHOO_URL          = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
YAHOO_FALLBACK_URL = "https://query2.finance.yahoo.com/v8/finance/chart/{symbol}"

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}

# (max calendar days, Yahoo range string)
_RANGES = [
    (5, "5d"), (30, "1mo"), (90, "3mo"), (180, "6mo"),
    (365, "1y"), (730, "2y"), (1825, "5y"),
]


def lookback_to_range(days: int) -> str:
    for limit, name in _RANGES:
        if days <= limit:
            return name
    return "10y"


def _first_result(data: Optional[dict]) -> Optional[dict]:
    if not isinstance(data, dict):
        return None
    result = (data.get("chart") or {}).get("result") or []
    return result[0] if result else None


def _quote_block(result: dict) -> dict:
    quote = ((result.get("indicators") or {}).get("quote") or [{}])
    return quote[0] or {}


class YahooFetcher:

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = REQUEST_TIMEOUT):
        self._client  = client
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                timeout=self._timeout,
            )
        return self._client

    async def aclose(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _chart(self, symbol: str, interval: str, range_: str) -> Optional[dict]:
        """First chart result from query1, then query2; None when both fail."""
        client = await self._get_client()
        params = {"interval": interval, "range": range_}
        for template in (YAHOO_URL, YAHOO_FALLBACK_URL):
            url = template.format(symbol=symbol)
            try:
                r = await client.get(url, params=params, headers=HEADERS, timeout=self._timeout)
                if r.status_code != 200:
                    log.warning(f"Yahoo {symbol} {interval}/{range_}: HTTP {r.status_code}")
                    continue
                result = _first_result(r.json())
                if result:
                    return result
            except httpx.TimeoutException:
                log.warning(f"Timeout fetching {symbol} ({interval}/{range_})")
            except (httpx.HTTPError, ValueError) as e:
                log.warning(f"Error fetching {symbol} ({interval}/{range_}): {e}")
        return None

    async def fetch_quote(self, symbol: str) -> Optional[float]:
        """Live price from 1-minute data; falls back to the last non-null close."""
        result = await self._chart(symbol, "1m", "1d")
        if not result:
            return None
        price = (result.get("meta") or {}).get("regularMarketPrice")
        if not price:
            closes = [c for c in _quote_block(result).get("close") or [] if c is not None]
            price = closes[-1] if closes else None
        if not price or price <= 0:
            log.info(f"{symbol}: no valid price in quote response")
            return None
        return float(price)

    async def fetch_daily_series(self, symbol: str, lookback_days: int = 365) -> Optional[List[float]]:
        result = await self._chart(symbol, "1d", lookback_to_range(lookback_days))
        if not result:
            return None
        closes = [float(c) for c in _quote_block(result).get("close") or [] if c is not None]
        return closes or None

    async def fetch_intraday_series(self, symbol: str, interval: str = "5m") -> Optional[IntradaySeries]:
        result = await self._chart(symbol, interval, "1d")
        if not result:
            return None
        meta   = result.get("meta") or {}
        quote  = _quote_block(result)
        stamps = result.get("timestamp") or []
        bars = [
            IntradayBar(ts=int(t), open=float(o), close=float(c))
            for t, o, c in zip(stamps, quote.get("open") or [], quote.get("close") or [])
            if t is not None and o is not None and c is not None
        ]
        if not bars:
            return None
        prev_close = meta.get("chartPreviousClose") or meta.get("previousClose")
        return IntradaySeries(
            symbol     = symbol,
            prev_close = float(prev_close) if prev_close else None,
            bars       = bars,
        )
