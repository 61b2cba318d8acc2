"""
Alert Engine — Market Data
───────────────────────────
Glue between the evaluator and the outside world:

    evaluator → MarketData → MarketDataCache → YahooFetcher
                                      ↘ indicators (pure)

Every upstream call is bounded by a per-fetch timeout; a timeout counts
as a failed fetch (None), the same as an HTTP error.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from alert_engine import indicators
from alert_engine.cache import KIND_DAILY, KIND_INTRADAY, KIND_QUOTE, MarketDataCache
from alert_engine.config import MonitorConfig
from alert_engine.models import GapInfo, IndicatorSnapshot, IntradaySeries

log = logging.getLogger("alerts.market_data")

MIN_SNAPSHOT_POINTS = indicators.SMA_SLOW


def build_snapshot(closes: Optional[List[float]]) -> Optional[IndicatorSnapshot]:
    """RSI / SMA50 / SMA200 / crossover for a daily close series; None under 200 points."""
    if not closes or len(closes) < MIN_SNAPSHOT_POINTS:
        return None
    price  = closes[-1]
    sma50  = indicators.sma(closes, indicators.SMA_FAST)
    sma200 = indicators.sma(closes, indicators.SMA_SLOW)
    return IndicatorSnapshot(
        price           = price,
        rsi             = indicators.rsi(closes),
        sma50           = sma50,
        sma200          = sma200,
        sma50_distance  = indicators.percent_distance(price, sma50),
        sma200_distance = indicators.percent_distance(price, sma200),
        crossover       = indicators.crossover_from_series(closes),
    )


def build_gap(series: Optional[IntradaySeries]) -> Optional[GapInfo]:
    if not series or not series.bars or not series.prev_close:
        return None
    prev_close = series.prev_close
    today_open = series.bars[0].open
    current    = series.bars[-1].close
    return GapInfo(
        symbol        = series.symbol,
        prev_close    = prev_close,
        today_open    = today_open,
        current_price = current,
        gap_pct       = indicators.gap_percent(prev_close, today_open),
        filled        = indicators.gap_filled(prev_close, today_open, current),
        fill_pct      = indicators.gap_fill_percent(prev_close, today_open, current),
    )


class MarketData:

    def __init__(self, fetcher, cache: MarketDataCache, config: MonitorConfig):
        self.fetcher = fetcher
        self.cache   = cache
        self.config  = config

    async def _bounded(self, symbol: str, what: str,
                       call: Callable[[], Awaitable[Any]]) -> Optional[Any]:
        try:
            return await asyncio.wait_for(call(), timeout=self.config.fetch_timeout_s)
        except asyncio.TimeoutError:
            log.warning(f"{symbol}: {what} fetch timed out after {self.config.fetch_timeout_s}s")
            return None

    async def price(self, symbol: str) -> Optional[float]:
        return await self.cache.get(
            symbol, KIND_QUOTE, self.config.quote_ttl_s,
            lambda: self._bounded(symbol, "quote",
                                  lambda: self.fetcher.fetch_quote(symbol)),
        )

    async def daily_closes(self, symbol: str) -> Optional[List[float]]:
        lookback = self.config.daily_lookback_days
        return await self.cache.get(
            symbol, KIND_DAILY, self.config.series_ttl_s,
            lambda: self._bounded(symbol, "daily series",
                                  lambda: self.fetcher.fetch_daily_series(symbol, lookback)),
        )

    async def snapshot(self, symbol: str) -> Optional[IndicatorSnapshot]:
        closes = await self.daily_closes(symbol)
        snap = build_snapshot(closes)
        if snap is None:
            log.info(f"{symbol}: not enough daily history for indicators "
                     f"({len(closes) if closes else 0} points)")
        return snap

    async def intraday(self, symbol: str) -> Optional[IntradaySeries]:
        async def fetch():
            series = await self._bounded(symbol, "intraday series",
                                         lambda: self.fetcher.fetch_intraday_series(symbol))
            return series.to_dict() if series else None

        raw = await self.cache.get(symbol, KIND_INTRADAY, self.config.series_ttl_s, fetch)
        return IntradaySeries.from_dict(raw) if raw else None

    async def gap(self, symbol: str) -> Optional[GapInfo]:
        return build_gap(await self.intraday(symbol))
