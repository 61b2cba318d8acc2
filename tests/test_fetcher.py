import httpx
import pytest

from alert_engine.fetcher import YahooFetcher, lookback_to_range


def _chart(closes, price=None, opens=None, stamps=None, prev_close=None):
    meta = {}
    if price is not None:
        meta["regularMarketPrice"] = price
    if prev_close is not None:
        meta["chartPreviousClose"] = prev_close
    quote = {"close": closes}
    if opens is not None:
        quote["open"] = opens
    result = {"meta": meta, "indicators": {"quote": [quote]}}
    if stamps is not None:
        result["timestamp"] = stamps
    return {"chart": {"result": [result], "error": None}}


def _fetcher(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YahooFetcher(client=client)


async def test_quote_prefers_regular_market_price():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_chart([504.0, 504.5], price=505.25))

    fetcher = _fetcher(handler)
    assert await fetcher.fetch_quote("SPY") == 505.25
    assert seen[0].url.host == "query1.finance.yahoo.com"
    assert seen[0].url.path.endswith("/SPY")
    assert seen[0].url.params["interval"] == "1m"
    await fetcher.aclose()


async def test_quote_falls_back_to_last_non_null_close():
    fetcher = _fetcher(lambda r: httpx.Response(200, json=_chart([501.0, 502.0, None])))
    assert await fetcher.fetch_quote("SPY") == 502.0


async def test_quote_without_any_price_is_none():
    fetcher = _fetcher(lambda r: httpx.Response(200, json=_chart([None, None])))
    assert await fetcher.fetch_quote("SPY") is None


async def test_daily_series_filters_nulls_and_keeps_order():
    def handler(request):
        assert request.url.params["interval"] == "1d"
        assert request.url.params["range"] == "1y"
        return httpx.Response(200, json=_chart([1.0, None, 2.0, 3.0, None]))

    fetcher = _fetcher(handler)
    assert await fetcher.fetch_daily_series("SPY", 365) == [1.0, 2.0, 3.0]


async def test_falls_back_to_query2_host():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        if request.url.host == "query1.finance.yahoo.com":
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json=_chart([10.0], price=10.0))

    fetcher = _fetcher(handler)
    assert await fetcher.fetch_quote("AAPL") == 10.0
    assert hosts == ["query1.finance.yahoo.com", "query2.finance.yahoo.com"]


async def test_transport_error_returns_none():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = _fetcher(handler)
    assert await fetcher.fetch_quote("SPY") is None
    assert await fetcher.fetch_daily_series("SPY") is None


async def test_timeout_returns_none():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    assert await _fetcher(handler).fetch_daily_series("SPY") is None


async def test_malformed_body_returns_none():
    fetcher = _fetcher(lambda r: httpx.Response(200, text="<html>nope</html>"))
    assert await fetcher.fetch_quote("SPY") is None


async def test_empty_result_returns_none():
    fetcher = _fetcher(lambda r: httpx.Response(200, json={"chart": {"result": None}}))
    assert await fetcher.fetch_daily_series("ZZZZ") is None


async def test_intraday_series():
    body = _chart(
        closes=[105.0, None, 103.0],
        opens=[104.5, 104.0, None],
        stamps=[1000, 1300, 1600],
        prev_close=100.0,
    )
    fetcher = _fetcher(lambda r: httpx.Response(200, json=body))
    series = await fetcher.fetch_intraday_series("SPY")
    assert series.prev_close == 100.0
    # bars missing open or close are dropped
    assert [(b.ts, b.open, b.close) for b in series.bars] == [(1000, 104.5, 105.0)]


@pytest.mark.parametrize("days,expected", [
    (5, "5d"), (20, "1mo"), (90, "3mo"), (200, "1y"), (365, "1y"),
    (500, "2y"), (1825, "5y"), (4000, "10y"),
])
def test_lookback_to_range(days, expected):
    assert lookback_to_range(days) == expected
