from collections import Counter
from typing import Dict, List, Optional

from alert_engine.dispatcher import PushResult
from alert_engine.models import IntradaySeries


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFetcher:
    """Stands in for YahooFetcher; counts every upstream call."""

    def __init__(self, prices: Optional[Dict[str, float]] = None,
                 series: Optional[Dict[str, List[float]]] = None,
                 intraday: Optional[Dict[str, IntradaySeries]] = None):
        self.prices   = prices or {}
        self.series   = series or {}
        self.intraday = intraday or {}
        self.calls    = Counter()
        self.errors: Dict[str, Exception] = {}
        self.closed   = False

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def fetch_quote(self, symbol):
        self.calls[("quote", symbol)] += 1
        if symbol in self.errors:
            raise self.errors[symbol]
        return self.prices.get(symbol)

    async def fetch_daily_series(self, symbol, lookback_days=365):
        self.calls[("daily", symbol)] += 1
        if symbol in self.errors:
            raise self.errors[symbol]
        return self.series.get(symbol)

    async def fetch_intraday_series(self, symbol, interval="5m"):
        self.calls[("intraday", symbol)] += 1
        return self.intraday.get(symbol)

    async def aclose(self):
        self.closed = True


class FakeSender:
    def __init__(self, result: Optional[PushResult] = None):
        self.result   = result or PushResult(accepted=True)
        self.messages: List[dict] = []
        self.closed   = False

    async def send(self, message):
        self.messages.append(message)
        return self.result

    async def aclose(self):
        self.closed = True


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache tier."""

    def __init__(self, fail: bool = False):
        self.data: Dict[str, str] = {}
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        if self.fail:
            raise ConnectionError("redis down")
        self.data[key] = value


def flat_then(last_values: List[float], base: float = 100.0, length: int = 210) -> List[float]:
    """`length` closes at `base`, with the tail replaced by `last_values`."""
    closes = [base] * (length - len(last_values))
    return closes + list(last_values)


class FakeCredentials:
    """Mimics google.oauth2 service-account credentials: refresh() mints a new token."""

    def __init__(self, project_id: str = "demo-project", fail: Optional[Exception] = None):
        self.project_id = project_id
        self.token: Optional[str] = None
        self.valid      = False
        self.refreshes  = 0
        self.fail       = fail

    def refresh(self, request):
        if self.fail is not None:
            raise self.fail
        self.refreshes += 1
        self.token = f"access-{self.refreshes}"
        self.valid = True
