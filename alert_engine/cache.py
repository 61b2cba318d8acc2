"""
Alert Engine — Market Data Cache
─────────────────────────────────
Read-through cache keyed by (symbol, kind). A read inside the TTL returns
the stored value; anything older triggers the fetcher and overwrites.

Two TTL classes are used by callers:
  quote   ~15s   (current price)
  series  ~60s   (daily closes / intraday bars)

When a Redis client is supplied it is consulted as a second tier so several
processes can share fetched data. Redis is optional: any Redis error drops
back to the in-process dict, which is always written.

Entries live for the process lifetime (overwrite-on-refresh only); the
symbol universe is small and fixed.
"""

import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

log = logging.getLogger("alerts.cache")

KIND_QUOTE    = "quote"
KIND_DAILY    = "daily"
KIND_INTRADAY = "intraday"


class MarketDataCache:

    def __init__(self, clock: Callable[[], float] = time.time, redis=None,
                 key_prefix: str = "alerts"):
        self._clock   = clock
        self._redis   = redis
        self._prefix  = key_prefix
        self._entries: Dict[Tuple[str, str], Tuple[Any, float]] = {}

    def use_redis(self, client):
        self._redis = client

    def _redis_key(self, symbol: str, kind: str) -> str:
        return f"{self._prefix}:{kind}:{symbol}"

    def peek(self, symbol: str, kind: str, ttl_s: float) -> Optional[Any]:
        entry = self._entries.get((symbol, kind))
        if entry and (self._clock() - entry[1]) < ttl_s:
            return entry[0]
        return None

    async def _redis_get(self, symbol: str, kind: str) -> Optional[Any]:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(self._redis_key(symbol, kind))
            return json.loads(raw) if raw else None
        except Exception as e:
            log.warning(f"Redis read failed for {kind}:{symbol} ({e}) - using memory cache")
            return None

    async def _redis_set(self, symbol: str, kind: str, value: Any, ttl_s: float):
        if self._redis is None:
            return
        try:
            await self._redis.setex(self._redis_key(symbol, kind),
                                    max(1, int(ttl_s)), json.dumps(value))
        except Exception as e:
            log.warning(f"Redis write failed for {kind}:{symbol} ({e})")

    async def get(self, symbol: str, kind: str, ttl_s: float,
                  fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value while fresh, otherwise await `fetcher()`,
        store its result and return it.

        A fetcher that raises propagates the error and leaves the entry
        untouched. A fetcher that returns None (upstream had nothing) is
        not stored either, so the next call tries again.
        """
        cached = self.peek(symbol, kind, ttl_s)
        if cached is not None:
            return cached

        shared = await self._redis_get(symbol, kind)
        if shared is not None:
            self._entries[(symbol, kind)] = (shared, self._clock())
            return shared

        value = await fetcher()
        if value is None:
            return None
        self._entries[(symbol, kind)] = (value, self._clock())
        await self._redis_set(symbol, kind, value, ttl_s)
        return value

    def __len__(self) -> int:
        return len(self._entries)
