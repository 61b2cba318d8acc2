"""
Alert Engine — Registration API
────────────────────────────────
Small FastAPI surface the dashboard talks to. Starting the app loads the
subscriber file, connects Redis if REDIS_URL is set, and starts the
background monitor.

    POST /api/register-push-token   {token, alerts[]} → {success, alertCount}
    POST /api/update-subscription   {token, alerts[]} → {success}
    GET  /api/push-status                             → {enabled, subscriptionCount, totalAlerts}
    GET  /api/monitor-status                          → scheduler + last tick
    POST /api/alerts/check                            → run one tick now
    GET  /api/indicators/{symbol}                     → RSI / SMA snapshot
    GET  /api/gap/{symbol}                            → opening gap vs previous close

Run:
    python -m alert_engine.api
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from alert_engine.config import MonitorConfig
from alert_engine.models import normalise_ticker
from alert_engine.monitor import AlertMonitor

log = logging.getLogger("alerts.api")


class SubscriptionRequest(BaseModel):
    token:  Optional[str] = None
    alerts: Optional[List[dict]] = None


async def connect_redis(url: Optional[str]) -> Optional[aioredis.Redis]:
    if not url:
        return None
    try:
        client = aioredis.from_url(url, decode_responses=True, socket_timeout=2)
        await client.ping()
        log.info("Redis connected")
        return client
    except Exception as e:
        log.warning(f"Redis unavailable ({e}) - using in-memory cache")
        return None


def create_app(monitor: Optional[AlertMonitor] = None,
               config: Optional[MonitorConfig] = None) -> FastAPI:
    config  = config or (monitor.config if monitor else MonitorConfig.from_env())
    monitor = monitor or AlertMonitor.create(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        monitor.store.load()
        redis_client = await connect_redis(config.redis_url)
        if redis_client:
            monitor.market.cache.use_redis(redis_client)
        monitor.start()
        yield
        await monitor.aclose()
        if redis_client:
            await redis_client.aclose()

    app = FastAPI(
        title="Market Alert Engine",
        description="Price and indicator alerts delivered as push notifications.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.monitor = monitor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _monitor(request: Request) -> AlertMonitor:
        return request.app.state.monitor

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/register-push-token", tags=["Push"])
    async def register_push_token(body: SubscriptionRequest, request: Request):
        if not body.token:
            raise HTTPException(400, "Missing token")
        count = _monitor(request).store.register(body.token, body.alerts)
        return {"success": True, "alertCount": count}

    @app.post("/api/update-subscription", tags=["Push"])
    async def update_subscription(body: SubscriptionRequest, request: Request):
        if body.token:
            _monitor(request).store.update_alerts(body.token, body.alerts)
        return {"success": True}

    @app.get("/api/push-status", tags=["Push"])
    async def push_status(request: Request):
        return _monitor(request).store.status()

    @app.get("/api/monitor-status", tags=["Monitor"])
    async def monitor_status(request: Request):
        return _monitor(request).status()

    @app.post("/api/alerts/check", tags=["Monitor"])
    async def check_now(request: Request):
        report = await _monitor(request).tick()
        return report.to_dict()

    @app.get("/api/indicators/{symbol}", tags=["Market"])
    async def indicators(symbol: str, request: Request):
        symbol = normalise_ticker(symbol)
        snap = await _monitor(request).market.snapshot(symbol)
        if snap is None:
            raise HTTPException(404, f"Not enough data for {symbol}")
        return {"ticker": symbol, **snap.to_dict()}

    @app.get("/api/gap/{symbol}", tags=["Market"])
    async def gap(symbol: str, request: Request):
        symbol = normalise_ticker(symbol)
        info = await _monitor(request).market.gap(symbol)
        if info is None:
            raise HTTPException(404, f"No intraday data for {symbol}")
        return info.to_dict()

    return app


def main():
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    config = MonitorConfig.from_env()
    uvicorn.run(create_app(config=config), host="0.0.0.0", port=config.port, log_level="info")


if __name__ == "__main__":
    main()
