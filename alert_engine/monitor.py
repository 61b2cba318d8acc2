"""
Alert Engine — Monitoring Loop
───────────────────────────────
Runs in the background and sends push notifications even when nobody has
the dashboard open.

Each tick:
  1. No subscribers or no rules at all → return immediately (no fetches).
  2. Prefetch every (ticker, feed) the rules need, concurrently, through
     the cache. Failures here only mean those rules see "no data".
  3. Walk subscribers → rules in order, one at a time:
        evaluate → cooldown check → dispatch → record cooldown
     Cooldown and store writes therefore happen from a single writer.

Ticks never overlap. A tick that starts while another is still running is
skipped and logged. APScheduler fires the first tick after a short delay
and then on a fixed interval for the life of the process.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from alert_engine.cache import KIND_DAILY, KIND_QUOTE, MarketDataCache
from alert_engine.config import MonitorConfig
from alert_engine.cooldown import CooldownTracker
from alert_engine.dispatcher import FcmPushSender, NotificationDispatcher
from alert_engine.evaluator import AlertEvaluator, Failed, Fired, symbol_needs
from alert_engine.fetcher import YahooFetcher
from alert_engine.market_data import MarketData
from alert_engine.store import SubscriberStore, short_token

log = logging.getLogger("alerts.monitor")

JOB_ID = "alert_check"


@dataclass
class TickReport:
    started_at:    float = 0.0
    duration_s:    float = 0.0
    skipped:       bool = False
    subscribers:   int = 0
    rules:         int = 0
    fired:         int = 0
    suppressed:    int = 0
    no_decision:   int = 0
    failed:        int = 0
    send_failures: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class AlertMonitor:

    def __init__(self, config: MonitorConfig, store: SubscriberStore, market: MarketData,
                 evaluator: AlertEvaluator, cooldowns: CooldownTracker,
                 dispatcher: NotificationDispatcher,
                 clock: Callable[[], float] = time.time):
        self.config     = config
        self.store      = store
        self.market     = market
        self.evaluator  = evaluator
        self.cooldowns  = cooldowns
        self.dispatcher = dispatcher
        self._clock     = clock

        self._in_progress = False
        self._scheduler   = None
        self.last_report: Optional[TickReport] = None
        self.tick_count   = 0

    @classmethod
    def create(cls, config: MonitorConfig, fetcher=None, sender=None, redis=None,
               store: Optional[SubscriberStore] = None,
               clock: Callable[[], float] = time.time) -> "AlertMonitor":
        """Wire every component from one config; any collaborator can be swapped in."""
        store   = store or SubscriberStore(config.tokens_file)
        fetcher = fetcher or YahooFetcher(timeout=config.fetch_timeout_s)
        sender  = sender or FcmPushSender.from_config(config)
        cache   = MarketDataCache(clock=clock, redis=redis)
        market  = MarketData(fetcher, cache, config)
        return cls(
            config     = config,
            store      = store,
            market     = market,
            evaluator  = AlertEvaluator(market),
            cooldowns  = CooldownTracker(config.cooldown_s, clock=clock),
            dispatcher = NotificationDispatcher(sender, store, config, clock=clock),
            clock      = clock,
        )

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    # ── one pass ─────────────────────────────────────────────
    async def tick(self) -> TickReport:
        if self._in_progress:
            log.warning("Previous alert check still running - skipping this tick")
            return TickReport(started_at=self._clock(), skipped=True)

        self._in_progress = True
        report = TickReport(started_at=self._clock())
        t0 = time.monotonic()
        try:
            await self._run(report)
        finally:
            self._in_progress = False
            report.duration_s = round(time.monotonic() - t0, 3)
            self.last_report  = report
            self.tick_count  += 1
        return report

    async def _run(self, report: TickReport):
        subscribers = self.store.subscribers
        total = sum(len(s.alerts) for s in subscribers)
        report.subscribers = len(subscribers)
        if not subscribers or total == 0:
            return

        log.info(f"Checking {total} alerts for {len(subscribers)} users...")
        unavailable = await self._prefetch(subscribers)

        for sub in subscribers:
            for rule in list(sub.alerts):
                if self.store.get(sub.token) is None:
                    break   # removed mid-tick (token no longer registered)
                report.rules += 1
                if (rule.ticker, symbol_needs(rule)) in unavailable:
                    report.no_decision += 1
                    continue
                try:
                    await self._check_rule(sub.token, rule, report)
                except Exception as e:
                    report.failed += 1
                    log.error(f"Alert {rule.id} ({rule.ticker}) for {short_token(sub.token)} failed: {e}")

        log.info(f"Alert check done - fired={report.fired} suppressed={report.suppressed} "
                 f"failed={report.failed} send_failures={report.send_failures}")

    async def _check_rule(self, token: str, rule, report: TickReport):
        result = await self.evaluator.evaluate(rule)

        if isinstance(result, Failed):
            report.failed += 1
            log.error(f"Alert {rule.id} ({rule.type} {rule.ticker}) evaluation failed: {result.reason}")
            return
        if not isinstance(result, Fired):
            report.no_decision += 1
            log.debug(f"Alert {rule.id} ({rule.type} {rule.ticker}): {result.reason}")
            return
        if self.cooldowns.should_suppress(token, rule.id):
            report.suppressed += 1
            return

        log.info(f"Triggering alert: {result.title}")
        sent = await self.dispatcher.send(token, result.title, result.body, result.data)
        if sent:
            self.cooldowns.record_fired(token, rule.id)
            report.fired += 1
        else:
            # no cooldown: eligible again next tick
            report.send_failures += 1

    async def _prefetch(self, subscribers) -> Set[Tuple[str, str]]:
        """Warm the cache; returns the (ticker, feed) pairs that came back empty."""
        needs: Set[Tuple[str, str]] = set()
        for sub in subscribers:
            for rule in sub.alerts:
                kind = symbol_needs(rule)
                if kind:
                    needs.add((rule.ticker, kind))
        if not needs:
            return set()

        sem = asyncio.Semaphore(max(1, self.config.fetch_concurrency))

        async def fetch_one(ticker: str, kind: str):
            async with sem:
                if kind == KIND_DAILY:
                    return await self.market.daily_closes(ticker)
                if kind == KIND_QUOTE:
                    return await self.market.price(ticker)
                return None

        ordered = sorted(needs)
        results = await asyncio.gather(*[fetch_one(t, k) for t, k in ordered],
                                       return_exceptions=True)
        unavailable = set()
        for (ticker, kind), res in zip(ordered, results):
            if isinstance(res, Exception):
                log.warning(f"Prefetch {kind} for {ticker} failed: {res}")
            if res is None or isinstance(res, Exception):
                unavailable.add((ticker, kind))
        if unavailable:
            log.warning(f"Skipping {len(unavailable)} feed(s) this tick: "
                        f"{sorted(t for t, _ in unavailable)}")
        return unavailable

    # ── scheduling ───────────────────────────────────────────
    def start(self):
        if self._scheduler is not None:
            log.warning("Alert monitor already running - ignoring start call")
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        first_run = datetime.now(timezone.utc) + timedelta(seconds=self.config.initial_delay_s)
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds            = self.config.tick_interval_s,
            next_run_time      = first_run,
            id                 = JOB_ID,
            name               = "Background alert monitoring",
            max_instances      = 1,
            coalesce           = True,
            replace_existing   = True,
        )
        self._scheduler.start()
        log.info(f"Starting background alert monitoring (every {self.config.tick_interval_s:g} seconds, "
                 f"first check in {self.config.initial_delay_s:g}s)")

    def stop(self):
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            log.info("Alert monitor stopped")

    async def aclose(self):
        """Stop scheduling and release the HTTP clients held by the fetcher and sender."""
        self.stop()
        for owner in (self.market.fetcher, self.dispatcher.sender):
            close = getattr(owner, "aclose", None)
            if close is not None:
                await close()

    def status(self) -> Dict[str, object]:
        next_run = None
        if self._scheduler is not None:
            job = self._scheduler.get_job(JOB_ID)
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()
        return {
            "running":     self._scheduler is not None,
            "in_progress": self._in_progress,
            "ticks":       self.tick_count,
            "next_run":    next_run,
            "last_tick":   self.last_report.to_dict() if self.last_report else None,
            **self.store.status(),
        }
