"""
Alert Engine — Alert Evaluator
───────────────────────────────
Decides, fresh on every tick, whether one rule's condition holds right now.

    price_above / price_below   current price  ≥ / ≤ threshold
    rsi_above / rsi_below       RSI(14)        ≥ / ≤ threshold
    sma_50 / sma_200            |% distance from SMA| ≤ threshold
    golden_cross / death_cross  SMA50/SMA200 flipped on the latest day

Results are tagged:
    Fired(title, body, data)   condition holds, notification text attached
    NoDecision(reason)         data missing, condition false, or kind not handled
    Failed(reason)             something unexpected broke while evaluating

percent_gain / percent_loss are recognised but never fire: they need a
previous-close baseline that the monitor does not track.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from alert_engine.cache import KIND_DAILY, KIND_QUOTE
from alert_engine.indicators import Crossover
from alert_engine.market_data import MarketData
from alert_engine.models import AlertRule, ConditionType, IndicatorSnapshot


@dataclass
class Fired:
    title: str
    body:  str
    data:  Dict[str, str] = field(default_factory=dict)


@dataclass
class NoDecision:
    reason: str


@dataclass
class Failed:
    reason: str


EvalResult = Union[Fired, NoDecision, Failed]

_NOT_MET = NoDecision("condition not met")


def _fmt_value(value: float) -> str:
    return f"{value:g}"


class AlertEvaluator:

    def __init__(self, market: MarketData):
        self.market = market

    async def evaluate(self, rule: AlertRule) -> EvalResult:
        """Never raises; unexpected errors come back as Failed."""
        condition = rule.condition
        if condition is None:
            return NoDecision(f"unknown condition type {rule.type!r}")
        if condition in (ConditionType.PERCENT_GAIN, ConditionType.PERCENT_LOSS):
            return NoDecision(f"{condition.value} not implemented")
        if not rule.ticker:
            return NoDecision("rule has no ticker")
        try:
            if condition.needs_snapshot:
                snap = await self.market.snapshot(rule.ticker)
                if snap is None:
                    return NoDecision("indicators unavailable")
                return self._check_snapshot(rule, condition, snap)
            price = await self.market.price(rule.ticker)
            if price is None:
                return NoDecision("price unavailable")
            return self._check_price(rule, condition, price)
        except Exception as e:
            return Failed(f"{type(e).__name__}: {e}")

    # ── price rules ──────────────────────────────────────────
    def _check_price(self, rule: AlertRule, condition: ConditionType, price: float) -> EvalResult:
        ticker, value = rule.ticker, rule.value
        data = self._base_data(rule)
        data["price"] = str(price)
        if condition == ConditionType.PRICE_ABOVE and price >= value:
            return Fired(f"🎯 {ticker} Hit Target!",
                         f"Price: ${price:.2f} (above ${_fmt_value(value)})", data)
        if condition == ConditionType.PRICE_BELOW and price <= value:
            return Fired(f"⚠️ {ticker} Alert!",
                         f"Price: ${price:.2f} (below ${_fmt_value(value)})", data)
        return _NOT_MET

    # ── indicator rules ──────────────────────────────────────
    def _check_snapshot(self, rule: AlertRule, condition: ConditionType,
                        snap: IndicatorSnapshot) -> EvalResult:
        ticker, value = rule.ticker, rule.value
        data = self._base_data(rule)

        if condition in (ConditionType.RSI_ABOVE, ConditionType.RSI_BELOW):
            if snap.rsi is None:
                return NoDecision("rsi unavailable")
            data["rsi"] = f"{snap.rsi:.2f}"
            if condition == ConditionType.RSI_ABOVE and snap.rsi >= value:
                return Fired(f"📈 {ticker} RSI Overbought!",
                             f"RSI: {snap.rsi:.1f} (above {_fmt_value(value)}) - Consider taking profits", data)
            if condition == ConditionType.RSI_BELOW and snap.rsi <= value:
                return Fired(f"📉 {ticker} RSI Oversold!",
                             f"RSI: {snap.rsi:.1f} (below {_fmt_value(value)}) - Potential buying opportunity", data)
            return _NOT_MET

        if condition in (ConditionType.NEAR_SMA_50, ConditionType.NEAR_SMA_200):
            period   = 50 if condition == ConditionType.NEAR_SMA_50 else 200
            distance = snap.sma50_distance if period == 50 else snap.sma200_distance
            level    = snap.sma50 if period == 50 else snap.sma200
            if distance is None or level is None:
                return NoDecision(f"sma{period} unavailable")
            if abs(distance) > value:
                return _NOT_MET
            side = "above" if distance >= 0 else "below"
            data["price"] = str(snap.price)
            return Fired(f"📊 {ticker} Near {period} SMA!",
                         f"Price ${snap.price:.2f} is {abs(distance):.1f}% {side} {period} SMA (${level:.2f})",
                         data)

        if condition == ConditionType.GOLDEN_CROSS and snap.crossover == Crossover.GOLDEN:
            return Fired(f"⚡ {ticker} GOLDEN CROSS!",
                         "50 SMA crossed ABOVE 200 SMA - Major bullish signal!", data)
        if condition == ConditionType.DEATH_CROSS and snap.crossover == Crossover.DEATH:
            return Fired(f"💀 {ticker} DEATH CROSS!",
                         "50 SMA crossed BELOW 200 SMA - Major bearish signal!", data)
        return _NOT_MET

    @staticmethod
    def _base_data(rule: AlertRule) -> Dict[str, str]:
        return {"type": rule.type, "ticker": rule.ticker, "alertId": str(rule.id)}


def symbol_needs(rule: AlertRule) -> Optional[str]:
    """Which cached feed a rule reads, or None if it never fetches."""
    condition = rule.condition
    if condition is None or not rule.ticker:
        return None
    if condition in (ConditionType.PERCENT_GAIN, ConditionType.PERCENT_LOSS):
        return None
    return KIND_DAILY if condition.needs_snapshot else KIND_QUOTE
