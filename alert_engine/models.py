"""
Alert Engine — Data Model
──────────────────────────
Subscribers own alert rules; rules name a ticker, a condition type and a
threshold. IndicatorSnapshot and GapInfo are derived per symbol on demand
and never persisted.

Persisted shape (push-tokens.json):
  [{"token": str,
    "alerts": [{"id": ..., "ticker": str, "type": str, "value": float}],
    "registeredAt": ISO, "lastSeen": ISO}]
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from alert_engine.indicators import Crossover


class ConditionType(str, Enum):
    PRICE_ABOVE  = "price_above"
    PRICE_BELOW  = "price_below"
    PERCENT_GAIN = "percent_gain"
    PERCENT_LOSS = "percent_loss"
    RSI_ABOVE    = "rsi_above"
    RSI_BELOW    = "rsi_below"
    NEAR_SMA_50  = "sma_50"
    NEAR_SMA_200 = "sma_200"
    GOLDEN_CROSS = "golden_cross"
    DEATH_CROSS  = "death_cross"

    @property
    def needs_snapshot(self) -> bool:
        return self in _SNAPSHOT_TYPES

    @classmethod
    def parse(cls, raw: Any) -> Optional["ConditionType"]:
        """Accepts the stored names plus the descriptive aliases; None if unknown."""
        if not isinstance(raw, str):
            return None
        key = raw.strip().lower().replace("-", "_")
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


_SNAPSHOT_TYPES = {
    ConditionType.RSI_ABOVE, ConditionType.RSI_BELOW,
    ConditionType.NEAR_SMA_50, ConditionType.NEAR_SMA_200,
    ConditionType.GOLDEN_CROSS, ConditionType.DEATH_CROSS,
}

_ALIASES = {
    "near_50_sma":  "sma_50",
    "near_sma_50":  "sma_50",
    "near_200_sma": "sma_200",
    "near_sma_200": "sma_200",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalise_ticker(ticker: Any) -> str:
    return str(ticker or "").upper().strip()


@dataclass
class AlertRule:
    id:     Any
    ticker: str
    type:   str          # kept as given so unknown kinds survive a save
    value:  float = 0.0

    @property
    def condition(self) -> Optional[ConditionType]:
        return ConditionType.parse(self.type)

    def to_dict(self) -> dict:
        return {"id": self.id, "ticker": self.ticker, "type": self.type, "value": self.value}

    @classmethod
    def from_dict(cls, d: dict, fallback_id: int = 0) -> "AlertRule":
        condition = ConditionType.parse(d.get("type"))
        raw_value = d.get("value")
        try:
            value = float(raw_value) if raw_value is not None else 0.0
        except (TypeError, ValueError):
            value = 0.0
        rule_id = d.get("id")
        return cls(
            id     = rule_id if rule_id not in (None, "") else fallback_id,
            ticker = normalise_ticker(d.get("ticker")),
            type   = condition.value if condition else str(d.get("type") or ""),
            value  = value,
        )


@dataclass
class Subscriber:
    token:         str
    alerts:        List[AlertRule] = field(default_factory=list)
    registered_at: str = field(default_factory=_now_iso)
    last_seen:     str = field(default_factory=_now_iso)

    def to_dict(self) -> dict:
        return {
            "token":        self.token,
            "alerts":       [a.to_dict() for a in self.alerts],
            "registeredAt": self.registered_at,
            "lastSeen":     self.last_seen,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Subscriber":
        return cls(
            token         = d["token"],
            alerts        = parse_rules(d.get("alerts")),
            registered_at = d.get("registeredAt") or _now_iso(),
            last_seen     = d.get("lastSeen") or _now_iso(),
        )

    def touch(self):
        self.last_seen = _now_iso()


def parse_rules(raw: Optional[List[dict]]) -> List[AlertRule]:
    """Rules without an id get a sequential one, scoped to this subscriber."""
    rules = []
    for i, item in enumerate(raw or [], start=1):
        if isinstance(item, dict):
            rules.append(AlertRule.from_dict(item, fallback_id=i))
    return rules


@dataclass
class IndicatorSnapshot:
    price:           float
    rsi:             Optional[float]
    sma50:           Optional[float]
    sma200:          Optional[float]
    sma50_distance:  Optional[float]   # % above (+) / below (-) SMA50
    sma200_distance: Optional[float]
    crossover:       Crossover = Crossover.NONE
    timestamp:       float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price":          round(self.price, 4),
            "rsi":            round(self.rsi, 2) if self.rsi is not None else None,
            "sma50":          self.sma50,
            "sma200":         self.sma200,
            "sma50Distance":  self.sma50_distance,
            "sma200Distance": self.sma200_distance,
            "crossType":      self.crossover.value,
            "timestamp":      int(self.timestamp),
        }


@dataclass
class IntradayBar:
    ts:    int
    open:  float
    close: float


@dataclass
class IntradaySeries:
    symbol:     str
    prev_close: Optional[float]
    bars:       List[IntradayBar] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "symbol":     self.symbol,
            "prev_close": self.prev_close,
            "bars":       [[b.ts, b.open, b.close] for b in self.bars],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "IntradaySeries":
        return cls(
            symbol     = d.get("symbol", ""),
            prev_close = d.get("prev_close"),
            bars       = [IntradayBar(ts=int(b[0]), open=float(b[1]), close=float(b[2]))
                          for b in d.get("bars", [])],
        )


@dataclass
class GapInfo:
    symbol:        str
    prev_close:    float
    today_open:    float
    current_price: float
    gap_pct:       float
    filled:        bool
    fill_pct:      float

    @property
    def direction(self) -> str:
        return "UP" if self.gap_pct > 0 else "DOWN" if self.gap_pct < 0 else "FLAT"

    def to_dict(self) -> dict:
        return {
            "ticker":         self.symbol,
            "prevClose":      round(self.prev_close, 4),
            "open":           round(self.today_open, 4),
            "price":          round(self.current_price, 4),
            "gapPercent":     round(self.gap_pct, 2),
            "gapDirection":   self.direction,
            "gapFilled":      self.filled,
            "gapFillPercent": round(self.fill_pct),
        }
