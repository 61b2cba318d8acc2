"""
Alert Engine — Indicator Calculator
────────────────────────────────────
Pure functions over a list of closing prices:
  - RSI (Wilder smoothing, default 14)
  - SMA over a trailing window
  - Golden / death cross classification (exactly one day's shift)
  - Opening gap vs previous close, and how much of it has filled

No I/O, no caching, no logging. Everything here takes literal lists
and returns numbers (or None when there is not enough history).
"""

from enum import Enum
from typing import List, Optional

SMA_FAST = 50
SMA_SLOW = 200


class Crossover(str, Enum):
    GOLDEN = "golden"
    DEATH  = "death"
    NONE   = "none"


def rsi(prices: List[float], period: int = 14) -> Optional[float]:
    if len(prices) < period + 1:
        return None
    gains, losses = [], []
    for i in range(1, len(prices)):
        diff = prices[i] - prices[i - 1]
        gains.append(max(diff, 0))
        losses.append(max(-diff, 0))
    # Initial averages over the first `period` deltas
    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for i in range(period, len(gains)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def sma(prices: List[float], period: int) -> Optional[float]:
    if period <= 0 or len(prices) < period:
        return None
    return sum(prices[-period:]) / period


def classify_crossover(prev_fast: Optional[float], prev_slow: Optional[float],
                       curr_fast: Optional[float], curr_slow: Optional[float]) -> Crossover:
    if None in (prev_fast, prev_slow, curr_fast, curr_slow):
        return Crossover.NONE
    if prev_fast <= prev_slow and curr_fast > curr_slow:
        return Crossover.GOLDEN
    if prev_fast >= prev_slow and curr_fast < curr_slow:
        return Crossover.DEATH
    return Crossover.NONE


def crossover_from_series(prices: List[float], fast: int = SMA_FAST,
                          slow: int = SMA_SLOW) -> Crossover:
    """
    Compare the SMA ordering of the series without its latest point against
    the full series. Only a flip on the most recent day counts.
    """
    prev = prices[:-1]
    return classify_crossover(sma(prev, fast), sma(prev, slow),
                              sma(prices, fast), sma(prices, slow))


def percent_distance(price: float, reference: Optional[float]) -> Optional[float]:
    if not reference:
        return None
    return (price - reference) / reference * 100


# ── GAPS ─────────────────────────────────────────────────────
def gap_percent(prev_close: float, today_open: float) -> Optional[float]:
    if not prev_close:
        return None
    return (today_open - prev_close) / prev_close * 100


def gap_filled(prev_close: float, today_open: float, current: float) -> bool:
    if today_open > prev_close:
        return current <= prev_close
    if today_open < prev_close:
        return current >= prev_close
    return True


def gap_fill_percent(prev_close: float, today_open: float, current: float) -> float:
    """How much of the open→prev-close distance price has travelled back, 0..100."""
    span = today_open - prev_close
    if span == 0:
        return 100.0
    travelled = (today_open - current) / span * 100
    return max(0.0, min(100.0, travelled))
