"""
Alert Engine — Configuration
─────────────────────────────
Every tunable the monitor uses, read from the environment (or a local
.env file) once at startup.

Environment variables:
  ALERT_TICK_INTERVAL_S   = 30              # seconds between ticks
  ALERT_INITIAL_DELAY_S   = 10              # first tick after startup
  ALERT_COOLDOWN_S        = 300             # per-rule re-fire suppression
  QUOTE_CACHE_TTL_S       = 15
  SERIES_CACHE_TTL_S      = 60
  FETCH_TIMEOUT_S         = 10
  FETCH_CONCURRENCY       = 6
  DAILY_LOOKBACK_DAYS     = 365
  PUSH_TOKENS_FILE        = push-tokens.json
  REDIS_URL               = redis://localhost:6379   (optional)
  FCM_PROJECT_ID          = my-firebase-project      (optional)
  FCM_CREDENTIALS_FILE    = service-account.json     (optional, or GOOGLE_APPLICATION_CREDENTIALS)
  PORT                    = 3000
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

NOTIFICATION_ICON  = "https://em-content.zobj.net/source/apple/391/brain_1f9e0.png"
NOTIFICATION_BADGE = "https://em-content.zobj.net/source/apple/391/chart-increasing_1f4c8.png"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass
class MonitorConfig:
    tick_interval_s:     float = 30.0
    initial_delay_s:     float = 10.0
    cooldown_s:          float = 300.0
    quote_ttl_s:         float = 15.0
    series_ttl_s:        float = 60.0
    fetch_timeout_s:     float = 10.0
    fetch_concurrency:   int   = 6
    daily_lookback_days: int   = 365
    tokens_file:         str   = "push-tokens.json"
    redis_url:           Optional[str] = None
    fcm_project_id:      Optional[str] = None
    fcm_key_file:        Optional[str] = None
    notification_icon:   str   = NOTIFICATION_ICON
    notification_badge:  str   = NOTIFICATION_BADGE
    notification_link:   str   = "/"
    port:                int   = 3000

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        load_dotenv()
        return cls(
            tick_interval_s     = _env_float("ALERT_TICK_INTERVAL_S", 30.0),
            initial_delay_s     = _env_float("ALERT_INITIAL_DELAY_S", 10.0),
            cooldown_s          = _env_float("ALERT_COOLDOWN_S", 300.0),
            quote_ttl_s         = _env_float("QUOTE_CACHE_TTL_S", 15.0),
            series_ttl_s        = _env_float("SERIES_CACHE_TTL_S", 60.0),
            fetch_timeout_s     = _env_float("FETCH_TIMEOUT_S", 10.0),
            fetch_concurrency   = _env_int("FETCH_CONCURRENCY", 6),
            daily_lookback_days = _env_int("DAILY_LOOKBACK_DAYS", 365),
            tokens_file         = os.getenv("PUSH_TOKENS_FILE", "push-tokens.json"),
            redis_url           = os.getenv("REDIS_URL") or None,
            fcm_project_id      = os.getenv("FCM_PROJECT_ID") or None,
            fcm_key_file        = (os.getenv("FCM_CREDENTIALS_FILE")
                                   or os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None),
            notification_icon   = os.getenv("NOTIFICATION_ICON", NOTIFICATION_ICON),
            notification_badge  = os.getenv("NOTIFICATION_BADGE", NOTIFICATION_BADGE),
            notification_link   = os.getenv("NOTIFICATION_LINK", "/"),
            port                = _env_int("PORT", 3000),
        )
