"""
Market Alert Engine
────────────────────
Background price / indicator alerts delivered as push notifications.

    from alert_engine import AlertMonitor, MonitorConfig
    monitor = AlertMonitor.create(MonitorConfig.from_env())
    monitor.store.load()
    monitor.start()
"""

from .config import MonitorConfig
from .monitor import AlertMonitor, TickReport

__all__ = ["AlertMonitor", "MonitorConfig", "TickReport"]
