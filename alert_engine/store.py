"""
Alert Engine — Subscriber Store
────────────────────────────────
Push tokens and the alert rules each one owns, kept in memory and written
to a flat JSON file after every mutation.

Writes go to a temp file in the same directory and are swapped in with
os.replace, so a crash leaves the last fully-written version. A failed
write is logged and the in-memory list stays authoritative for the rest
of the process.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from alert_engine.models import Subscriber, parse_rules

log = logging.getLogger("alerts.store")


def short_token(token: str) -> str:
    return f"{token[:20]}..." if token and len(token) > 20 else (token or "")


class SubscriberStore:

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._subscribers: List[Subscriber] = []

    # ── persistence ──────────────────────────────────────────
    def load(self) -> int:
        if not self.path.exists():
            log.info("No saved subscriptions found")
            self._subscribers = []
            return 0
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._subscribers = [Subscriber.from_dict(d) for d in raw
                                 if isinstance(d, dict) and d.get("token")]
            log.info(f"Loaded {len(self._subscribers)} saved subscriptions")
        except (OSError, ValueError, KeyError) as e:
            log.error(f"Could not load subscriptions from {self.path}: {e}")
            self._subscribers = []
        return len(self._subscribers)

    def save(self) -> bool:
        payload = json.dumps([s.to_dict() for s in self._subscribers], indent=2)
        tmp_path = None
        try:
            directory = self.path.parent
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_path, self.path)
            return True
        except OSError as e:
            log.error(f"Failed to save subscriptions: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return False

    # ── queries ──────────────────────────────────────────────
    @property
    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers)

    def get(self, token: str) -> Optional[Subscriber]:
        for s in self._subscribers:
            if s.token == token:
                return s
        return None

    def total_alerts(self) -> int:
        return sum(len(s.alerts) for s in self._subscribers)

    def status(self) -> Dict[str, object]:
        return {
            "enabled":           len(self._subscribers) > 0,
            "subscriptionCount": len(self._subscribers),
            "totalAlerts":       self.total_alerts(),
        }

    # ── mutations (each one persists) ────────────────────────
    def register(self, token: str, alerts: Optional[List[dict]]) -> int:
        """Insert or fully replace the subscription for `token`. Returns rules accepted."""
        subscriber = Subscriber(token=token, alerts=parse_rules(alerts))
        for i, existing in enumerate(self._subscribers):
            if existing.token == token:
                self._subscribers[i] = subscriber
                log.info(f"Updated subscription for token: {short_token(token)}")
                break
        else:
            self._subscribers.append(subscriber)
            log.info(f"Registered new token: {short_token(token)}")
        self.save()
        return len(subscriber.alerts)

    def update_alerts(self, token: str, alerts: Optional[List[dict]]) -> bool:
        """Replace the rules of a known token; unknown tokens are a no-op."""
        subscriber = self.get(token)
        if subscriber is None:
            return False
        subscriber.alerts = parse_rules(alerts)
        subscriber.touch()
        self.save()
        log.info(f"Updated alerts for token: {short_token(token)}")
        return True

    def remove(self, token: str) -> bool:
        before = len(self._subscribers)
        self._subscribers = [s for s in self._subscribers if s.token != token]
        if len(self._subscribers) == before:
            return False
        self.save()
        log.info(f"Removed subscription for token: {short_token(token)}")
        return True
