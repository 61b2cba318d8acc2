"""
Alert Engine — Trigger Cooldown
────────────────────────────────
Remembers when each (token, rule id) last fired so the same rule does not
notify again inside the window, whether or not its condition still holds.
Records are only ever overwritten, never deleted.
"""

import time
from typing import Any, Callable, Dict, Tuple

DEFAULT_COOLDOWN_S = 300


class CooldownTracker:

    def __init__(self, window_s: float = DEFAULT_COOLDOWN_S,
                 clock: Callable[[], float] = time.time):
        self.window_s = window_s
        self._clock   = clock
        self._fired: Dict[Tuple[str, str], float] = {}

    @staticmethod
    def _key(token: str, rule_id: Any) -> Tuple[str, str]:
        return token, str(rule_id)

    def should_suppress(self, token: str, rule_id: Any) -> bool:
        last = self._fired.get(self._key(token, rule_id))
        return last is not None and (self._clock() - last) < self.window_s

    def record_fired(self, token: str, rule_id: Any):
        self._fired[self._key(token, rule_id)] = self._clock()

    def last_fired(self, token: str, rule_id: Any):
        return self._fired.get(self._key(token, rule_id))

    def __len__(self) -> int:
        return len(self._fired)
