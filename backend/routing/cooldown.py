"""
CooldownTracker — advisory registry of temporarily unavailable models.

After a rate limit or transient provider failure a (provider, model) pair is
put on cooldown for a while so selection routes around it. Entries are soft
hints held in process memory only; losing them on restart is fine.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class CooldownTracker:
    """Maps (provider, model) to a monotonic expiry timestamp.

    Safe to share between concurrent runs: every read and write happens under
    a lock, and concurrent marks on the same key resolve last-writer-wins.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._cooldowns: dict[tuple[str, str], float] = {}

    def mark_unavailable(self, provider: str, model: str, duration_ms: float):
        """Put a candidate on cooldown for duration_ms, overwriting any prior entry."""
        expiry = self._clock() + duration_ms / 1000.0
        with self._lock:
            self._cooldowns[(provider, model)] = expiry
        logger.warning("Cooldown: %s/%s unavailable for %.1fs",
                       provider, model, duration_ms / 1000.0)

    def is_available(self, provider: str, model: str) -> bool:
        key = (provider, model)
        with self._lock:
            expiry = self._cooldowns.get(key)
            if expiry is None:
                return True
            if self._clock() >= expiry:
                del self._cooldowns[key]
                return True
            return False

    def remaining(self, provider: str, model: str) -> float:
        """Seconds left on a cooldown, 0.0 when the candidate is available."""
        with self._lock:
            expiry = self._cooldowns.get((provider, model))
        if expiry is None:
            return 0.0
        return max(0.0, expiry - self._clock())

    def clear(self):
        with self._lock:
            self._cooldowns.clear()
