"""Remembers recently handled inbound event ids so gateway redeliveries are skipped."""

import time
from collections import OrderedDict
from typing import Callable, Optional


class SeenEvents:
    """Bounded TTL set of event keys. Oldest keys are evicted first."""

    def __init__(self, ttl_seconds: float, max_entries: int, clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._seen: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def _expire(self, now: float) -> None:
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at < self.ttl_seconds:
                break
            self._seen.popitem(last=False)

    def seen(self, key: str) -> bool:
        """Mark `key` as handled. Returns True when it was already handled within the TTL."""
        if not key:
            return False
        now = self._clock()
        self._expire(now)
        if key in self._seen:
            return True
        self._seen[key] = now
        while len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)
        return False
