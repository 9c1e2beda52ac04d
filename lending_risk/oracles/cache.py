"""In-memory TTL cache for validated price quotes."""
from __future__ import annotations

import threading
import time
from typing import Callable

from ..models import PriceQuote


class PriceCache:
    """Thread-safe asset → quote cache.

    Entries older than ``ttl`` seconds are not returned by :meth:`get`, but are
    kept so :meth:`get_any` can serve them as a degraded fallback.
    """

    def __init__(self, ttl: float = 60.0, clock: Callable[[], float] = time.time) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[PriceQuote, float]] = {}

    def get(self, asset: str, now: float | None = None) -> PriceQuote | None:
        current = self._clock() if now is None else now
        with self._lock:
            entry = self._entries.get(asset)
        if entry is None:
            return None
        quote, stored_at = entry
        if current - stored_at > self.ttl:
            return None
        return quote

    def get_any(self, asset: str) -> PriceQuote | None:
        with self._lock:
            entry = self._entries.get(asset)
        return entry[0] if entry else None

    def put(self, quote: PriceQuote, now: float | None = None) -> None:
        stored_at = self._clock() if now is None else now
        with self._lock:
            self._entries[quote.asset] = (quote, stored_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
