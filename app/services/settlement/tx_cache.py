"""
Seen transaction cache.

Process-local, bounded, expiring set of exchange transaction ids that were
already settled. Only a shortcut: the unique ``external_tx_id`` on deposit
intents remains the source of truth, and a restart simply empties this.
"""

import time
from collections import OrderedDict
from collections.abc import Callable


class SeenTxCache:
    """LRU set of transaction ids with a time-to-live."""

    def __init__(
        self,
        max_size: int = 10_000,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            max_size: Entries kept before the oldest are evicted
            ttl_seconds: Lifetime of an entry; should exceed the lookback
                window so re-delivered events keep hitting the cache
            clock: Monotonic time source
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()

    def __contains__(self, tx_id: str) -> bool:
        expiry = self._entries.get(tx_id)
        if expiry is None:
            return False
        if self._clock() >= expiry:
            del self._entries[tx_id]
            return False
        self._entries.move_to_end(tx_id)
        return True

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, tx_id: str) -> None:
        self._entries[tx_id] = self._clock() + self.ttl_seconds
        self._entries.move_to_end(tx_id)
        self._evict()

    def discard(self, tx_id: str) -> None:
        self._entries.pop(tx_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        # Oldest first: drop expired entries, then trim to size
        while self._entries:
            oldest, expiry = next(iter(self._entries.items()))
            if expiry > now and len(self._entries) <= self.max_size:
                break
            del self._entries[oldest]
