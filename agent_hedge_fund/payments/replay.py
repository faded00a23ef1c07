"""
Replay protection for payment proofs.

A proof token can authorize one request per route. Consumed tokens are kept
for a bounded window; proofs are on-chain transactions, so they stop being
interesting long before the window closes.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable


class ReplayGuard:
    """Time-windowed, size-bounded set of consumed (route, proof) pairs."""

    def __init__(self, ttl_seconds: float = 86400, max_entries: int = 100_000,
                 clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._consumed: "OrderedDict[tuple[str, str], float]" = OrderedDict()

    @staticmethod
    def _key(route_key: str, token: str) -> tuple[str, str]:
        return route_key, token.lower()

    def _prune(self, now: float):
        # Insertion order == expiry order, so stop at the first live entry.
        while self._consumed:
            key, expires_at = next(iter(self._consumed.items()))
            if expires_at > now:
                break
            self._consumed.popitem(last=False)

    def is_consumed(self, route_key: str, token: str) -> bool:
        with self._lock:
            self._prune(self._clock())
            return self._key(route_key, token) in self._consumed

    def claim(self, route_key: str, token: str) -> bool:
        """Record the pair as consumed. False if it already was."""
        key = self._key(route_key, token)
        with self._lock:
            now = self._clock()
            self._prune(now)
            if key in self._consumed:
                return False
            self._consumed[key] = now + self.ttl_seconds
            while len(self._consumed) > self.max_entries:
                self._consumed.popitem(last=False)
            return True

    def __len__(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._consumed)
