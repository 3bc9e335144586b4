"""
In-memory key/value store with Redis-like semantics.

No database: all state lives in this object and a server restart clears it.
It stands in for a shared cache during development, so the surface is kept
to what a real Redis client offers: scalar get/set, append-only lists and
optional expiry.

Expiry is checked lazily on every read, under the same lock as writes.
`purge_expired()` reclaims memory for keys nobody reads again (see cleanup.py).
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional


class MemoryStore:
    """Process-lifetime key/value store. One instance per app, injected where needed."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {}
        self._lists: Dict[str, List[Any]] = {}
        # key -> absolute deadline on self._clock
        self._deadlines: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Scalars
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, ex: Optional[float] = None, keep_ttl: bool = False) -> None:
        """
        Store *value* under *key*, overwriting any prior value.

        *ex* sets an expiry in seconds. Without it, an overwrite clears the
        previous expiry unless *keep_ttl* is true. A non-positive *ex* raises
        ValueError, as Redis rejects it.
        """
        if ex is not None and ex <= 0:
            raise ValueError(f"invalid expire time {ex!r} for key {key!r}")
        with self._lock:
            self._expire_if_due(key)
            self._values[key] = value
            if ex is not None:
                self._deadlines[key] = self._clock() + ex
            elif not keep_ttl:
                self._deadlines.pop(key, None)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* if absent or expired."""
        with self._lock:
            self._expire_if_due(key)
            return self._values.get(key, default)

    def exists(self, key: str) -> bool:
        with self._lock:
            self._expire_if_due(key)
            return key in self._values or key in self._lists

    def delete(self, *keys: str) -> int:
        """Remove scalars and lists stored under *keys*. Returns how many were removed."""
        removed = 0
        with self._lock:
            for key in keys:
                self._expire_if_due(key)
                if key in self._values or key in self._lists:
                    self._drop(key)
                    removed += 1
        return removed

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire(self, key: str, seconds: float) -> bool:
        """Set a deadline on an existing key. Returns False if the key is absent."""
        with self._lock:
            self._expire_if_due(key)
            if key not in self._values and key not in self._lists:
                return False
            self._deadlines[key] = self._clock() + seconds
            return True

    def ttl(self, key: str) -> float:
        """Seconds left before *key* expires; -1 without a deadline, -2 if absent."""
        with self._lock:
            self._expire_if_due(key)
            if key not in self._values and key not in self._lists:
                return -2
            deadline = self._deadlines.get(key)
            if deadline is None:
                return -1
            return max(0.0, deadline - self._clock())

    def purge_expired(self) -> int:
        """Drop every expired key. Returns the number of keys removed."""
        with self._lock:
            now = self._clock()
            due = [key for key, deadline in self._deadlines.items() if deadline <= now]
            for key in due:
                self._drop(key)
            return len(due)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def rpush(self, key: str, *values: Any) -> int:
        """Append *values* to the list at *key*, creating it on first use."""
        with self._lock:
            self._expire_if_due(key)
            items = self._lists.setdefault(key, [])
            items.extend(values)
            return len(items)

    def lrange(self, key: str, start: int, end: int) -> List[Any]:
        """
        Return items *start* through *end* inclusive.

        Negative indices count from the tail, so (0, -1) returns the whole
        list. A missing key or a *start* past the tail yields [].
        """
        with self._lock:
            self._expire_if_due(key)
            items = self._lists.get(key)
            if not items:
                return []
            length = len(items)
            if start < 0:
                start = max(0, length + start)
            if end < 0:
                end = length + end
            if start >= length or end < start:
                return []
            return items[start:end + 1]

    def llen(self, key: str) -> int:
        with self._lock:
            self._expire_if_due(key)
            return len(self._lists.get(key, ()))

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _expire_if_due(self, key: str) -> None:
        deadline = self._deadlines.get(key)
        if deadline is not None and deadline <= self._clock():
            self._drop(key)

    def _drop(self, key: str) -> None:
        self._values.pop(key, None)
        self._lists.pop(key, None)
        self._deadlines.pop(key, None)
