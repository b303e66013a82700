"""Key-value stores backing per-sender orchestration state.

Every piece of shared state (turn buffers, processing locks, sessions and
processed event ids) lives behind ``KeyValueStore`` so the orchestrator can
be tested without process globals and moved onto an external store later.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Protocol

_MISSING = object()


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local store with optional TTL expiry and LRU size bound.

    ``ttl`` (seconds) applies to every key unless ``set`` overrides it.
    ``max_entries`` evicts the least recently used key once exceeded.
    """

    def __init__(
        self,
        *,
        ttl: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[str, tuple[Any, Optional[float]]]" = OrderedDict()

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._data.get(key, _MISSING)
        if entry is _MISSING:
            return default
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return default
        self._data.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = ttl if ttl is not None else self.ttl
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (value, expires_at)
        self._data.move_to_end(key)
        self._evict()

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at is not None and expires_at <= now]
        for key in expired:
            del self._data[key]

    def _evict(self) -> None:
        if self.max_entries is None or len(self._data) <= self.max_entries:
            return
        self._purge_expired()
        while len(self._data) > self.max_entries:
            self._data.popitem(last=False)
