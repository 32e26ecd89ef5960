# Overview: Injectable TTL cache used for tenant/location ownership lookups.

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Hashable


_MISSING = object()


class CacheBackend(ABC):
    """Minimal cache contract; implementations may be in-process or shared."""

    @abstractmethod
    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or default when absent or expired."""

    @abstractmethod
    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        """Store value under key for ttl seconds (backend default when None)."""

    @abstractmethod
    def delete(self, key: Hashable) -> None:
        """Drop a single key."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every key."""

    def get_or_set(self, key: Hashable, loader: Callable[[], Any], ttl: float | None = None) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            if value is not None:
                self.set(key, value, ttl)
        return value


class InMemoryTTLCache(CacheBackend):
    """
    Per-process cache with per-entry expiry.

    Follows the Flask extension shape: construct at import time, bind with
    init_app(app) which reads TENANT_CACHE_TTL_SECONDS and registers itself
    under app.extensions["tenant_cache"].
    """

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.default_ttl = app.config.get("TENANT_CACHE_TTL_SECONDS", self.default_ttl)
        app.extensions["tenant_cache"] = self

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
