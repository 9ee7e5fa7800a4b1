"""
Read-through cache for settings.

Supports an in-process TTL cache (with a periodic expiry sweep) for single
instance deployments and a Redis-backed implementation for production.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

from admin_backend.errors import DependencyError

logger = logging.getLogger(__name__)


class SettingsCache(Protocol):
    """Minimal cache interface the settings store depends on."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def delete_matching(self, prefix: str) -> int:
        ...

    def clear(self) -> None:
        ...

    def stats(self) -> dict:
        ...


@dataclass
class InMemoryTtlCache:
    """
    Thread-safe TTL cache. Expired entries are never returned; the sweep
    thread only reclaims their memory every ``check_period`` seconds.
    """

    ttl: float = 300
    check_period: float = 60
    max_keys: int = 1000
    clock: Any = time.monotonic
    _entries: "OrderedDict[str, tuple[float, Any]]" = field(
        default_factory=OrderedDict, init=False, repr=False
    )

    def __post_init__(self):
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry[0] <= self.clock():
                if entry is not None:
                    del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry[1]

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_keys:
                self.sweep()
                while len(self._entries) >= self.max_keys:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug("Settings cache full; evicted %s", evicted)
            self._entries[key] = (self.clock() + self.ttl, value)
            self._entries.move_to_end(key)

    def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def delete_matching(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [key for key, (expires, _) in self._entries.items() if expires <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired settings cache entries", len(expired))
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            return {
                "backend": "memory",
                "keys": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "ttl": self.ttl,
                "check_period": self.check_period,
                "max_keys": self.max_keys,
            }

    def start(self) -> None:
        """Start the background sweep thread (idempotent)."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run_sweeper, name="settings-cache-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.check_period)
            self._thread = None

    def _run_sweeper(self) -> None:
        while not self._stop.wait(self.check_period):
            self.sweep()


@dataclass
class RedisTtlCache:
    """Redis-backed cache; expiry is delegated to Redis key TTLs."""

    url: str
    ttl: int = 300
    namespace: str = "admin"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except redis_exceptions.RedisError as exc:
            logger.warning("Redis get failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self.client.setex(self._key(key), self.ttl, json.dumps(value, default=str))
        except redis_exceptions.RedisError as exc:
            logger.warning("Redis set failed for %s: %s", key, exc)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*(self._key(key) for key in keys)) or 0)
        except redis_exceptions.RedisError as exc:
            raise DependencyError("Settings cache invalidation failed") from exc

    def delete_matching(self, prefix: str) -> int:
        try:
            doomed = list(self.client.scan_iter(match=f"{self._key(prefix)}*"))
            if not doomed:
                return 0
            return int(self.client.delete(*doomed) or 0)
        except redis_exceptions.RedisError as exc:
            raise DependencyError("Settings cache invalidation failed") from exc

    def clear(self) -> None:
        self.delete_matching("")

    def stats(self) -> dict:
        try:
            keys = sum(1 for _ in self.client.scan_iter(match=f"{self._key('')}*"))
        except redis_exceptions.RedisError as exc:
            raise DependencyError("Settings cache is unavailable") from exc
        return {"backend": "redis", "keys": keys, "ttl": self.ttl}
