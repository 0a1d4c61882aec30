import math
import os
import threading
import time
from collections.abc import Callable
from typing import Protocol

import redis
from cachetools import TLRUCache

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

CACHE_KEY_PREFIX = "apicaching"


def cache_key(url: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{url}"


class CacheStore(Protocol):
    """Key-value store with per-entry expiry. ``get`` returns None on a miss and
    raises when the store itself fails. A ``ttl`` of 0 or less means no expiry."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...


class RedisCacheStore:
    def __init__(self, client: redis.Redis | None = None, redis_url: str = REDIS_URL):
        self.client = client if client is not None else redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def get(self, key: str) -> str | None:
        val = self.client.get(key)
        if isinstance(val, bytes):
            return val.decode("utf-8")
        return val

    def set(self, key: str, value: str, ttl: int) -> None:
        # Redis rejects EX 0; a non-positive ttl stores without expiry
        if ttl <= 0:
            self.client.set(key, value)
            return
        self.client.set(key, value, ex=ttl)


def _expires_at(_key, item, now):
    ttl = item[1]
    return now + ttl if ttl > 0 else math.inf


class MemoryCacheStore:
    """In-process store for single-instance services and tests.

    Backed by cachetools' TLRUCache so every entry expires after its own TTL.
    A TTL of 0 or less never expires.
    """

    def __init__(self, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic):
        # values are (body, ttl); _expires_at turns the ttl into a deadline
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._cache.get(key)
        return None if item is None else item[0]

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._cache[key] = (value, ttl)
