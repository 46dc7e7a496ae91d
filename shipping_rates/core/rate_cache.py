"""
Rate Cache

Minimizes redundant carrier calls: carrier quotes are slow, rate limited and
identical for identical requests.

- Cache key: derived by services.cache_key from carrier, order, destination,
  line items and locale
- Value: the carrier's RateQuote, or the ShippingError the carrier call failed with
- Failures are memoized too, so a failing carrier is not hammered with the
  same request until the entry is invalidated or expires
- TTL and eviction belong to the store, not to RateCache

Usage:
    from shipping_rates.core.rate_cache import RateCache, InMemoryCacheStore

    cache = RateCache(InMemoryCacheStore())
    quote = await cache.get_or_compute(key, lambda: carrier.find_rates(origin, destination, packages))
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from shipping_rates.core.exceptions import ShippingError
from shipping_rates.modules.shipping.carriers.base import RateQuote

logger = logging.getLogger(__name__)

CacheValue = Union[RateQuote, ShippingError]


# =============================================================================
# Stores
# =============================================================================

class CacheStore(ABC):
    """Key-value contract the rate cache needs from a backend."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheValue]:
        """Return the stored value or None when absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: CacheValue) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if it existed."""
        pass

    def get_stats(self) -> Dict[str, Any]:
        """Backend-specific counters, merged into RateCache.get_stats()."""
        return {}


class InMemoryCacheStore(CacheStore):
    """
    LRU store with optional TTL.

    Thread-safe for single-threaded async usage (standard in asyncio).

    Attributes:
        ttl_seconds: Time-to-live for entries, None = no expiry
        max_size: Maximum entries before LRU eviction, None = unbounded
    """

    def __init__(self, ttl_seconds: Optional[int] = None, max_size: Optional[int] = None):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._cache: "OrderedDict[str, Tuple[float, CacheValue]]" = OrderedDict()
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._cache)

    async def get(self, key: str) -> Optional[CacheValue]:
        if key not in self._cache:
            return None

        timestamp, value = self._cache[key]

        if self.ttl_seconds and time.time() - timestamp > self.ttl_seconds:
            del self._cache[key]
            logger.debug(f"[RATE_CACHE] Expired: {key}")
            return None

        # Move to end (most recently used)
        self._cache.move_to_end(key)
        return value

    async def set(self, key: str, value: CacheValue) -> None:
        if key in self._cache:
            del self._cache[key]

        # Evict oldest entries if at capacity
        while self.max_size and len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug("[RATE_CACHE] Evicted oldest entry (capacity)")

        self._cache[key] = (time.time(), value)

    async def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._cache),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "evictions": self._evictions,
        }

    def clear(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"[RATE_CACHE] Cleared {count} entries")


def encode_entry(value: CacheValue) -> str:
    """Serialize a cache value to JSON."""
    if isinstance(value, ShippingError):
        return json.dumps({"kind": "error", "error": value.to_dict()})
    return json.dumps({"kind": "quote", "quote": value.to_dict()})


def decode_entry(data: str) -> CacheValue:
    """Inverse of encode_entry()."""
    payload = json.loads(data)
    if payload["kind"] == "error":
        return ShippingError.from_dict(payload["error"])
    return RateQuote.from_dict(payload["quote"])


class RedisCacheStore(CacheStore):
    """
    Redis-backed store shared across instances.

    Redis failures degrade to a cache miss (get) or a skipped write (set);
    the carrier is then simply asked again.
    """

    def __init__(self, client, prefix: str = "shipping:rates:", ttl_seconds: Optional[int] = None):
        self.client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[CacheValue]:
        try:
            data = await self.client.get(self._key(key))
        except Exception as e:
            logger.warning(f"[RATE_CACHE] Redis get failed for {key}: {e}")
            return None

        if data is None:
            return None

        try:
            return decode_entry(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[RATE_CACHE] Discarding unreadable entry {key}: {e}")
            return None

    async def set(self, key: str, value: CacheValue) -> None:
        try:
            if self.ttl_seconds:
                await self.client.setex(self._key(key), self.ttl_seconds, encode_entry(value))
            else:
                await self.client.set(self._key(key), encode_entry(value))
        except Exception as e:
            logger.warning(f"[RATE_CACHE] Redis set failed for {key}: {e}")

    async def delete(self, key: str) -> bool:
        try:
            return await self.client.delete(self._key(key)) > 0
        except Exception as e:
            logger.warning(f"[RATE_CACHE] Redis delete failed for {key}: {e}")
            return False


# =============================================================================
# Rate cache
# =============================================================================

class RateCache:
    """
    Fetch-or-compute cache for carrier quotes with error memoization.

    Concurrent misses for the same key are serialized with a per-key lock,
    so one process makes at most one carrier call per key.
    """

    def __init__(self, store: CacheStore):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._hits = 0
        self._misses = 0
        self._error_hits = 0

    async def get_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[RateQuote]],
    ) -> RateQuote:
        """
        Return the quote stored under key, computing and storing it on a miss.

        compute_fn is awaited only on a miss. A ShippingError it raises is
        stored under key before being raised; any other exception is raised
        without being stored.

        Raises:
            ShippingError: the stored (or freshly computed) outcome is a failure
        """
        cached = await self.store.get(key)
        if cached is not None:
            return self._resolve(key, cached, hit=True)

        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                # Another task may have populated the key while we waited
                cached = await self.store.get(key)
                if cached is not None:
                    return self._resolve(key, cached, hit=True)

                self._misses += 1
                logger.debug(f"[RATE_CACHE] Miss: {key}")

                try:
                    value: CacheValue = await compute_fn()
                except ShippingError as e:
                    value = e
                    logger.warning(f"[RATE_CACHE] Memoizing carrier failure for {key}: {e.message}")

                await self.store.set(key, value)
                return self._resolve(key, value, hit=False)
        finally:
            if not lock.locked() and self._locks.get(key) is lock:
                del self._locks[key]

    def _resolve(self, key: str, value: CacheValue, hit: bool) -> RateQuote:
        if hit:
            self._hits += 1
        if isinstance(value, ShippingError):
            if hit:
                self._error_hits += 1
                logger.debug(f"[RATE_CACHE] Hit (memoized error): {key}")
            raise value
        if hit:
            logger.debug(f"[RATE_CACHE] Hit: {key}")
        return value

    async def invalidate(self, key: str) -> bool:
        """Drop a cached quote or failure so the next lookup asks the carrier again."""
        removed = await self.store.delete(key)
        if removed:
            logger.info(f"[RATE_CACHE] Invalidated: {key}")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        """Hit/miss counters since creation or the last reset, plus the store's own counters."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "error_hits": self._error_hits,
            "hit_rate": round(self._hits / total, 4) if total > 0 else 0.0,
            **self.store.get_stats(),
        }

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._error_hits = 0
