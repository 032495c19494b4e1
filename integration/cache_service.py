"""
AI cache service - TTL caches for the chat pipeline
Responsibilities:
1. Two independent namespaces: "response" (classified intents, generated
   replies) and "query" (data-source results)
2. Lazy expiry on read, proactive sweep on demand
3. Capacity-triggered eviction of the oldest fraction of entries
4. Tag-based invalidation after catalog/order mutations
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from cachetools import TTLCache

from monitoring.metrics import get_metrics_collector, log_cache_event

logger = logging.getLogger(__name__)


class CacheNamespace(str, Enum):
    RESPONSE = "response"
    QUERY = "query"


@dataclass
class CacheEntry:
    """A cached payload and the timer reading at which it was written."""
    key: str
    value: Any
    created_at: float


class _Namespace:
    """One TTL namespace; eviction is handled by CacheService, not by TTLCache."""

    def __init__(self, name: str, ttl: float, maxsize: int, timer: Callable[[], float]):
        self.name = name
        self.ttl = ttl
        self.maxsize = maxsize
        # Unbounded TTLCache: expiry only, capacity is enforced by _evict_oldest
        self.cache: TTLCache = TTLCache(maxsize=math.inf, ttl=ttl, timer=timer)
        self.lock = threading.RLock()
        self.hits = 0
        self.misses = 0


class CacheService:
    """
    TTL cache service (thread-safe)

    Namespaces:
    - response: TTL 120s, at most 500 entries
    - query: TTL 300s, at most 1000 entries

    When a namespace grows past its bound the oldest ``eviction_ratio`` of its
    entries (by creation time) are dropped in one pass.

    Example:
        cache = CacheService()
        cache.set_query("catalog:{}:20", products)
        products = cache.get_query("catalog:{}:20")
        cache.invalidate_product(42)
    """

    def __init__(
        self,
        response_ttl: float = 120,
        response_maxsize: int = 500,
        query_ttl: float = 300,
        query_maxsize: int = 1000,
        eviction_ratio: float = 0.2,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            response_ttl: response namespace TTL (seconds)
            response_maxsize: response namespace entry bound
            query_ttl: query namespace TTL (seconds)
            query_maxsize: query namespace entry bound
            eviction_ratio: fraction of entries dropped when a bound is exceeded
            timer: clock used for TTLs and creation timestamps
        """
        self._timer = timer
        self.eviction_ratio = eviction_ratio
        self._namespaces: Dict[str, _Namespace] = {
            CacheNamespace.RESPONSE.value: _Namespace(
                CacheNamespace.RESPONSE.value, response_ttl, response_maxsize, timer
            ),
            CacheNamespace.QUERY.value: _Namespace(
                CacheNamespace.QUERY.value, query_ttl, query_maxsize, timer
            ),
        }
        self.metrics = get_metrics_collector()

        logger.info(
            "Cache service ready: response=%d entries/%ss, query=%d entries/%ss",
            response_maxsize, response_ttl, query_maxsize, query_ttl,
        )

    def _namespace(self, namespace) -> Optional[_Namespace]:
        name = namespace.value if isinstance(namespace, CacheNamespace) else str(namespace)
        return self._namespaces.get(name)

    # ==================== Read / write ====================

    def _get(self, ns: _Namespace, key: str) -> Optional[Any]:
        with ns.lock:
            entry = ns.cache.get(key)
            if entry is None:
                # Drop expired entries (including this key) as a side effect of the read
                ns.cache.expire()
                ns.misses += 1
                self.metrics.record_cache_miss(ns.name)
                log_cache_event(ns.name, "miss", key)
                return None

            ns.hits += 1
            self.metrics.record_cache_hit(ns.name)
            log_cache_event(ns.name, "hit", key)
            return entry.value

    def _set(self, ns: _Namespace, key: str, value: Any) -> None:
        with ns.lock:
            ns.cache[key] = CacheEntry(key=key, value=value, created_at=self._timer())
            if len(ns.cache) > ns.maxsize:
                self._evict_oldest(ns)

    def _evict_oldest(self, ns: _Namespace) -> int:
        entries: List[CacheEntry] = []
        for key in list(ns.cache.keys()):
            # get() skips entries that expired while we were iterating
            entry = ns.cache.get(key)
            if entry is not None:
                entries.append(entry)
        entries.sort(key=lambda e: e.created_at)
        to_delete = entries[: int(len(entries) * self.eviction_ratio)]
        for entry in to_delete:
            ns.cache.pop(entry.key, None)
        if to_delete:
            logger.debug("Evicted %d oldest entries from %s cache", len(to_delete), ns.name)
        return len(to_delete)

    def get_response(self, key: str) -> Optional[Any]:
        """Read from the response namespace; None when absent or expired."""
        return self._get(self._namespaces[CacheNamespace.RESPONSE.value], key)

    def set_response(self, key: str, value: Any) -> None:
        """Insert or overwrite in the response namespace."""
        self._set(self._namespaces[CacheNamespace.RESPONSE.value], key, value)

    def get_query(self, key: str) -> Optional[Any]:
        """Read from the query namespace; None when absent or expired."""
        return self._get(self._namespaces[CacheNamespace.QUERY.value], key)

    def set_query(self, key: str, value: Any) -> None:
        """Insert or overwrite in the query namespace."""
        self._set(self._namespaces[CacheNamespace.QUERY.value], key, value)

    # ==================== Invalidation ====================

    def invalidate_by_tag(self, namespace, tag: str) -> int:
        """
        Remove every entry whose key contains ``tag``.

        Args:
            namespace: "response" or "query"
            tag: substring to match against keys

        Returns:
            Number of removed entries
        """
        ns = self._namespace(namespace)
        if ns is None:
            logger.warning("Unknown cache namespace for invalidation: %s", namespace)
            return 0

        with ns.lock:
            keys = [key for key in list(ns.cache.keys()) if tag in key]
            for key in keys:
                ns.cache.pop(key, None)

        if keys:
            log_cache_event(ns.name, "invalidate", tag)
        return len(keys)

    def invalidate_product(self, product_id) -> int:
        """Drop cached queries referencing a product."""
        return self.invalidate_by_tag(CacheNamespace.QUERY, f"product:{product_id}")

    def invalidate_order(self, order_id) -> int:
        """Drop cached queries referencing an order."""
        return self.invalidate_by_tag(CacheNamespace.QUERY, f"order:{order_id}")

    # ==================== Management ====================

    def clear(self) -> None:
        """Empty both namespaces."""
        total_before = 0
        for ns in self._namespaces.values():
            with ns.lock:
                total_before += len(ns.cache)
                ns.cache.clear()
                ns.hits = ns.misses = 0
        logger.info("AI caches cleared, %d entries removed", total_before)

    def sweep_expired(self) -> int:
        """
        Remove all expired entries regardless of size

        Returns:
            Number of removed entries
        """
        cleaned_total = 0
        for ns in self._namespaces.values():
            with ns.lock:
                # len() expires on its own, so count what expire() hands back
                cleaned_total += len(ns.cache.expire())

        if cleaned_total > 0:
            logger.debug("Swept %d expired cache entries", cleaned_total)
        return cleaned_total

    def stats(self) -> Dict[str, Any]:
        """
        Current sizes, TTLs and hit counters

        Returns:
            Dictionary keyed by namespace plus flat size/TTL fields
        """
        response = self._namespaces[CacheNamespace.RESPONSE.value]
        query = self._namespaces[CacheNamespace.QUERY.value]

        def _hit_rate(ns: _Namespace) -> float:
            total = ns.hits + ns.misses
            return ns.hits / total if total > 0 else 0.0

        return {
            "response_cache_size": len(response.cache),
            "query_cache_size": len(query.cache),
            "response_ttl": response.ttl,
            "query_ttl": query.ttl,
            "response_maxsize": response.maxsize,
            "query_maxsize": query.maxsize,
            "response_hits": response.hits,
            "response_misses": response.misses,
            "query_hits": query.hits,
            "query_misses": query.misses,
            "response_hit_rate": _hit_rate(response),
            "query_hit_rate": _hit_rate(query),
        }
