"""
Two-tier discovery cache.

1. In-process tier: dict of CacheEntry, serves repeated requests without I/O
2. Durable tier: DurableStore (diskcache in production), survives restarts

Reads check memory first, then the durable tier, promoting durable hits.
Writes go to both tiers; the durable write is best-effort. Expiry is checked
on every read. TTL sweeps and capacity eviction run off the request path
(scheduled on the event loop or by the maintenance scheduler).
"""

import asyncio
import threading
import time
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from src.models.cache import CacheConfig, CacheEntry, CacheStats
from src.models.discovery import DiscoveryResult, DiscoveryStatus
from src.observability.metrics import DiscoveryMetrics
from src.services.durable_store import DurableStore
from src.utils.exceptions import CacheError, CacheReadError
from src.utils.hash import cache_key, cache_key_prefix

logger = structlog.get_logger()


class DiscoveryCache:
    """
    Cache of DiscoveryResult keyed by (paper id, configuration fingerprint).

    Shared across concurrent requests. Entry reads and writes are single
    dict operations; only maintenance passes and stats counters take locks.
    """

    def __init__(
        self,
        config: CacheConfig,
        durable: Optional[DurableStore] = None,
        metrics: Optional[DiscoveryMetrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize discovery cache.

        Args:
            config: Cache configuration
            durable: Durable tier, or None for a memory-only cache
            metrics: Metrics sink
            clock: Wall-clock source (epoch seconds), injectable for tests
        """
        self.config = config
        self.enabled = config.enabled
        self.durable = durable if config.enabled else None
        self.metrics = metrics
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._maintenance_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = CacheStats()
        self._eviction_scheduled = False

        if not config.enabled:
            logger.info("cache_disabled")
        else:
            logger.info(
                "discovery_cache_initialized",
                ttl_seconds=config.ttl_seconds,
                max_entries=config.max_entries,
                durable=type(durable).__name__ if durable else None,
            )

    def _bump(self, field: str, amount: int = 1) -> None:
        with self._stats_lock:
            setattr(self._stats, field, getattr(self._stats, field) + amount)

    # ==================== Lookup ====================

    def get(self, paper_id: str, fingerprint: str) -> Optional[DiscoveryResult]:
        """
        Get cached result, or None on miss/expiry/read error.

        Args:
            paper_id: Source paper id
            fingerprint: DiscoveryConfiguration fingerprint

        Returns:
            Cached DiscoveryResult or None
        """
        if not self.enabled:
            return None

        key = cache_key(paper_id, fingerprint)
        now = self._clock()

        entry = self._entries.get(key)
        if entry is not None:
            if not entry.is_expired(now):
                entry.record_access(now)
                self._bump("memory_hits")
                if self.metrics:
                    self.metrics.cache_hit("memory")
                logger.info("cache_hit", tier="memory", paper_id=paper_id, key=key[-8:])
                # Callers get their own copy; the cached result stays pristine
                return entry.result.model_copy(deep=True)
            self._drop(key, reason="expired")

        result = self._read_durable(key, paper_id, now)
        if result is not None:
            return result

        self._bump("misses")
        if self.metrics:
            self.metrics.cache_miss()
        logger.debug("cache_miss", paper_id=paper_id, key=key[-8:])
        return None

    def _read_durable(
        self, key: str, paper_id: str, now: float
    ) -> Optional[DiscoveryResult]:
        if self.durable is None:
            return None
        try:
            stored = self.durable.get(key)
            if stored is None:
                return None
            payload, expires_at = stored
            if expires_at <= now:
                self._delete_durable(key)
                return None
            try:
                result = DiscoveryResult.model_validate_json(payload)
            except ValidationError as e:
                raise CacheReadError(f"Undecodable durable entry {key}: {e}") from e
        except CacheError as e:
            # A read error is indistinguishable from a miss for the caller
            self._bump("read_errors")
            if self.metrics:
                self.metrics.cache_error("read")
            logger.error("cache_read_error", paper_id=paper_id, error=str(e))
            return None

        cached_at = min(now, result.discovered_at.timestamp())
        entry = CacheEntry(
            key=key,
            paper_id=paper_id,
            result=result,
            cached_at=cached_at,
            expires_at=expires_at,
            size_bytes=len(payload),
        )
        entry.record_access(now)
        self._entries[key] = entry
        self._schedule_eviction_if_needed()

        self._bump("durable_hits")
        if self.metrics:
            self.metrics.cache_hit("durable")
            self.metrics.set_cache_entries(len(self._entries))
        logger.info("cache_hit", tier="durable", paper_id=paper_id, key=key[-8:])
        return result.model_copy(deep=True)

    # ==================== Store ====================

    def ttl_for(self, result: DiscoveryResult) -> Optional[int]:
        """TTL in seconds for result, or None when it must not be cached"""
        if result.status == DiscoveryStatus.FAILED:
            return None
        if result.status == DiscoveryStatus.PARTIAL_SUCCESS:
            return min(self.config.partial_ttl_seconds, self.config.ttl_seconds)
        return self.config.ttl_seconds

    def store(
        self,
        paper_id: str,
        fingerprint: str,
        result: DiscoveryResult,
        ttl: Optional[float] = None,
    ) -> bool:
        """
        Cache a result in both tiers.

        Args:
            paper_id: Source paper id
            fingerprint: DiscoveryConfiguration fingerprint
            result: Result to cache
            ttl: Override TTL in seconds

        Returns:
            True if the result was cached in memory
        """
        if not self.enabled:
            return False

        if ttl is None:
            ttl = self.ttl_for(result)
            if ttl is None:
                logger.info("cache_store_skipped", paper_id=paper_id, status=result.status.value)
                return False

        key = cache_key(paper_id, fingerprint)
        now = self._clock()
        payload = result.model_dump_json().encode("utf-8")
        expires_at = now + ttl

        self._entries[key] = CacheEntry(
            key=key,
            paper_id=paper_id,
            result=result.model_copy(deep=True),
            cached_at=now,
            expires_at=expires_at,
            size_bytes=len(payload),
            last_access=now,
        )
        self._bump("stores")
        if self.metrics:
            self.metrics.set_cache_entries(len(self._entries))

        if self.durable is not None:
            try:
                self.durable.put(key, payload, expires_at)
            except CacheError as e:
                # The memory tier already holds a usable entry
                self._bump("write_errors")
                if self.metrics:
                    self.metrics.cache_error("write")
                logger.error("cache_write_error", paper_id=paper_id, error=str(e))

        logger.debug(
            "cache_stored",
            paper_id=paper_id,
            key=key[-8:],
            ttl_seconds=ttl,
            size_bytes=len(payload),
            candidates=len(result.candidates),
        )
        self._schedule_eviction_if_needed()
        return True

    # ==================== Invalidation ====================

    def invalidate(self, paper_id: str, fingerprint: str) -> bool:
        key = cache_key(paper_id, fingerprint)
        removed = self._entries.pop(key, None) is not None
        if self.durable is not None:
            try:
                removed = self.durable.delete(key) or removed
            except CacheError as e:
                self._bump("write_errors")
                logger.error("cache_invalidate_error", paper_id=paper_id, error=str(e))
        if removed:
            self._record_removal("invalidated", 1)
        return removed

    def invalidate_all(self, paper_id: str) -> int:
        """Remove every cached result for paper_id, whatever its configuration"""
        prefix = cache_key_prefix(paper_id)
        with self._maintenance_lock:
            keys = [k for k in list(self._entries) if k.startswith(prefix)]
            for key in keys:
                self._entries.pop(key, None)
        removed = len(keys)
        if self.durable is not None:
            try:
                removed = max(removed, self.durable.delete_prefix(prefix))
            except CacheError as e:
                self._bump("write_errors")
                logger.error("cache_invalidate_error", paper_id=paper_id, error=str(e))
        self._record_removal("invalidated", removed)
        logger.info("cache_invalidated", paper_id=paper_id, removed=removed)
        return removed

    def clear(self) -> None:
        with self._maintenance_lock:
            self._entries.clear()
        if self.metrics:
            self.metrics.set_cache_entries(0)

    # ==================== Maintenance ====================

    def sweep_expired(self) -> int:
        """Remove expired entries from the memory tier"""
        now = self._clock()
        with self._maintenance_lock:
            expired = [k for k, e in list(self._entries.items()) if e.is_expired(now)]
            for key in expired:
                self._entries.pop(key, None)
        if expired:
            self._record_removal("expired", len(expired))
            logger.info("cache_ttl_sweep", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def evict_to_capacity(self) -> int:
        """Evict least-effective entries until the tier is back under target.

        Runs only when the tier exceeds max_entries; evicts down to
        eviction_target so eviction is not retriggered on every store.
        """
        self._eviction_scheduled = False
        if len(self._entries) <= self.config.max_entries:
            return 0

        now = self._clock()
        with self._maintenance_lock:
            ranked = sorted(
                list(self._entries.items()),
                key=lambda item: (
                    item[1].effectiveness(self.config.max_entry_size_bytes, now),
                    item[1].last_access,
                ),
            )
            excess = len(ranked) - self.config.eviction_target
            victims = [key for key, _ in ranked[: max(0, excess)]]
            for key in victims:
                self._entries.pop(key, None)

        self._record_removal("capacity", len(victims))
        logger.info(
            "cache_capacity_eviction",
            evicted=len(victims),
            remaining=len(self._entries),
        )
        return len(victims)

    def _schedule_eviction_if_needed(self) -> None:
        if len(self._entries) <= self.config.max_entries or self._eviction_scheduled:
            return
        self._eviction_scheduled = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the maintenance scheduler picks it up
            logger.debug("cache_eviction_deferred", entries=len(self._entries))
            return
        loop.call_soon(self.evict_to_capacity)

    def _drop(self, key: str, reason: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._record_removal(reason, 1)

    def _delete_durable(self, key: str) -> None:
        if self.durable is None:
            return
        try:
            self.durable.delete(key)
        except CacheError as e:
            logger.warning("cache_expired_delete_failed", key=key[-8:], error=str(e))

    def _record_removal(self, reason: str, count: int) -> None:
        if count <= 0:
            return
        field = {
            "expired": "expired_count",
            "capacity": "eviction_count",
            "invalidated": "invalidation_count",
        }[reason]
        self._bump(field, count)
        if self.metrics:
            self.metrics.cache_eviction(reason, count)
            self.metrics.set_cache_entries(len(self._entries))

    # ==================== Statistics ====================

    def stats(self) -> CacheStats:
        """Snapshot of counters plus current tier size"""
        now = self._clock()
        entries: List[CacheEntry] = list(self._entries.values())
        with self._stats_lock:
            snapshot = self._stats.model_copy()
        snapshot.entry_count = len(entries)
        snapshot.memory_estimate_bytes = sum(e.size_bytes for e in entries)
        if entries:
            snapshot.average_effectiveness = round(
                sum(e.effectiveness(self.config.max_entry_size_bytes, now) for e in entries)
                / len(entries),
                4,
            )
        return snapshot

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def close(self) -> None:
        if self.durable is not None:
            self.durable.close()
