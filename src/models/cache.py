"""
Data models for the discovery cache.

Defines cache configuration, per-entry bookkeeping and statistics models.
"""

import threading
import time
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from src.models.discovery import DiscoveryResult


class CacheConfig(BaseModel):
    """Cache configuration"""

    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = True
    cache_dir: Optional[str] = "./cache/discovery"

    # TTL settings (seconds)
    ttl_seconds: int = Field(6 * 3600, ge=1)
    partial_ttl_seconds: int = Field(3600, ge=1)

    # Fast tier limits
    max_entries: int = Field(1000, ge=1)
    eviction_target_ratio: float = Field(0.8, gt=0.0, lt=1.0)
    max_entry_size_bytes: int = Field(512 * 1024, ge=1024)

    # Durable tier size limit
    durable_size_limit_mb: int = Field(1024, ge=1)

    @property
    def eviction_target(self) -> int:
        return max(1, int(self.max_entries * self.eviction_target_ratio))


class CacheEntry(BaseModel):
    """One cached discovery result plus access bookkeeping.

    Access counters are the only mutable state; they are updated under a
    per-entry lock so concurrent readers never contend on a shared one.
    """

    key: str
    paper_id: str
    result: DiscoveryResult
    cached_at: float
    expires_at: float
    size_bytes: int = Field(0, ge=0)
    access_count: int = 0
    last_access: float = 0.0

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def record_access(self, now: Optional[float] = None) -> None:
        with self._lock:
            self.access_count += 1
            self.last_access = now if now is not None else time.time()

    def effectiveness(
        self, max_entry_size_bytes: int, now: Optional[float] = None
    ) -> float:
        """Eviction heuristic in [0, 1]; low values are evicted first.

        Combines access frequency (accesses per hour, saturating at 10),
        freshness (remaining fraction of the TTL) and size (small entries
        are cheaper to keep).
        """
        now = now if now is not None else time.time()
        if self.is_expired(now):
            return 0.0

        age_hours = max((now - self.cached_at) / 3600.0, 1.0 / 60.0)
        frequency = min(1.0, (self.access_count / age_hours) / 10.0)

        lifetime = self.expires_at - self.cached_at
        freshness = (self.expires_at - now) / lifetime if lifetime > 0 else 0.0

        size_factor = max(0.0, 1.0 - self.size_bytes / max_entry_size_bytes)

        return 0.5 * frequency + 0.3 * freshness + 0.2 * size_factor


class CacheStats(BaseModel):
    """Cache statistics"""

    model_config = ConfigDict(protected_namespaces=())

    memory_hits: int = 0
    durable_hits: int = 0
    misses: int = 0
    stores: int = 0

    entry_count: int = 0
    memory_estimate_bytes: int = 0
    eviction_count: int = 0
    expired_count: int = 0
    invalidation_count: int = 0

    read_errors: int = 0
    write_errors: int = 0

    average_effectiveness: float = 0.0
    last_updated: datetime = Field(default_factory=datetime.now)

    @property
    def hits(self) -> int:
        return self.memory_hits + self.durable_hits

    @property
    def hit_rate(self) -> float:
        """Calculate overall hit rate"""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def memory_estimate_mb(self) -> float:
        return self.memory_estimate_bytes / (1024 * 1024)

    def as_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["hits"] = self.hits
        data["hit_rate"] = round(self.hit_rate, 4)
        data["memory_estimate_mb"] = round(self.memory_estimate_mb, 3)
        return data
