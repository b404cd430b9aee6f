"""
Durable tier for the discovery cache.

Any key-value store offering get/put/delete with an absolute expiry works;
the production implementation is a diskcache.Cache directory. Stores raise
CacheReadError / CacheWriteError and leave the policy (miss on read error,
log-and-drop on write error) to DiscoveryCache.
"""

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

import diskcache
import structlog

from src.utils.exceptions import CacheReadError, CacheWriteError

logger = structlog.get_logger()

StoredValue = Tuple[bytes, float]


class DurableStore(ABC):
    """Key-value contract for the durable cache tier"""

    @abstractmethod
    def get(self, key: str) -> Optional[StoredValue]:
        """Payload and absolute expiry (epoch seconds), or None"""
        pass

    @abstractmethod
    def put(self, key: str, payload: bytes, expires_at: float) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix; returns the count removed"""
        pass

    def close(self) -> None:
        return None


class DiskCacheStore(DurableStore):
    """
    diskcache-backed durable store.

    Thread- and process-safe; concurrent writers to the same key resolve
    as last-writer-wins, which is fine for regenerable entries.
    """

    def __init__(self, directory: str, size_limit_mb: int = 1024):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._cache = diskcache.Cache(
            str(self.directory), size_limit=size_limit_mb * 1024 * 1024
        )
        logger.info(
            "durable_store_initialized",
            directory=str(self.directory),
            size_limit_mb=size_limit_mb,
        )

    def get(self, key: str) -> Optional[StoredValue]:
        try:
            value = self._cache.get(key)
        except Exception as e:
            raise CacheReadError(f"diskcache read failed for {key}: {e}") from e
        if value is None:
            return None
        try:
            payload, expires_at = value
            return bytes(payload), float(expires_at)
        except (TypeError, ValueError) as e:
            raise CacheReadError(f"Corrupt durable entry {key}: {e}") from e

    def put(self, key: str, payload: bytes, expires_at: float) -> None:
        remaining = expires_at - time.time()
        if remaining <= 0:
            return
        try:
            self._cache.set(key, (payload, expires_at), expire=remaining)
        except Exception as e:
            raise CacheWriteError(f"diskcache write failed for {key}: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self._cache.delete(key))
        except Exception as e:
            raise CacheWriteError(f"diskcache delete failed for {key}: {e}") from e

    def delete_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            for key in list(self._cache.iterkeys()):
                if isinstance(key, str) and key.startswith(prefix):
                    if self._cache.delete(key):
                        removed += 1
        except Exception as e:
            raise CacheWriteError(f"diskcache prefix delete failed for {prefix}: {e}") from e
        return removed

    def volume_bytes(self) -> int:
        return int(self._cache.volume())

    def count(self) -> int:
        return len(self._cache)

    def close(self) -> None:
        self._cache.close()
