"""
Disk-backed read cache for reconciliation jobs and timelines.

Provides a ReconciliationCache class that sits in front of the store using
diskcache with TTL-based expiration. It avoids repeated store reads for the
same job inside a reconciliation cycle and across closely spaced reads.

Key design decisions:
- SQLite-backed storage via diskcache (thread-safe, values are pickled copies,
  so callers can never mutate a cached record in place)
- Write-through only: callers save to the store first, then call set_*()
- 5-minute default TTL (a cycle runs at most every few hours)
- 16MB default size limit, least-recently-stored eviction

Example:
    >>> from storage.cache import ReconciliationCache
    >>> cache = ReconciliationCache("/path/to/data_dir")
    >>> store.save_job(job)
    >>> cache.set_job(job)
    >>> cached = cache.get_job(job.id)
    >>> if cached is not None:
    ...     print(f"Cache hit: {cached.status.value}")
"""

import logging
import os
import shutil
import tempfile
from typing import Any, Dict, Optional, Protocol

from diskcache import Cache

from reconciliation.models import ReconciliationJob, ReconciliationTimeline

logger = logging.getLogger('DistrictRecon.storage.cache')


class JobCache(Protocol):
    """Interface the orchestrator needs from a job/timeline cache."""

    def get_job(self, job_id: str) -> Optional[ReconciliationJob]: ...
    def set_job(self, job: ReconciliationJob) -> None: ...
    def get_timeline(self, job_id: str) -> Optional[ReconciliationTimeline]: ...
    def set_timeline(self, timeline: ReconciliationTimeline) -> None: ...
    def invalidate(self, job_id: str) -> None: ...
    def clear(self) -> None: ...
    def get_stats(self) -> Dict[str, Any]: ...


class ReconciliationCache:
    """
    Disk-backed cache for reconciliation records.

    Uses diskcache.Cache for SQLite-backed storage with TTL support.

    Args:
        data_dir: Base directory for cache storage (cache/ subdirectory created).
                  If None, a private temporary directory is used.
        ttl: TTL in seconds for cached records (default: 300 = 5 minutes)
        size_limit: Maximum cache size in bytes (default: 16MB)

    Example:
        >>> cache = ReconciliationCache("/data/recon", ttl=60)
        >>> cache.set_timeline(timeline)
        >>> cache.get_timeline(timeline.job_id).entries
    """

    DEFAULT_TTL = 300

    DEFAULT_SIZE_LIMIT = 16 * 1024 * 1024

    def __init__(
        self,
        data_dir: Optional[str] = None,
        ttl: int = DEFAULT_TTL,
        size_limit: int = DEFAULT_SIZE_LIMIT,
    ) -> None:
        self._ttl = ttl
        self._size_limit = size_limit

        # A directory we created ourselves is removed again on close()
        self._owns_dir = data_dir is None
        if data_dir is None:
            data_dir = tempfile.mkdtemp(prefix='district-recon-')
        self._data_dir = data_dir

        cache_dir = os.path.join(data_dir, 'cache')
        os.makedirs(cache_dir, exist_ok=True)

        self._cache = Cache(cache_dir, size_limit=size_limit, eviction_policy='least-recently-stored')

        # Track custom stats for this session
        self._hits = 0
        self._misses = 0

        logger.debug(f"ReconciliationCache initialized at {cache_dir} (TTL: {ttl}s, limit: {size_limit} bytes)")

    def _make_job_key(self, job_id: str) -> str:
        return f"job:{job_id}"

    def _make_timeline_key(self, job_id: str) -> str:
        return f"timeline:{job_id}"

    def _get(self, cache_key: str):
        result = self._cache.get(cache_key)
        if result is not None:
            self._hits += 1
            logger.debug(f"Cache hit for '{cache_key}'")
        else:
            self._misses += 1
            logger.debug(f"Cache miss for '{cache_key}'")
        return result

    def get_job(self, job_id: str) -> Optional[ReconciliationJob]:
        """Cached job, or None on miss/expiry."""
        return self._get(self._make_job_key(job_id))

    def set_job(self, job: ReconciliationJob) -> None:
        """Cache a job that has already been saved to the store."""
        self._cache.set(self._make_job_key(job.id), job, expire=self._ttl)

    def get_timeline(self, job_id: str) -> Optional[ReconciliationTimeline]:
        """Cached timeline, or None on miss/expiry."""
        return self._get(self._make_timeline_key(job_id))

    def set_timeline(self, timeline: ReconciliationTimeline) -> None:
        """Cache a timeline that has already been saved to the store."""
        self._cache.set(self._make_timeline_key(timeline.job_id), timeline, expire=self._ttl)

    def invalidate(self, job_id: str) -> None:
        """Drop a job and its timeline from the cache."""
        self._cache.delete(self._make_job_key(job_id))
        self._cache.delete(self._make_timeline_key(job_id))

    def clear(self) -> None:
        """
        Clear all cached data and reset statistics.

        Use after bulk store changes (cleanup, manual edits).
        """
        self._cache.clear()
        self._hits = 0
        self._misses = 0
        logger.info("Cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache hit/miss statistics.

        Returns:
            Dict with keys:
            - hits: Number of cache hits this session
            - misses: Number of cache misses this session
            - hit_rate: Hit rate as percentage (0-100)
            - size: Number of live cached records
            - volume: Current cache size in bytes
        """
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0

        self._cache.expire()
        try:
            volume = self._cache.volume()
        except Exception:
            volume = 0

        return {
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': hit_rate,
            'size': len(self._cache),
            'volume': volume,
        }

    def close(self) -> None:
        """Close the cache connection, removing the temporary directory if one was created."""
        self._cache.close()
        if self._owns_dir:
            shutil.rmtree(self._data_dir, ignore_errors=True)
            logger.debug(f"Removed temporary cache directory {self._data_dir}")
        logger.debug("Cache closed")

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (
            f"ReconciliationCache(data_dir={self._data_dir!r}, "
            f"ttl={self._ttl}, "
            f"items={stats['size']}, "
            f"hit_rate={stats['hit_rate']:.1f}%)"
        )


__all__ = ['ReconciliationCache', 'JobCache']
