"""
Tests for storage/cache.py - Disk-backed cache for jobs and timelines.

Tests cover:
1. Cache initialization creates directory
2. Job and timeline get/set
3. Cache miss returns None
4. TTL expiry
5. Invalidate / clear
6. Statistics tracking (hits/misses)
7. Cached copies are isolated from callers
"""

import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from reconciliation.models import (
    JobMetadata,
    JobStatus,
    ReconciliationJob,
    ReconciliationTimeline,
    TriggeredBy,
)
from storage.cache import ReconciliationCache


NOW = datetime(2026, 1, 3, 9, 0, tzinfo=timezone.utc)


def make_job(job_id="job-1"):
    return ReconciliationJob(
        id=job_id,
        district_id="42",
        target_month="2025-12",
        status=JobStatus.ACTIVE,
        start_date=NOW,
        max_end_date=NOW + timedelta(days=15),
        triggered_by=TriggeredBy.MANUAL,
        metadata=JobMetadata(created_at=NOW, updated_at=NOW, triggered_by=TriggeredBy.MANUAL),
    )


# =============================================================================
# Initialization
# =============================================================================

class TestReconciliationCacheInit:

    def test_init_creates_cache_directory(self, tmp_path):
        """ReconciliationCache creates cache/ subdirectory on initialization."""
        cache = ReconciliationCache(str(tmp_path))

        cache_dir = tmp_path / "cache"
        assert cache_dir.exists()
        assert cache_dir.is_dir()
        cache.close()

    def test_init_without_data_dir(self):
        """A private temporary directory is used when no data_dir is given."""
        cache = ReconciliationCache()
        cache.set_job(make_job())
        assert cache.get_job("job-1") is not None
        cache.close()

    def test_close_removes_temporary_directory(self):
        cache = ReconciliationCache()
        data_dir = cache._data_dir
        assert os.path.isdir(data_dir)

        cache.close()

        assert not os.path.exists(data_dir)

    def test_close_keeps_caller_directory(self, tmp_path):
        cache = ReconciliationCache(str(tmp_path))
        cache.close()

        assert (tmp_path / "cache").is_dir()

    def test_repr(self, cache):
        assert "ReconciliationCache(" in repr(cache)
        assert "ttl=300" in repr(cache)


# =============================================================================
# Get / set
# =============================================================================

class TestGetSet:

    def test_job_round_trip(self, cache):
        job = make_job()
        cache.set_job(job)

        cached = cache.get_job("job-1")
        assert cached.to_dict() == job.to_dict()

    def test_timeline_round_trip(self, cache):
        timeline = ReconciliationTimeline(job_id="job-1", district_id="42", target_month="2025-12")
        cache.set_timeline(timeline)

        assert cache.get_timeline("job-1").to_dict() == timeline.to_dict()

    def test_miss_returns_none(self, cache):
        assert cache.get_job("missing") is None
        assert cache.get_timeline("missing") is None

    def test_returned_copy_is_isolated(self, cache):
        """Mutating a returned record does not change the cached one."""
        cache.set_job(make_job())

        first = cache.get_job("job-1")
        first.status = JobStatus.CANCELLED

        assert cache.get_job("job-1").status == JobStatus.ACTIVE

    def test_ttl_expiry(self, tmp_path):
        cache = ReconciliationCache(str(tmp_path), ttl=1)
        cache.set_job(make_job())

        time.sleep(1.2)

        assert cache.get_job("job-1") is None
        cache.close()


# =============================================================================
# Invalidate / clear
# =============================================================================

class TestInvalidateClear:

    def test_invalidate_drops_job_and_timeline(self, cache):
        cache.set_job(make_job())
        cache.set_timeline(ReconciliationTimeline(job_id="job-1", district_id="42", target_month="2025-12"))
        cache.set_job(make_job("job-2"))

        cache.invalidate("job-1")

        assert cache.get_job("job-1") is None
        assert cache.get_timeline("job-1") is None
        assert cache.get_job("job-2") is not None

    def test_clear_resets_everything(self, cache):
        cache.set_job(make_job())
        cache.get_job("job-1")

        cache.clear()

        stats = cache.get_stats()
        assert stats['hits'] == 0
        assert stats['misses'] == 0
        assert stats['size'] == 0


# =============================================================================
# Statistics
# =============================================================================

class TestStats:

    def test_hits_and_misses(self, cache):
        cache.set_job(make_job())

        cache.get_job("job-1")
        cache.get_job("job-1")
        cache.get_job("missing")

        stats = cache.get_stats()
        assert stats['hits'] == 2
        assert stats['misses'] == 1
        assert stats['hit_rate'] == pytest.approx(200 / 3)
        assert stats['size'] == 1
        assert stats['volume'] >= 0

    def test_empty_hit_rate(self, cache):
        assert cache.get_stats()['hit_rate'] == 0.0
