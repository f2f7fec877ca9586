"""
Shared pytest fixtures for DistrictRecon tests.

Provides reusable fixtures for:
- A FixedClock pinned to a known instant
- SQLite store and disk cache rooted in tmp_path
- Config service and a fully wired orchestrator
- A statistics factory for building DistrictStatistics snapshots
- An in-memory store for tests that should not touch SQLite
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from reconciliation.config_service import ConfigService
from reconciliation.models import (
    ClubCounts,
    DistrictStatistics,
    EducationStats,
    MembershipStats,
    ReconciliationJob,
    ReconciliationTimeline,
)
from reconciliation.orchestrator import ReconciliationOrchestrator
from shared.clock import FixedClock
from storage.cache import ReconciliationCache
from storage.store import SQLiteReconciliationStore
from validation.config import ReconciliationConfig


START = datetime(2026, 1, 3, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# In-memory store
# =============================================================================

class InMemoryStore:
    """Dict-backed ReconciliationStore used where SQLite is beside the point.

    Records are copied through to_dict()/from_dict() so callers never share
    objects with the store, like a real backend.
    """

    def __init__(self):
        self.jobs: dict[str, dict] = {}
        self.timelines: dict[str, dict] = {}
        self.config: Optional[ReconciliationConfig] = None
        self.save_job_calls = 0

    def get_job(self, job_id):
        data = self.jobs.get(job_id)
        return None if data is None else ReconciliationJob.from_dict(data)

    def save_job(self, job):
        self.save_job_calls += 1
        self.jobs[job.id] = job.to_dict()

    def get_all_jobs(self):
        return [ReconciliationJob.from_dict(d) for d in self.jobs.values()]

    def get_jobs_by_district(self, district_id):
        return [job for job in self.get_all_jobs() if job.district_id == district_id]

    def delete_job(self, job_id):
        self.timelines.pop(job_id, None)
        return self.jobs.pop(job_id, None) is not None

    def cleanup_old_jobs(self, max_age_days=90, now=None):
        return 0

    def get_timeline(self, job_id):
        data = self.timelines.get(job_id)
        return None if data is None else ReconciliationTimeline.from_dict(data)

    def save_timeline(self, timeline):
        self.timelines[timeline.job_id] = timeline.to_dict()

    def save_job_and_timeline(self, job, timeline):
        job_data, timeline_data = job.to_dict(), timeline.to_dict()
        self.save_job_calls += 1
        self.jobs[job.id] = job_data
        self.timelines[timeline.job_id] = timeline_data

    def get_config(self):
        return self.config

    def save_config(self, config):
        self.config = config

    def get_storage_stats(self):
        by_status: dict[str, int] = {}
        for data in self.jobs.values():
            by_status[data['status']] = by_status.get(data['status'], 0) + 1
        return {'total_jobs': len(self.jobs), 'jobs_by_status': by_status}


# =============================================================================
# Clock / storage fixtures
# =============================================================================

@pytest.fixture
def clock():
    """
    FixedClock at 2026-01-03 09:00 UTC (inside the month transition window).

    Usage:
        def test_something(clock):
            clock.advance(days=1)
    """
    return FixedClock(START)


@pytest.fixture
def store(tmp_path):
    """SQLiteReconciliationStore in a per-test directory."""
    return SQLiteReconciliationStore(str(tmp_path / "store"))


@pytest.fixture
def memory_store():
    """InMemoryStore instance."""
    return InMemoryStore()


@pytest.fixture
def cache(tmp_path):
    """ReconciliationCache in a per-test directory (closed after the test)."""
    cache = ReconciliationCache(str(tmp_path))
    yield cache
    cache.close()


@pytest.fixture
def config_service(store):
    """ConfigService persisting to the SQLite store, starting from defaults."""
    return ConfigService(store)


@pytest.fixture
def orchestrator(store, cache, config_service, clock):
    """Orchestrator wired to SQLite store, disk cache and FixedClock."""
    return ReconciliationOrchestrator(store, config_service, cache=cache, clock=clock)


# =============================================================================
# Sample data
# =============================================================================

@pytest.fixture
def make_stats():
    """
    Factory for DistrictStatistics.

    Usage:
        def test_changes(make_stats):
            cached = make_stats(membership=1000)
            current = make_stats(membership=1020)
    """
    def _make(
        district_id: str = "42",
        as_of_date: str = "2025-12-31",
        membership: int = 1000,
        clubs: int = 50,
        active: int = 48,
        distinguished: int = 10,
        awards: int = 120,
    ) -> DistrictStatistics:
        return DistrictStatistics(
            district_id=district_id,
            as_of_date=as_of_date,
            membership=MembershipStats(total=membership),
            clubs=ClubCounts(total=clubs, active=active, distinguished=distinguished),
            education=EducationStats(total_awards=awards),
        )
    return _make
