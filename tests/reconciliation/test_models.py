"""Tests for reconciliation data model helpers and serialization."""

from datetime import datetime, timedelta, timezone

import pytest

from reconciliation.models import (
    ClubCounts,
    DistrictStatistics,
    JobMetadata,
    JobStatus,
    MembershipStats,
    ReconciliationJob,
    ReconciliationTimeline,
    TERMINAL_STATUSES,
    TimelinePhase,
    TriggeredBy,
    from_iso,
    to_iso,
)


NOW = datetime(2026, 1, 3, 9, 0, tzinfo=timezone.utc)


def test_only_active_is_non_terminal():
    assert JobStatus.ACTIVE not in TERMINAL_STATUSES
    assert TERMINAL_STATUSES == {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}


def test_iso_helpers_normalize_to_utc():
    assert to_iso(None) is None
    assert from_iso(None) is None
    assert to_iso(datetime(2026, 1, 3, 9, 0)) == "2026-01-03T09:00:00+00:00"
    assert from_iso("2026-01-03T09:00:00Z") == NOW
    assert from_iso("2026-01-03T09:00:00") == NOW


def test_distinguished_percent():
    stats = DistrictStatistics(
        district_id="42", as_of_date="2025-12-31",
        membership=MembershipStats(total=10), clubs=ClubCounts(total=40, distinguished=10),
    )
    assert stats.distinguished_percent == pytest.approx(25.0)


def test_distinguished_percent_without_clubs():
    stats = DistrictStatistics(
        district_id="42", as_of_date="2025-12-31",
        membership=MembershipStats(total=0), clubs=ClubCounts(total=0),
    )
    assert stats.distinguished_percent == 0.0


def test_statistics_from_dict_tolerates_missing_sections():
    stats = DistrictStatistics.from_dict({
        'district_id': 42,
        'as_of_date': '2025-12-31',
        'membership': {'total': 900},
        'clubs': {'total': 30},
    })
    assert stats.district_id == "42"
    assert stats.education.total_awards == 0
    assert stats.membership.change == 0


def test_new_timeline_starts_monitoring():
    timeline = ReconciliationTimeline(job_id="j", district_id="42", target_month="2025-12")
    assert timeline.entries == []
    assert timeline.status.phase == TimelinePhase.MONITORING
    assert timeline.status.days_active == 0


def test_job_serializes_enum_values():
    job = ReconciliationJob(
        id="j",
        district_id="42",
        target_month="2025-12",
        status=JobStatus.ACTIVE,
        start_date=NOW,
        max_end_date=NOW + timedelta(days=15),
        triggered_by=TriggeredBy.AUTOMATIC,
        metadata=JobMetadata(created_at=NOW, updated_at=NOW, triggered_by=TriggeredBy.AUTOMATIC),
    )
    data = job.to_dict()

    assert data['status'] == 'active'
    assert data['triggered_by'] == 'automatic'
    assert data['end_date'] is None
    assert data['config_overrides'] == {}
    assert job.is_terminal is False


def test_job_from_dict_defaults_for_older_records():
    """Records written before overrides were tracked still load."""
    data = {
        'id': 'j',
        'district_id': '42',
        'target_month': '2025-12',
        'status': 'completed',
        'start_date': '2026-01-03T09:00:00+00:00',
        'max_end_date': '2026-01-18T09:00:00+00:00',
        'end_date': '2026-01-10T09:00:00+00:00',
        'finalized_date': '2026-01-10T09:00:00+00:00',
        'triggered_by': 'manual',
        'metadata': {
            'created_at': '2026-01-03T09:00:00+00:00',
            'updated_at': '2026-01-10T09:00:00+00:00',
            'triggered_by': 'manual',
        },
    }
    job = ReconciliationJob.from_dict(data)

    assert job.is_terminal is True
    assert job.config_overrides == {}
    assert job.extension_days_total == 0
