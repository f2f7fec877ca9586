"""
Data model for month-end reconciliation.

Statistics snapshots and change records are frozen value objects. Jobs and
timelines are mutable records owned by the orchestrator; every record
round-trips through to_dict()/from_dict() with ISO-8601 timestamps so the
store can keep it as JSON.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class JobStatus(str, Enum):
    """Reconciliation job lifecycle states. Only ACTIVE is non-terminal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class TimelinePhase(str, Enum):
    """Phase reported on a timeline's status."""
    MONITORING = "monitoring"
    STABILIZING = "stabilizing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggeredBy(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# District statistics (caller input)
# =============================================================================

@dataclass(frozen=True)
class MembershipStats:
    total: int
    change: int = 0


@dataclass(frozen=True)
class ClubCounts:
    total: int
    active: int = 0
    suspended: int = 0
    ineligible: int = 0
    low: int = 0
    distinguished: int = 0


@dataclass(frozen=True)
class EducationStats:
    total_awards: int = 0


@dataclass(frozen=True)
class DistrictStatistics:
    """Point-in-time statistics for one district, supplied by the caller.

    Attributes:
        district_id: District identifier
        as_of_date: Date the figures describe, 'YYYY-MM-DD'
        membership: Membership total and change
        clubs: Club counts by category
        education: Education award counts
    """
    district_id: str
    as_of_date: str
    membership: MembershipStats
    clubs: ClubCounts
    education: EducationStats = field(default_factory=EducationStats)

    @property
    def distinguished_percent(self) -> float:
        """Share of clubs that are distinguished, 0-100."""
        if self.clubs.total <= 0:
            return 0.0
        return self.clubs.distinguished / self.clubs.total * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            'district_id': self.district_id,
            'as_of_date': self.as_of_date,
            'membership': {'total': self.membership.total, 'change': self.membership.change},
            'clubs': {
                'total': self.clubs.total,
                'active': self.clubs.active,
                'suspended': self.clubs.suspended,
                'ineligible': self.clubs.ineligible,
                'low': self.clubs.low,
                'distinguished': self.clubs.distinguished,
            },
            'education': {'total_awards': self.education.total_awards},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DistrictStatistics":
        return cls(
            district_id=str(data['district_id']),
            as_of_date=data['as_of_date'],
            membership=MembershipStats(**data.get('membership', {'total': 0})),
            clubs=ClubCounts(**data.get('clubs', {'total': 0})),
            education=EducationStats(**data.get('education', {})),
        )


# =============================================================================
# Change records
# =============================================================================

@dataclass(frozen=True)
class MembershipChange:
    previous: int
    current: int
    percent_change: float


@dataclass(frozen=True)
class ClubCountChange:
    previous: int
    current: int
    absolute_change: int


@dataclass(frozen=True)
class DistinguishedChange:
    """Distinguished club movement; percent_change is in percentage points."""
    previous: int
    current: int
    previous_percent: float
    current_percent: float
    percent_change: float


@dataclass(frozen=True)
class DataChanges:
    """Differences between a cached and a current snapshot.

    Attributes:
        has_changes: False only when no tracked field differs
        changed_fields: Names of the tracked fields that differ
        membership_change: Set when membership total differs
        club_count_change: Set when total club count differs
        distinguished_change: Set when distinguished club count differs
        timestamp: When the comparison ran
        source_data_date: as_of_date of the current snapshot
    """
    has_changes: bool
    changed_fields: tuple[str, ...]
    timestamp: datetime
    source_data_date: str
    membership_change: Optional[MembershipChange] = None
    club_count_change: Optional[ClubCountChange] = None
    distinguished_change: Optional[DistinguishedChange] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'has_changes': self.has_changes,
            'changed_fields': list(self.changed_fields),
            'timestamp': to_iso(self.timestamp),
            'source_data_date': self.source_data_date,
            'membership_change': _optional_dict(self.membership_change),
            'club_count_change': _optional_dict(self.club_count_change),
            'distinguished_change': _optional_dict(self.distinguished_change),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DataChanges":
        return cls(
            has_changes=data['has_changes'],
            changed_fields=tuple(data.get('changed_fields', ())),
            timestamp=from_iso(data['timestamp']),
            source_data_date=data['source_data_date'],
            membership_change=_optional(MembershipChange, data.get('membership_change')),
            club_count_change=_optional(ClubCountChange, data.get('club_count_change')),
            distinguished_change=_optional(DistinguishedChange, data.get('distinguished_change')),
        )


def _optional_dict(value) -> Optional[dict]:
    return None if value is None else asdict(value)


def _optional(cls, data: Optional[dict]):
    return None if data is None else cls(**data)


# =============================================================================
# Timeline
# =============================================================================

@dataclass(frozen=True)
class ReconciliationEntry:
    """One cycle's result. Appended to a timeline, never edited."""
    date: datetime
    source_data_date: str
    changes: DataChanges
    is_significant: bool
    cache_updated: bool = False
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'date': to_iso(self.date),
            'source_data_date': self.source_data_date,
            'changes': self.changes.to_dict(),
            'is_significant': self.is_significant,
            'cache_updated': self.cache_updated,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReconciliationEntry":
        return cls(
            date=from_iso(data['date']),
            source_data_date=data['source_data_date'],
            changes=DataChanges.from_dict(data['changes']),
            is_significant=data['is_significant'],
            cache_updated=data.get('cache_updated', False),
            notes=data.get('notes'),
        )


@dataclass
class TimelineStatus:
    phase: TimelinePhase
    days_active: int
    days_stable: int
    message: str
    next_check_date: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'phase': self.phase.value,
            'days_active': self.days_active,
            'days_stable': self.days_stable,
            'message': self.message,
            'next_check_date': to_iso(self.next_check_date),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelineStatus":
        return cls(
            phase=TimelinePhase(data['phase']),
            days_active=data['days_active'],
            days_stable=data['days_stable'],
            message=data['message'],
            next_check_date=from_iso(data.get('next_check_date')),
        )


@dataclass
class ReconciliationTimeline:
    """Ordered cycle history of one job (keyed 1:1 by job_id)."""
    job_id: str
    district_id: str
    target_month: str
    entries: list[ReconciliationEntry] = field(default_factory=list)
    status: TimelineStatus = field(default_factory=lambda: TimelineStatus(
        phase=TimelinePhase.MONITORING, days_active=0, days_stable=0,
        message='Reconciliation started - monitoring for changes',
    ))

    def to_dict(self) -> dict[str, Any]:
        return {
            'job_id': self.job_id,
            'district_id': self.district_id,
            'target_month': self.target_month,
            'entries': [entry.to_dict() for entry in self.entries],
            'status': self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReconciliationTimeline":
        return cls(
            job_id=data['job_id'],
            district_id=data['district_id'],
            target_month=data['target_month'],
            entries=[ReconciliationEntry.from_dict(e) for e in data.get('entries', [])],
            status=TimelineStatus.from_dict(data['status']),
        )


# =============================================================================
# Job
# =============================================================================

@dataclass
class JobMetadata:
    created_at: datetime
    updated_at: datetime
    triggered_by: TriggeredBy


@dataclass
class ReconciliationJob:
    """A monitoring window for one (district, month).

    Only the per-job overrides given at start are kept on the job. The
    effective configuration is the live configuration with these overrides
    applied, so threshold updates reach running jobs on their next cycle.

    Attributes:
        config_overrides: Partial config supplied at start (may be empty)
        extension_days_total: Days added to max_end_date since start
    """
    id: str
    district_id: str
    target_month: str
    status: JobStatus
    start_date: datetime
    max_end_date: datetime
    triggered_by: TriggeredBy
    metadata: JobMetadata
    config_overrides: dict[str, Any] = field(default_factory=dict)
    extension_days_total: int = 0
    end_date: Optional[datetime] = None
    finalized_date: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'district_id': self.district_id,
            'target_month': self.target_month,
            'status': self.status.value,
            'start_date': to_iso(self.start_date),
            'max_end_date': to_iso(self.max_end_date),
            'end_date': to_iso(self.end_date),
            'finalized_date': to_iso(self.finalized_date),
            'triggered_by': self.triggered_by.value,
            'metadata': {
                'created_at': to_iso(self.metadata.created_at),
                'updated_at': to_iso(self.metadata.updated_at),
                'triggered_by': self.metadata.triggered_by.value,
            },
            'config_overrides': self.config_overrides,
            'extension_days_total': self.extension_days_total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReconciliationJob":
        meta = data['metadata']
        return cls(
            id=data['id'],
            district_id=data['district_id'],
            target_month=data['target_month'],
            status=JobStatus(data['status']),
            start_date=from_iso(data['start_date']),
            max_end_date=from_iso(data['max_end_date']),
            end_date=from_iso(data.get('end_date')),
            finalized_date=from_iso(data.get('finalized_date')),
            triggered_by=TriggeredBy(data['triggered_by']),
            metadata=JobMetadata(
                created_at=from_iso(meta['created_at']),
                updated_at=from_iso(meta['updated_at']),
                triggered_by=TriggeredBy(meta['triggered_by']),
            ),
            config_overrides=data.get('config_overrides', {}),
            extension_days_total=data.get('extension_days_total', 0),
        )


__all__ = [
    'JobStatus',
    'TimelinePhase',
    'TriggeredBy',
    'TERMINAL_STATUSES',
    'MembershipStats',
    'ClubCounts',
    'EducationStats',
    'DistrictStatistics',
    'MembershipChange',
    'ClubCountChange',
    'DistinguishedChange',
    'DataChanges',
    'ReconciliationEntry',
    'TimelineStatus',
    'ReconciliationTimeline',
    'JobMetadata',
    'ReconciliationJob',
    'to_iso',
    'from_iso',
]
