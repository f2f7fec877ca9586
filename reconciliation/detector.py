"""Change detection between cached and freshly collected district statistics."""
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from reconciliation.models import (
    ClubCountChange,
    DataChanges,
    DistinguishedChange,
    DistrictStatistics,
    MembershipChange,
)
from validation.config import SignificantChangeThresholds

# Tracked fields, in the order they are reported in changed_fields
MEMBERSHIP = 'membership'
CLUB_COUNT = 'club_count'
DISTINGUISHED = 'distinguished'
ACTIVE_CLUBS = 'active_clubs'
EDUCATION_AWARDS = 'education_awards'

TRACKED_FIELDS = (MEMBERSHIP, CLUB_COUNT, DISTINGUISHED, ACTIVE_CLUBS, EDUCATION_AWARDS)


def percent_change(previous: float, current: float) -> float:
    """Relative change in percent.

    A move away from zero counts as 100%; zero to zero is 0%.
    """
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return (current - previous) / previous * 100


class ChangeDetector(Protocol):
    """Interface the orchestrator needs from a change detector."""

    def detect_changes(self, current: DistrictStatistics, cached: DistrictStatistics) -> DataChanges:
        ...

    def is_significant_change(self, changes: DataChanges, thresholds: SignificantChangeThresholds) -> bool:
        ...


class ChangeDetectionEngine:
    """Compares two statistics snapshots of the same district.

    The engine operates on pre-fetched data (no I/O) and produces a frozen
    DataChanges record. Significance is a separate decision so thresholds can
    come from the live configuration at call time.

    Args:
        now: Optional callable returning the comparison timestamp (for tests)
    """

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self._now = now or (lambda: datetime.now(timezone.utc))

    def detect_changes(self, current: DistrictStatistics, cached: DistrictStatistics) -> DataChanges:
        """Compute per-field differences.

        Args:
            current: Freshly collected statistics
            cached: Last cached statistics for the same district

        Returns:
            DataChanges with has_changes=False only if no tracked field differs

        Raises:
            ValueError: if the snapshots belong to different districts
        """
        if current.district_id != cached.district_id:
            raise ValueError(
                f"Cannot compare statistics of different districts: "
                f"{cached.district_id} vs {current.district_id}"
            )

        changed = []
        membership_change = None
        club_count_change = None
        distinguished_change = None

        if current.membership.total != cached.membership.total:
            changed.append(MEMBERSHIP)
            membership_change = MembershipChange(
                previous=cached.membership.total,
                current=current.membership.total,
                percent_change=percent_change(cached.membership.total, current.membership.total),
            )

        if current.clubs.total != cached.clubs.total:
            changed.append(CLUB_COUNT)
            club_count_change = ClubCountChange(
                previous=cached.clubs.total,
                current=current.clubs.total,
                absolute_change=current.clubs.total - cached.clubs.total,
            )

        # Same count over a different club total still moves the percentage
        if (current.clubs.distinguished != cached.clubs.distinguished
                or current.distinguished_percent != cached.distinguished_percent):
            changed.append(DISTINGUISHED)
            distinguished_change = DistinguishedChange(
                previous=cached.clubs.distinguished,
                current=current.clubs.distinguished,
                previous_percent=cached.distinguished_percent,
                current_percent=current.distinguished_percent,
                percent_change=current.distinguished_percent - cached.distinguished_percent,
            )

        if current.clubs.active != cached.clubs.active:
            changed.append(ACTIVE_CLUBS)

        if current.education.total_awards != cached.education.total_awards:
            changed.append(EDUCATION_AWARDS)

        return DataChanges(
            has_changes=bool(changed),
            changed_fields=tuple(changed),
            timestamp=self._now(),
            source_data_date=current.as_of_date,
            membership_change=membership_change,
            club_count_change=club_count_change,
            distinguished_change=distinguished_change,
        )

    def is_significant_change(self, changes: DataChanges, thresholds: SignificantChangeThresholds) -> bool:
        """Check a change record against thresholds.

        Significant when ANY of:
        - |membership percent change| >= membership_percent
        - |club count delta| >= club_count_absolute
        - |distinguished percentage-point delta| >= distinguished_percent

        Changes to untracked-for-significance fields (active clubs, education
        awards) are recorded but never significant on their own.
        """
        if not changes.has_changes:
            return False

        if changes.membership_change is not None:
            if abs(changes.membership_change.percent_change) >= thresholds.membership_percent:
                return True

        if changes.club_count_change is not None:
            if abs(changes.club_count_change.absolute_change) >= thresholds.club_count_absolute:
                return True

        if changes.distinguished_change is not None:
            if abs(changes.distinguished_change.percent_change) >= thresholds.distinguished_percent:
                return True

        return False

    @staticmethod
    def summarize(changes: DataChanges) -> str:
        """Short human-readable description of a change record."""
        if not changes.has_changes:
            return 'No changes'
        parts = []
        if changes.membership_change is not None:
            m = changes.membership_change
            parts.append(f"membership {m.previous} -> {m.current} ({m.percent_change:+.2f}%)")
        if changes.club_count_change is not None:
            c = changes.club_count_change
            parts.append(f"clubs {c.previous} -> {c.current} ({c.absolute_change:+d})")
        if changes.distinguished_change is not None:
            d = changes.distinguished_change
            parts.append(f"distinguished {d.previous} -> {d.current} ({d.percent_change:+.2f} pts)")
        other = [f for f in changes.changed_fields if f in (ACTIVE_CLUBS, EDUCATION_AWARDS)]
        if other:
            parts.append(f"also changed: {', '.join(other)}")
        return '; '.join(parts)


__all__ = [
    'ChangeDetectionEngine',
    'ChangeDetector',
    'percent_change',
    'TRACKED_FIELDS',
]
