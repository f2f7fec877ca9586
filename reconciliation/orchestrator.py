"""
Reconciliation orchestrator.

Drives the lifecycle of reconciliation jobs: start a monitoring window for a
(district, month), run change-detection cycles against it, extend it when
significant changes arrive close to the deadline, and finalize it once the
data has been quiet for long enough or the deadline has passed.

Every state-mutating operation holds the job's lock for the whole
read-modify-write, saves to the store first and then refreshes the cache.
Reads take no lock.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, TYPE_CHECKING

from pydantic import ValidationError

from reconciliation.closing_period import month_end_date, parse_month
from reconciliation.config_service import ConfigProvider, ConfigValidationResult
from reconciliation.detector import ChangeDetectionEngine, ChangeDetector
from reconciliation.errors import (
    ClosingPeriodError,
    ConfigValidationError,
    ExtensionLimitError,
    JobNotFoundError,
    ReconciliationError,
    StabilityPeriodNotMetError,
)
from reconciliation.locks import JobLockRegistry
from reconciliation.models import (
    DataChanges,
    DistrictStatistics,
    JobMetadata,
    JobStatus,
    ReconciliationEntry,
    ReconciliationJob,
    ReconciliationTimeline,
    TimelinePhase,
    TimelineStatus,
    TriggeredBy,
)
from shared.clock import Clock, SystemClock
from shared.log import create_logger
from validation.config import ReconciliationConfig, format_validation_error

if TYPE_CHECKING:
    from storage.cache import JobCache
    from storage.store import ReconciliationStore

_, log_debug, log_info, log_warn, log_error = create_logger("Orchestrator")

# Significant changes within this distance of max_end_date trigger auto-extension
AUTO_EXTENSION_WINDOW = timedelta(days=2)

# (district_id, month_end_date, current_stats, changes) -> True if snapshot cache updated
SnapshotUpdater = Callable[[str, str, DistrictStatistics, DataChanges], bool]


@dataclass
class ExtensionInfo:
    """Extension allowance of one job.

    Attributes:
        current_extension_days: Days already added to max_end_date
        max_extension_days: Effective max_extension_days for the job
        remaining_extension_days: Days automatic extension may still add
        can_extend: True if the job is active and has allowance left
        auto_extension_enabled: Effective auto_extension_enabled for the job
    """
    current_extension_days: int
    max_extension_days: int
    remaining_extension_days: int
    can_extend: bool
    auto_extension_enabled: bool


def calculate_days_stable(timeline: ReconciliationTimeline) -> int:
    """Number of consecutive non-significant entries, counted back from the newest."""
    days = 0
    for entry in reversed(timeline.entries):
        if entry.is_significant:
            break
        days += 1
    return days


def _days_between(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() // 86400))


class ReconciliationOrchestrator:
    """Coordinates reconciliation jobs for many districts.

    Args:
        store: Durable job/timeline storage
        config_service: Provider of the live ReconciliationConfig
        cache: Optional read cache in front of the store
        detector: Change detector (default: ChangeDetectionEngine)
        clock: Time source (default: SystemClock)
        locks: Per-job lock registry (default: a private registry)
        snapshot_updater: Optional hook called when a cycle sees changes;
                          its return value is recorded as the entry's
                          cache_updated flag

    Usage:
        orchestrator = ReconciliationOrchestrator(store, ConfigService(store), cache)
        job = orchestrator.start_reconciliation('42', '2026-01')
        status = orchestrator.process_reconciliation_cycle(job.id, current, cached)
        if status.phase is TimelinePhase.FINALIZING:
            orchestrator.finalize_reconciliation(job.id)
    """

    def __init__(
        self,
        store: "ReconciliationStore",
        config_service: ConfigProvider,
        cache: Optional["JobCache"] = None,
        detector: Optional[ChangeDetector] = None,
        clock: Optional[Clock] = None,
        locks: Optional[JobLockRegistry] = None,
        snapshot_updater: Optional[SnapshotUpdater] = None,
    ):
        self.store = store
        self.config_service = config_service
        self.cache = cache
        self.clock = clock or SystemClock()
        self.detector = detector or ChangeDetectionEngine(now=self.clock.now)
        self.locks = locks if locks is not None else JobLockRegistry()
        self.snapshot_updater = snapshot_updater

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_reconciliation(
        self,
        district_id: str,
        target_month: str,
        config_override: Optional[dict[str, Any]] = None,
        triggered_by: str = TriggeredBy.MANUAL.value,
    ) -> ReconciliationJob:
        """Open a monitoring window for (district_id, target_month).

        If an active job already exists for the pair it is returned as is.

        Args:
            district_id: District identifier
            target_month: Month being reconciled, 'YYYY-MM'
            config_override: Partial config applied on top of the live config
                             for this job only
            triggered_by: 'manual' or 'automatic'

        Returns:
            The new (or existing active) job

        Raises:
            ConfigValidationError: bad target_month, triggered_by or override
        """
        try:
            parse_month(target_month)
        except ClosingPeriodError as e:
            raise ConfigValidationError(f"Invalid target month: {e}") from e
        try:
            trigger = TriggeredBy(triggered_by)
        except ValueError as e:
            raise ConfigValidationError(f"Invalid triggered_by: {triggered_by!r}") from e

        overrides = dict(config_override or {})
        config = self._merge_config(overrides)

        with self.locks.hold(f"start:{district_id}:{target_month}"):
            existing = self._find_active_job(district_id, target_month)
            if existing is not None:
                log_info(f"Active reconciliation already exists for district {district_id} "
                         f"{target_month}: {existing.id}")
                return existing

            now = self.clock.now()
            job = ReconciliationJob(
                id=f"reconciliation-{district_id}-{target_month}-{uuid.uuid4().hex[:8]}",
                district_id=district_id,
                target_month=target_month,
                status=JobStatus.ACTIVE,
                start_date=now,
                max_end_date=now + timedelta(days=config.max_reconciliation_days),
                triggered_by=trigger,
                metadata=JobMetadata(created_at=now, updated_at=now, triggered_by=trigger),
                config_overrides=overrides,
            )
            timeline = ReconciliationTimeline(
                job_id=job.id,
                district_id=district_id,
                target_month=target_month,
            )
            timeline.status.next_check_date = now + timedelta(hours=config.check_frequency_hours)

            self._persist(job, timeline)
            log_info(f"Started reconciliation {job.id} ({trigger.value}), "
                     f"deadline {job.max_end_date.isoformat()}")
            return job

    def process_reconciliation_cycle(
        self,
        job_id: str,
        current_stats: DistrictStatistics,
        cached_stats: DistrictStatistics,
    ) -> TimelineStatus:
        """Run one detection cycle and record it on the job's timeline.

        Compares the statistics, appends an entry, auto-extends the deadline
        when a significant change lands within two days of it, and returns
        the recomputed status. A terminal job is left untouched and its
        stored status returned.

        Raises:
            JobNotFoundError: job_id does not exist
            ValueError: the statistics belong to different districts
        """
        with self.locks.hold(job_id):
            job, timeline = self._load(job_id)
            if job.is_terminal:
                log_warn(f"Skipping cycle for {job_id}: job is {job.status.value}")
                return timeline.status

            config = self._effective_config(job)
            now = self.clock.now()

            changes = self.detector.detect_changes(current_stats, cached_stats)
            significant = self.detector.is_significant_change(
                changes, config.significant_change_thresholds
            )
            cache_updated = self._update_snapshot(job, current_stats, changes)

            timeline.entries.append(ReconciliationEntry(
                date=now,
                source_data_date=changes.source_data_date,
                changes=changes,
                is_significant=significant,
                cache_updated=cache_updated,
                notes=ChangeDetectionEngine.summarize(changes) if changes.has_changes else None,
            ))
            job.metadata.updated_at = now

            extended = 0
            if significant and config.auto_extension_enabled:
                extended = self._auto_extend(job, config, now)

            status = self._calculate_status(job, timeline, config, now)
            if extended:
                status.message = (
                    f"Reconciliation extended by {extended} days due to significant changes "
                    f"(new deadline {job.max_end_date.date().isoformat()})"
                )
            timeline.status = status

            self._persist(job, timeline)
            log_debug(f"Cycle for {job_id}: changes={changes.has_changes}, "
                      f"significant={significant}, phase={status.phase.value}")
            return status

    def extend_reconciliation(self, job_id: str, days: int) -> ReconciliationJob:
        """Push max_end_date out by exactly ``days``.

        A terminal job or a non-positive ``days`` is a no-op.

        Raises:
            JobNotFoundError: job_id does not exist
            ExtensionLimitError: days exceeds the job's max_extension_days
        """
        with self.locks.hold(job_id):
            job, timeline = self._load(job_id)
            if job.is_terminal:
                log_debug(f"Not extending {job_id}: job is {job.status.value}")
                return job
            if days <= 0:
                log_debug(f"Not extending {job_id}: non-positive extension ({days})")
                return job

            config = self._effective_config(job)
            if days > config.max_extension_days:
                raise ExtensionLimitError(job_id, days, config.max_extension_days)

            self._apply_extension(job, days, self.clock.now())
            self._persist(job, timeline)
            log_info(f"Extended reconciliation {job_id} by {days} days "
                     f"(new deadline {job.max_end_date.isoformat()})")
            return job

    def finalize_reconciliation(self, job_id: str) -> ReconciliationJob:
        """Mark the job completed.

        Allowed once the trailing run of non-significant entries reaches
        stability_period_days, or unconditionally after max_end_date.
        Finalizing a terminal job is a no-op.

        Raises:
            JobNotFoundError: job_id does not exist
            StabilityPeriodNotMetError: neither condition holds (job unchanged)
        """
        with self.locks.hold(job_id):
            job, timeline = self._load(job_id)
            if job.is_terminal:
                log_debug(f"Not finalizing {job_id}: job is already {job.status.value}")
                return job

            config = self._effective_config(job)
            now = self.clock.now()
            days_stable = calculate_days_stable(timeline)
            stable = days_stable >= config.stability_period_days
            deadline_passed = now > job.max_end_date

            if not stable and not deadline_passed:
                raise StabilityPeriodNotMetError(job_id, days_stable, config.stability_period_days)

            job.status = JobStatus.COMPLETED
            job.end_date = now
            job.finalized_date = now
            job.metadata.updated_at = now
            timeline.status = TimelineStatus(
                phase=TimelinePhase.COMPLETED,
                days_active=_days_between(job.start_date, now),
                days_stable=days_stable,
                message=('Reconciliation completed - data stable'
                         if stable else 'Reconciliation completed - maximum period reached'),
            )

            self._persist(job, timeline)
            log_info(f"Finalized reconciliation {job_id} after {timeline.status.days_active} days "
                     f"({days_stable} stable)")
            return job

    def cancel_reconciliation(self, job_id: str) -> ReconciliationJob:
        """Stop an active job without finalizing it. No-op for terminal jobs.

        Raises:
            JobNotFoundError: job_id does not exist
        """
        return self._terminate(job_id, JobStatus.CANCELLED, 'Reconciliation cancelled')

    def fail_reconciliation(self, job_id: str, reason: str) -> ReconciliationJob:
        """Mark an active job failed (e.g. data could not be collected).

        Raises:
            JobNotFoundError: job_id does not exist
        """
        return self._terminate(job_id, JobStatus.FAILED, f"Reconciliation failed: {reason}")

    # =========================================================================
    # Reads
    # =========================================================================

    def get_job(self, job_id: str) -> Optional[ReconciliationJob]:
        job = self.cache.get_job(job_id) if self.cache is not None else None
        return job if job is not None else self.store.get_job(job_id)

    def get_timeline(self, job_id: str) -> Optional[ReconciliationTimeline]:
        timeline = self.cache.get_timeline(job_id) if self.cache is not None else None
        return timeline if timeline is not None else self.store.get_timeline(job_id)

    def get_job_status(self, job_id: str) -> TimelineStatus:
        """Status of a job as of now (recomputed for active jobs).

        Raises:
            JobNotFoundError: job_id does not exist
        """
        job, timeline = self._load(job_id)
        if job.is_terminal:
            return timeline.status
        return self._calculate_status(job, timeline, self._effective_config(job), self.clock.now())

    def list_jobs(
        self,
        district_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = None,
    ) -> list[ReconciliationJob]:
        """Jobs newest first, optionally filtered by district and status."""
        if district_id is not None:
            jobs = self.store.get_jobs_by_district(district_id)
        else:
            jobs = self.store.get_all_jobs()
        if status is not None:
            jobs = [job for job in jobs if job.status == JobStatus(status)]
        jobs = sorted(jobs, key=lambda job: job.metadata.created_at, reverse=True)
        if limit is not None and limit > 0:
            jobs = jobs[:limit]
        return jobs

    def get_extension_info(self, job_id: str) -> ExtensionInfo:
        """
        Raises:
            JobNotFoundError: job_id does not exist
        """
        job, _ = self._load(job_id)
        config = self._effective_config(job)
        remaining = max(0, config.max_extension_days - job.extension_days_total)
        return ExtensionInfo(
            current_extension_days=job.extension_days_total,
            max_extension_days=config.max_extension_days,
            remaining_extension_days=remaining,
            can_extend=not job.is_terminal and remaining > 0,
            auto_extension_enabled=config.auto_extension_enabled,
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_configuration(self) -> ReconciliationConfig:
        return self.config_service.get_config()

    def update_configuration(self, partial: dict[str, Any]) -> ReconciliationConfig:
        """Update the live config; applies to the next cycle of every job.

        Raises:
            ConfigValidationError: the merged config is invalid
        """
        return self.config_service.update_config(partial)

    def validate_configuration(self, partial: dict[str, Any]) -> ConfigValidationResult:
        """Check ``partial`` against the live config without applying it."""
        validate = getattr(self.config_service, 'validate', None)
        if validate is not None:
            return validate(partial)
        try:
            merged = self.config_service.get_config().merged(partial)
        except ValidationError as e:
            return ConfigValidationResult(is_valid=False, errors=[format_validation_error(e)])
        return ConfigValidationResult(is_valid=True, validated_config=merged)

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, job_id: str) -> tuple[ReconciliationJob, ReconciliationTimeline]:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        timeline = self.get_timeline(job_id)
        if timeline is None:
            raise ReconciliationError(f"Reconciliation timeline not found: {job_id}")
        return job, timeline

    def _persist(self, job: ReconciliationJob, timeline: ReconciliationTimeline) -> None:
        """Store first, then cache. A failed store write drops the cached copy.

        Job and timeline go to the store together so a failure never leaves
        one updated without the other.
        """
        try:
            self.store.save_job_and_timeline(job, timeline)
        except Exception:
            if self.cache is not None:
                self.cache.invalidate(job.id)
            raise
        if self.cache is not None:
            self.cache.set_job(job)
            self.cache.set_timeline(timeline)

    def _find_active_job(self, district_id: str, target_month: str) -> Optional[ReconciliationJob]:
        for job in self.store.get_jobs_by_district(district_id):
            if job.target_month == target_month and job.status == JobStatus.ACTIVE:
                return job
        return None

    def _merge_config(self, overrides: dict[str, Any]) -> ReconciliationConfig:
        base = self.config_service.get_config()
        if not overrides:
            return base
        try:
            return base.merged(overrides)
        except ValidationError as e:
            raise ConfigValidationError(
                f"Invalid configuration override: {format_validation_error(e)}"
            ) from e
        except (TypeError, AttributeError) as e:
            raise ConfigValidationError(f"Malformed configuration override: {e}") from e

    def _effective_config(self, job: ReconciliationJob) -> ReconciliationConfig:
        """Live config with the job's overrides applied."""
        base = self.config_service.get_config()
        if not job.config_overrides:
            return base
        try:
            return base.merged(job.config_overrides)
        except ValidationError as e:
            log_warn(f"Overrides of {job.id} no longer valid against live config, ignoring them: "
                     f"{format_validation_error(e)}")
            return base

    def _apply_extension(self, job: ReconciliationJob, days: int, now: datetime) -> None:
        job.max_end_date = job.max_end_date + timedelta(days=days)
        job.extension_days_total += days
        job.metadata.updated_at = now

    def _auto_extend(self, job: ReconciliationJob, config: ReconciliationConfig, now: datetime) -> int:
        """Extend a job whose deadline is near. Returns the days added (0 if none)."""
        if job.max_end_date - now > AUTO_EXTENSION_WINDOW:
            return 0
        remaining = config.max_extension_days - job.extension_days_total
        days = min(config.auto_extension_step, remaining)
        if days <= 0:
            log_info(f"Significant change near deadline of {job.id}, "
                     f"but extension allowance is used up ({job.extension_days_total} days)")
            return 0
        self._apply_extension(job, days, now)
        log_info(f"Auto-extended reconciliation {job.id} by {days} days "
                 f"(new deadline {job.max_end_date.isoformat()})")
        return days

    def _update_snapshot(
        self,
        job: ReconciliationJob,
        current_stats: DistrictStatistics,
        changes: DataChanges,
    ) -> bool:
        if self.snapshot_updater is None or not changes.has_changes:
            return False
        try:
            return bool(self.snapshot_updater(
                job.district_id, month_end_date(job.target_month), current_stats, changes
            ))
        except Exception as e:
            # Non-fatal: the cycle is still recorded, with cache_updated=False
            log_error(f"Snapshot update failed for {job.id}: {e}")
            return False

    def _calculate_status(
        self,
        job: ReconciliationJob,
        timeline: ReconciliationTimeline,
        config: ReconciliationConfig,
        now: datetime,
    ) -> TimelineStatus:
        days_active = _days_between(job.start_date, now)
        days_stable = calculate_days_stable(timeline)

        if now > job.max_end_date:
            return TimelineStatus(
                phase=TimelinePhase.FINALIZING,
                days_active=days_active,
                days_stable=days_stable,
                message='Maximum reconciliation period reached - ready to finalize',
            )
        if days_stable >= config.stability_period_days:
            return TimelineStatus(
                phase=TimelinePhase.FINALIZING,
                days_active=days_active,
                days_stable=days_stable,
                message=f"Data stable for {days_stable} days - ready to finalize",
            )

        next_check = now + timedelta(hours=config.check_frequency_hours)
        if days_stable > 0:
            return TimelineStatus(
                phase=TimelinePhase.STABILIZING,
                days_active=days_active,
                days_stable=days_stable,
                message=f"Data stabilizing - {days_stable}/{config.stability_period_days} stable days",
                next_check_date=next_check,
            )
        return TimelineStatus(
            phase=TimelinePhase.MONITORING,
            days_active=days_active,
            days_stable=days_stable,
            message='Monitoring for changes',
            next_check_date=next_check,
        )

    def _terminate(self, job_id: str, status: JobStatus, message: str) -> ReconciliationJob:
        with self.locks.hold(job_id):
            job, timeline = self._load(job_id)
            if job.is_terminal:
                log_debug(f"Not marking {job_id} {status.value}: job is already {job.status.value}")
                return job

            now = self.clock.now()
            job.status = status
            job.end_date = now
            job.metadata.updated_at = now
            timeline.status = TimelineStatus(
                phase=TimelinePhase.FAILED,
                days_active=_days_between(job.start_date, now),
                days_stable=calculate_days_stable(timeline),
                message=message,
            )
            self._persist(job, timeline)
            log_info(f"Reconciliation {job_id} {status.value}: {message}")
            return job


__all__ = [
    'ReconciliationOrchestrator',
    'ExtensionInfo',
    'calculate_days_stable',
    'AUTO_EXTENSION_WINDOW',
]
