"""
Automatic scheduling of month-end reconciliation.

During the first days of a month the previous month's figures are still
being revised, so the scheduler opens a reconciliation job per district for
that month. It is not a timer or a thread: callers invoke run_if_due() (or
auto_schedule_for_month_transition() directly) from whatever loop they
already have, and the scheduler decides from persisted state in
scheduler_state.json whether anything should happen.
"""

import json
import os
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional, TYPE_CHECKING

from reconciliation.closing_period import last_day_of_month, parse_month, previous_month
from reconciliation.errors import ClosingPeriodError, ConfigValidationError
from reconciliation.models import TriggeredBy
from shared.clock import Clock, SystemClock
from shared.log import create_logger

if TYPE_CHECKING:
    from reconciliation.orchestrator import ReconciliationOrchestrator
    from storage.store import ReconciliationStore

_, log_debug, log_info, log_warn, log_error = create_logger("Scheduler")

# Month transitions are only acted on up to this day of the month
MONTH_TRANSITION_CUTOFF_DAY = 5

# Interval to seconds mapping
INTERVAL_SECONDS = {
    'never': 0,
    'hourly': 3600,
    'daily': 86400,
    'weekly': 604800,
}


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    INITIATED = "initiated"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ScheduledReconciliation:
    """One (district, month) the scheduler has dealt with.

    Attributes:
        district_id: District identifier
        target_month: Month to reconcile, 'YYYY-MM'
        scheduled_for: When the job should be started
        status: pending, initiated, failed or skipped
        attempts: Start attempts made so far
        last_attempt: Time of the latest attempt
        job_id: Job started for this entry, once initiated
        error: Last failure message
    """
    district_id: str
    target_month: str
    scheduled_for: datetime
    status: ScheduleStatus = ScheduleStatus.PENDING
    attempts: int = 0
    last_attempt: Optional[datetime] = None
    job_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SchedulerState:
    """Persisted state for reconciliation scheduling."""
    last_run_time: float = 0.0          # clock timestamp of last run
    last_target_month: str = ""         # month targeted by last run
    last_started: int = 0               # jobs started
    last_skipped: int = 0               # districts that already had a job
    last_failed: int = 0                # districts whose start raised
    run_count: int = 0                  # total runs


class ReconciliationScheduler:
    """Starts reconciliation jobs for the closing month of every district.

    Duplicate prevention relies on the store: a district that already has a
    job for the target month (in any status) is skipped. Concurrent calls in
    one process are serialized; separate processes are not coordinated.

    Args:
        orchestrator: Orchestrator used to start jobs
        store: Store consulted for existing jobs and cleanup
        clock: Time source (default: SystemClock)
        data_dir: Directory for scheduler_state.json (None: state kept in memory)
        interval: run_if_due cadence, one of INTERVAL_SECONDS (default: 'daily')
    """

    STATE_FILE = 'scheduler_state.json'

    def __init__(
        self,
        orchestrator: "ReconciliationOrchestrator",
        store: "ReconciliationStore",
        clock: Optional[Clock] = None,
        data_dir: Optional[str] = None,
        interval: str = 'daily',
    ):
        if interval not in INTERVAL_SECONDS:
            raise ConfigValidationError(
                f"Unknown scheduler interval {interval!r}, expected one of {sorted(INTERVAL_SECONDS)}"
            )
        self.orchestrator = orchestrator
        self.store = store
        self.clock = clock or SystemClock()
        self.interval = interval
        self.data_dir = data_dir
        self.state_path = os.path.join(data_dir, self.STATE_FILE) if data_dir else None
        self._memory_state = SchedulerState()
        self._lock = threading.Lock()
        self._scheduled: dict[tuple[str, str], ScheduledReconciliation] = {}

    # =========================================================================
    # Persisted state
    # =========================================================================

    def load_state(self) -> SchedulerState:
        """Load scheduler state from disk."""
        if self.state_path is None:
            return SchedulerState(**asdict(self._memory_state))
        try:
            if os.path.exists(self.state_path):
                with open(self.state_path, 'r') as f:
                    data = json.load(f)
                return SchedulerState(**data)
        except (json.JSONDecodeError, TypeError, KeyError) as e:
            log_warn(f"Failed to load scheduler state, using defaults: {e}")
        return SchedulerState()

    def save_state(self, state: SchedulerState) -> None:
        """Save scheduler state to disk atomically."""
        if self.state_path is None:
            self._memory_state = SchedulerState(**asdict(state))
            return
        os.makedirs(self.data_dir, exist_ok=True)
        tmp_path = self.state_path + '.tmp'
        try:
            with open(tmp_path, 'w') as f:
                json.dump(asdict(state), f, indent=2)
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            log_warn(f"Failed to save scheduler state: {e}")

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Check if a scheduling run is due based on interval and last run time.

        Args:
            now: Current time (default: clock.now()). For testing.
        """
        interval_secs = INTERVAL_SECONDS[self.interval]
        if interval_secs == 0:
            return False
        if now is None:
            now = self.clock.now()
        state = self.load_state()
        return now.timestamp() - state.last_run_time >= interval_secs

    def record_run(self, target_month: str, started: int, skipped: int, failed: int) -> None:
        """Record a completed scheduling run."""
        state = self.load_state()
        state.last_run_time = self.clock.now().timestamp()
        state.last_target_month = target_month
        state.last_started = started
        state.last_skipped = skipped
        state.last_failed = failed
        state.run_count += 1
        self.save_state(state)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def auto_schedule_for_month_transition(self, district_ids: Iterable[str]) -> int:
        """Start jobs for the previous month during the first days of a month.

        Does nothing after MONTH_TRANSITION_CUTOFF_DAY. Repeated ids are
        handled once; districts that already have a job for the month are
        skipped. A failure for one district is logged and recorded, and the
        remaining districts are still processed.

        Returns:
            Number of jobs started
        """
        now = self.clock.now()
        if now.day > MONTH_TRANSITION_CUTOFF_DAY:
            log_debug(f"Day {now.day} is past the month transition window "
                      f"(day {MONTH_TRANSITION_CUTOFF_DAY}), nothing to schedule")
            return 0

        target_month = previous_month(now.date())
        started = skipped = failed = 0

        with self._lock:
            # dict.fromkeys keeps first-seen order
            for district_id in dict.fromkeys(district_ids):
                entry = self._entry_for(district_id, target_month, now)
                outcome = self._start(entry, now)
                if outcome is ScheduleStatus.INITIATED:
                    started += 1
                elif outcome is ScheduleStatus.SKIPPED:
                    skipped += 1
                else:
                    failed += 1

        self.record_run(target_month, started, skipped, failed)
        log_info(f"Month transition scheduling for {target_month}: "
                 f"{started} started, {skipped} skipped, {failed} failed")
        return started

    def schedule_month_end_reconciliation(
        self,
        district_id: str,
        target_month: str,
        scheduled_for: Optional[datetime] = None,
    ) -> ScheduledReconciliation:
        """Schedule reconciliation of one (district, month).

        ``scheduled_for`` defaults to the first day after the month ends. An
        entry that is already due is started immediately; otherwise it stays
        pending until run_pending() reaches it.

        Raises:
            ConfigValidationError: target_month is not 'YYYY-MM'
        """
        try:
            year, month = parse_month(target_month)
        except ClosingPeriodError as e:
            raise ConfigValidationError(f"Invalid target month: {e}") from e

        if scheduled_for is None:
            scheduled_for = datetime(year, month, last_day_of_month(year, month),
                                     tzinfo=timezone.utc) + timedelta(days=1)
        elif scheduled_for.tzinfo is None:
            scheduled_for = scheduled_for.replace(tzinfo=timezone.utc)

        now = self.clock.now()
        with self._lock:
            entry = self._entry_for(district_id, target_month, scheduled_for)
            if entry.status is ScheduleStatus.PENDING:
                entry.scheduled_for = scheduled_for
                if scheduled_for <= now:
                    self._start(entry, now)
                else:
                    log_info(f"Scheduled reconciliation of district {district_id} {target_month} "
                             f"for {scheduled_for.isoformat()}")
        return entry

    def run_pending(self) -> int:
        """Start pending entries whose time has come. Returns the number started."""
        now = self.clock.now()
        started = 0
        with self._lock:
            for entry in list(self._scheduled.values()):
                if entry.status is ScheduleStatus.PENDING and entry.scheduled_for <= now:
                    if self._start(entry, now) is ScheduleStatus.INITIATED:
                        started += 1
        return started

    def run_if_due(self, district_ids: Iterable[str]) -> int:
        """Run scheduling if the interval has elapsed. Returns jobs started."""
        if not self.is_due():
            log_debug("Scheduler not due yet")
            return 0
        started = self.run_pending()
        now = self.clock.now()
        if now.day <= MONTH_TRANSITION_CUTOFF_DAY:
            started += self.auto_schedule_for_month_transition(district_ids)
        else:
            self.record_run(previous_month(now.date()), started, 0, 0)
        return started

    def get_scheduled_reconciliations(self) -> list[ScheduledReconciliation]:
        """All tracked entries, oldest scheduled first."""
        with self._lock:
            entries = list(self._scheduled.values())
        return sorted(entries, key=lambda e: (e.scheduled_for, e.district_id))

    def cleanup(self, max_age_days: int = 90) -> int:
        """Delete finished jobs older than ``max_age_days`` and forget old entries.

        Returns:
            Number of jobs deleted from the store
        """
        now = self.clock.now()
        deleted = self.store.cleanup_old_jobs(max_age_days, now=now)
        if deleted and self.orchestrator.cache is not None:
            self.orchestrator.cache.clear()

        cutoff = now - timedelta(days=max_age_days)
        with self._lock:
            stale = [key for key, entry in self._scheduled.items()
                     if entry.status is not ScheduleStatus.PENDING and entry.scheduled_for < cutoff]
            for key in stale:
                del self._scheduled[key]
        if deleted or stale:
            log_info(f"Scheduler cleanup: {deleted} jobs deleted, {len(stale)} entries forgotten")
        return deleted

    # =========================================================================
    # Internals
    # =========================================================================

    def _entry_for(self, district_id: str, target_month: str, scheduled_for: datetime) -> ScheduledReconciliation:
        key = (district_id, target_month)
        entry = self._scheduled.get(key)
        if entry is None:
            entry = ScheduledReconciliation(
                district_id=district_id,
                target_month=target_month,
                scheduled_for=scheduled_for,
            )
            self._scheduled[key] = entry
        return entry

    def _has_job(self, district_id: str, target_month: str) -> bool:
        return any(job.target_month == target_month
                   for job in self.store.get_jobs_by_district(district_id))

    def _start(self, entry: ScheduledReconciliation, now: datetime) -> ScheduleStatus:
        """Start a job for ``entry`` unless one exists. Caller holds self._lock."""
        if entry.status is ScheduleStatus.INITIATED or self._has_job(entry.district_id, entry.target_month):
            if entry.status is not ScheduleStatus.INITIATED:
                entry.status = ScheduleStatus.SKIPPED
            log_debug(f"Reconciliation for district {entry.district_id} {entry.target_month} "
                      f"already exists, skipping")
            return ScheduleStatus.SKIPPED

        entry.attempts += 1
        entry.last_attempt = now
        try:
            job = self.orchestrator.start_reconciliation(
                entry.district_id,
                entry.target_month,
                triggered_by=TriggeredBy.AUTOMATIC.value,
            )
        except Exception as e:
            entry.status = ScheduleStatus.FAILED
            entry.error = str(e)
            log_error(f"Failed to start reconciliation for district {entry.district_id} "
                      f"{entry.target_month}: {e}")
            return ScheduleStatus.FAILED

        entry.status = ScheduleStatus.INITIATED
        entry.job_id = job.id
        entry.error = None
        log_info(f"Started automatic reconciliation {job.id}")
        return ScheduleStatus.INITIATED


__all__ = [
    'ReconciliationScheduler',
    'ScheduledReconciliation',
    'ScheduleStatus',
    'SchedulerState',
    'MONTH_TRANSITION_CUTOFF_DAY',
    'INTERVAL_SECONDS',
]
