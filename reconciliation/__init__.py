"""Reconciliation package: month-end change monitoring and finalization."""
from reconciliation.closing_period import ClosingPeriodDetector, ClosingPeriodResult
from reconciliation.config_service import ConfigService, ConfigValidationResult
from reconciliation.detector import ChangeDetectionEngine
from reconciliation.errors import (
    ReconciliationError,
    JobNotFoundError,
    InvalidTransitionError,
    StabilityPeriodNotMetError,
    ConfigValidationError,
    ExtensionLimitError,
    ClosingPeriodError,
)
from reconciliation.locks import JobLockRegistry
from reconciliation.models import (
    DistrictStatistics,
    DataChanges,
    JobStatus,
    ReconciliationJob,
    ReconciliationTimeline,
    TimelinePhase,
    TimelineStatus,
)
from reconciliation.orchestrator import ReconciliationOrchestrator, ExtensionInfo
from reconciliation.scheduler import ReconciliationScheduler, ScheduledReconciliation, SchedulerState

__all__ = [
    'ClosingPeriodDetector',
    'ClosingPeriodResult',
    'ConfigService',
    'ConfigValidationResult',
    'ChangeDetectionEngine',
    'ReconciliationError',
    'JobNotFoundError',
    'InvalidTransitionError',
    'StabilityPeriodNotMetError',
    'ConfigValidationError',
    'ExtensionLimitError',
    'ClosingPeriodError',
    'JobLockRegistry',
    'DistrictStatistics',
    'DataChanges',
    'JobStatus',
    'ReconciliationJob',
    'ReconciliationTimeline',
    'TimelinePhase',
    'TimelineStatus',
    'ReconciliationOrchestrator',
    'ExtensionInfo',
    'ReconciliationScheduler',
    'ScheduledReconciliation',
    'SchedulerState',
]
