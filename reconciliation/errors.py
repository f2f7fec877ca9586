"""
Exception hierarchy for the reconciliation subsystem.

- JobNotFoundError: referenced job id is absent from the store. Always raised.
- InvalidTransitionError: the job cannot move to the requested state yet.
  The job is left unchanged so the caller can retry later.
- ConfigValidationError / ExtensionLimitError / ClosingPeriodError:
  malformed input, subclasses of ValueError.

Operations on a terminal job are NOT errors; they return without raising.
Store I/O errors (sqlite3.Error, OSError) are not wrapped.
"""


class ReconciliationError(Exception):
    """Base class for reconciliation errors."""
    pass


class JobNotFoundError(ReconciliationError):
    """Job id does not exist in the store."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Reconciliation job not found: {job_id}")


class InvalidTransitionError(ReconciliationError):
    """Requested state change is not allowed for the job right now."""
    pass


class StabilityPeriodNotMetError(InvalidTransitionError):
    """Finalize requested before enough stable days and before the deadline."""

    def __init__(self, job_id: str, days_stable: int, required_days: int):
        self.job_id = job_id
        self.days_stable = days_stable
        self.required_days = required_days
        super().__init__(
            f"Stability period not met - cannot finalize reconciliation {job_id} "
            f"({days_stable}/{required_days} stable days)"
        )


class ConfigValidationError(ReconciliationError, ValueError):
    """Configuration or configuration override failed validation."""
    pass


class ExtensionLimitError(ReconciliationError, ValueError):
    """Manual extension asked for more days than max_extension_days allows."""

    def __init__(self, job_id: str, requested_days: int, max_extension_days: int):
        self.job_id = job_id
        self.requested_days = requested_days
        self.max_extension_days = max_extension_days
        super().__init__(
            f"Cannot extend reconciliation {job_id} by {requested_days} days "
            f"(maximum per extension is {max_extension_days})"
        )


class ClosingPeriodError(ReconciliationError, ValueError):
    """Collection date or data month could not be interpreted."""
    pass


__all__ = [
    'ReconciliationError',
    'JobNotFoundError',
    'InvalidTransitionError',
    'StabilityPeriodNotMetError',
    'ConfigValidationError',
    'ExtensionLimitError',
    'ClosingPeriodError',
]
