"""
Configuration validation for DistrictRecon.

Provides pydantic v2 models for validating reconciliation configuration
with fail-fast behavior and sensible defaults.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator, ValidationError
from typing import Any, Optional
import logging

log = logging.getLogger('DistrictRecon.config')


class SignificantChangeThresholds(BaseModel):
    """
    Thresholds above which a difference between two snapshots is significant.

    Attributes:
        membership_percent: Absolute membership percent change (default: 1.0)
        club_count_absolute: Absolute change in total club count (default: 1)
        distinguished_percent: Percentage-point change in distinguished clubs (default: 2.0)
    """

    model_config = ConfigDict(frozen=True, extra='forbid')

    membership_percent: float = Field(default=1.0, gt=0)
    club_count_absolute: int = Field(default=1, gt=0)
    distinguished_percent: float = Field(default=2.0, gt=0)


class ReconciliationConfig(BaseModel):
    """
    Reconciliation configuration with validation.

    Optional tunables (all have defaults):
        max_reconciliation_days: Hard cap on job age (default: 15, range: 1-365)
        stability_period_days: Consecutive quiet days needed to finalize (default: 3)
        check_frequency_hours: Hours between cycles (default: 24, range: 1-168)
        significant_change_thresholds: SignificantChangeThresholds
        auto_extension_enabled: Extend near the deadline on significant change (default: True)
        max_extension_days: Upper bound for a single extension (default: 5)
        auto_extension_days: Days requested by one automatic extension (default: 3)

    Invariant: stability_period_days <= max_reconciliation_days.
    """

    model_config = ConfigDict(frozen=True, extra='forbid')

    max_reconciliation_days: int = Field(default=15, ge=1, le=365)
    stability_period_days: int = Field(default=3, ge=1, le=365)
    check_frequency_hours: int = Field(default=24, ge=1, le=168)
    significant_change_thresholds: SignificantChangeThresholds = Field(
        default_factory=SignificantChangeThresholds
    )
    auto_extension_enabled: bool = True
    max_extension_days: int = Field(default=5, ge=1, le=60)
    auto_extension_days: int = Field(default=3, ge=1, le=60)

    @field_validator('auto_extension_enabled', mode='before')
    @classmethod
    def validate_boolean(cls, v):
        """Ensure boolean fields are actual booleans, not truthy strings."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            lower = v.lower()
            if lower in ('true', '1', 'yes'):
                return True
            if lower in ('false', '0', 'no'):
                return False
            raise ValueError(f"Invalid boolean value: {v}")
        raise ValueError(f"Expected boolean, got {type(v).__name__}")

    @model_validator(mode='after')
    def check_stability_within_window(self):
        if self.stability_period_days > self.max_reconciliation_days:
            raise ValueError(
                "stability_period_days cannot be greater than max_reconciliation_days "
                f"({self.stability_period_days} > {self.max_reconciliation_days})"
            )
        return self

    @property
    def auto_extension_step(self) -> int:
        """Days applied by one automatic extension (never above max_extension_days)."""
        return min(self.auto_extension_days, self.max_extension_days)

    def merged(self, partial: dict[str, Any]) -> "ReconciliationConfig":
        """Return a new validated config with ``partial`` applied on top.

        Nested ``significant_change_thresholds`` may be given partially.

        Raises:
            ValidationError: if the merged result is invalid
        """
        data = self.model_dump()
        for key, value in partial.items():
            if key == 'significant_change_thresholds':
                if isinstance(value, SignificantChangeThresholds):
                    value = value.model_dump()
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return ReconciliationConfig(**data)

    def log_config(self) -> None:
        """Log the active configuration."""
        t = self.significant_change_thresholds
        log.info(
            f"Reconciliation config: max_days={self.max_reconciliation_days}, "
            f"stability_days={self.stability_period_days}, "
            f"check_every={self.check_frequency_hours}h, "
            f"thresholds=(membership {t.membership_percent}%, "
            f"clubs {t.club_count_absolute}, "
            f"distinguished {t.distinguished_percent}%), "
            f"auto_extension={self.auto_extension_enabled}, "
            f"max_extension_days={self.max_extension_days}"
        )
        if not self.auto_extension_enabled:
            log.info("Auto-extension disabled; jobs will finalize at their original deadline")


def validate_config(config_dict: dict) -> tuple[Optional[ReconciliationConfig], Optional[str]]:
    """
    Validate configuration dictionary and return ReconciliationConfig or error message.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Tuple of (ReconciliationConfig, None) on success,
        or (None, error_message) on validation failure
    """
    try:
        config = ReconciliationConfig(**config_dict)
        return (config, None)
    except ValidationError as e:
        return (None, format_validation_error(e))


def format_validation_error(e: ValidationError) -> str:
    """Flatten a pydantic ValidationError into 'field: message; ...'."""
    errors = []
    for error in e.errors():
        field = '.'.join(str(loc) for loc in error['loc'])
        msg = error['msg']
        errors.append(f"{field}: {msg}" if field else msg)
    return '; '.join(errors)


# Re-export ValidationError for external use
__all__ = [
    'ReconciliationConfig',
    'SignificantChangeThresholds',
    'validate_config',
    'format_validation_error',
    'ValidationError',
]
