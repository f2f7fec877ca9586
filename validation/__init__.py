"""
Validation module for DistrictRecon.

Provides reconciliation configuration validation.
"""

from validation.config import (
    ReconciliationConfig,
    SignificantChangeThresholds,
    validate_config,
    format_validation_error,
)

__all__ = [
    'ReconciliationConfig',
    'SignificantChangeThresholds',
    'validate_config',
    'format_validation_error',
]
