"""
Tests for ReconciliationConfig Pydantic model and validate_config helper.

Tests validation rules for range constraints, the stability/window
invariant, boolean coercion, default values, partial merges and error
formatting.
"""

import logging

import pytest
from pydantic import ValidationError

from validation.config import (
    ReconciliationConfig,
    SignificantChangeThresholds,
    format_validation_error,
    validate_config,
)


class TestReconciliationConfig:
    """Tests for ReconciliationConfig Pydantic model."""

    # =========================================================================
    # Defaults
    # =========================================================================

    def test_defaults(self):
        config = ReconciliationConfig()

        assert config.max_reconciliation_days == 15
        assert config.stability_period_days == 3
        assert config.check_frequency_hours == 24
        assert config.auto_extension_enabled is True
        assert config.max_extension_days == 5
        assert config.auto_extension_days == 3

    def test_default_thresholds(self):
        thresholds = ReconciliationConfig().significant_change_thresholds

        assert thresholds.membership_percent == 1.0
        assert thresholds.club_count_absolute == 1
        assert thresholds.distinguished_percent == 2.0

    # =========================================================================
    # Range validation
    # =========================================================================

    @pytest.mark.parametrize("field,value", [
        ("max_reconciliation_days", 0),
        ("max_reconciliation_days", 366),
        ("stability_period_days", 0),
        ("check_frequency_hours", 0),
        ("check_frequency_hours", 169),
        ("max_extension_days", 0),
        ("auto_extension_days", 0),
    ])
    def test_out_of_range_rejected(self, field, value):
        config, error = validate_config({field: value})
        assert config is None
        assert field in error

    @pytest.mark.parametrize("field", ["membership_percent", "club_count_absolute", "distinguished_percent"])
    def test_thresholds_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            SignificantChangeThresholds(**{field: 0})

    def test_stability_cannot_exceed_window(self):
        config, error = validate_config({'max_reconciliation_days': 5, 'stability_period_days': 6})
        assert config is None
        assert "stability_period_days cannot be greater" in error

    def test_stability_equal_to_window_allowed(self):
        config, error = validate_config({'max_reconciliation_days': 5, 'stability_period_days': 5})
        assert error is None
        assert config.stability_period_days == 5

    def test_unknown_field_rejected(self):
        config, error = validate_config({'max_days': 10})
        assert config is None
        assert 'max_days' in error

    # =========================================================================
    # Boolean coercion
    # =========================================================================

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("Yes", True), ("1", True),
        ("false", False), ("NO", False), ("0", False),
        (True, True), (False, False),
    ])
    def test_auto_extension_boolean_coercion(self, value, expected):
        assert ReconciliationConfig(auto_extension_enabled=value).auto_extension_enabled is expected

    @pytest.mark.parametrize("value", ["maybe", 1, None])
    def test_auto_extension_rejects_non_booleans(self, value):
        with pytest.raises(ValidationError):
            ReconciliationConfig(auto_extension_enabled=value)

    # =========================================================================
    # Merging
    # =========================================================================

    def test_merged_applies_partial(self):
        merged = ReconciliationConfig().merged({'stability_period_days': 2})

        assert merged.stability_period_days == 2
        assert merged.max_reconciliation_days == 15

    def test_merged_nested_thresholds_partially(self):
        merged = ReconciliationConfig().merged(
            {'significant_change_thresholds': {'membership_percent': 4.0}}
        )

        assert merged.significant_change_thresholds.membership_percent == 4.0
        assert merged.significant_change_thresholds.club_count_absolute == 1

    def test_merged_accepts_threshold_model(self):
        merged = ReconciliationConfig().merged(
            {'significant_change_thresholds': SignificantChangeThresholds(club_count_absolute=3)}
        )
        assert merged.significant_change_thresholds.club_count_absolute == 3

    def test_merged_leaves_original_untouched(self):
        original = ReconciliationConfig()
        original.merged({'max_extension_days': 9})
        assert original.max_extension_days == 5

    def test_merged_invalid_raises(self):
        with pytest.raises(ValidationError):
            ReconciliationConfig().merged({'stability_period_days': 30})

    def test_config_is_frozen(self):
        with pytest.raises(ValidationError):
            ReconciliationConfig().max_extension_days = 7

    # =========================================================================
    # Derived values / logging
    # =========================================================================

    def test_auto_extension_step_capped(self):
        assert ReconciliationConfig().auto_extension_step == 3
        assert ReconciliationConfig(max_extension_days=2).auto_extension_step == 2

    def test_log_config(self, caplog):
        with caplog.at_level(logging.INFO, logger='DistrictRecon'):
            ReconciliationConfig(auto_extension_enabled=False).log_config()

        assert "max_days=15" in caplog.text
        assert "Auto-extension disabled" in caplog.text


def test_format_validation_error_joins_fields():
    with pytest.raises(ValidationError) as exc_info:
        ReconciliationConfig(max_reconciliation_days=0, check_frequency_hours=0)

    message = format_validation_error(exc_info.value)
    assert "max_reconciliation_days" in message
    assert "check_frequency_hours" in message
    assert "; " in message
