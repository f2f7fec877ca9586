"""Tests for the runtime configuration provider."""

import pytest

from reconciliation.config_service import ConfigService, configuration_warnings
from reconciliation.errors import ConfigValidationError
from validation.config import ReconciliationConfig


class TestConfigService:

    def test_defaults_without_store(self):
        service = ConfigService()
        assert service.get_config() == ReconciliationConfig()

    def test_initial_config_used(self):
        initial = ReconciliationConfig(stability_period_days=5)
        assert ConfigService(initial=initial).get_config().stability_period_days == 5

    def test_defaults_saved_to_empty_store(self, memory_store):
        ConfigService(memory_store)
        assert memory_store.config == ReconciliationConfig()

    def test_loads_existing_config_from_store(self, memory_store):
        memory_store.config = ReconciliationConfig(max_reconciliation_days=20)

        service = ConfigService(memory_store, initial=ReconciliationConfig(max_reconciliation_days=9))

        assert service.get_config().max_reconciliation_days == 20

    def test_update_applies_and_persists(self, store):
        service = ConfigService(store)

        updated = service.update_config({'check_frequency_hours': 12})

        assert updated.check_frequency_hours == 12
        assert service.get_config().check_frequency_hours == 12
        assert ConfigService(store).get_config().check_frequency_hours == 12

    def test_invalid_update_leaves_config_unchanged(self, memory_store):
        service = ConfigService(memory_store)

        with pytest.raises(ConfigValidationError, match="Configuration validation failed"):
            service.update_config({'max_reconciliation_days': 2})

        assert service.get_config().max_reconciliation_days == 15
        assert memory_store.config.max_reconciliation_days == 15

    def test_malformed_update_rejected(self):
        service = ConfigService()
        with pytest.raises(ConfigValidationError):
            service.update_config({'significant_change_thresholds': 5})

    def test_validate_reports_warnings(self):
        result = ConfigService().validate({'check_frequency_hours': 2})

        assert result.is_valid is True
        assert result.errors == []
        assert any('check_frequency_hours' in w for w in result.warnings)
        assert result.validated_config.check_frequency_hours == 2

    def test_validate_reports_errors(self):
        result = ConfigService().validate({'stability_period_days': 0})

        assert result.is_valid is False
        assert result.validated_config is None
        assert 'stability_period_days' in result.errors[0]

    def test_reset(self, memory_store):
        service = ConfigService(memory_store)
        service.update_config({'max_extension_days': 8})

        service.reset()

        assert service.get_config() == ReconciliationConfig()
        assert memory_store.config == ReconciliationConfig()


def test_no_warnings_for_defaults():
    assert configuration_warnings(ReconciliationConfig()) == []


def test_warning_when_auto_extension_disabled():
    warnings = configuration_warnings(ReconciliationConfig(auto_extension_enabled=False))
    assert any('auto_extension_enabled' in w for w in warnings)
