"""
Runtime configuration provider for reconciliation.

Holds the active ReconciliationConfig, validates partial updates and, when a
store is attached, persists every accepted update. Components read the config
on every use, so an update applies to the next cycle of every job.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, TYPE_CHECKING

from pydantic import ValidationError

from reconciliation.errors import ConfigValidationError
from shared.log import create_logger
from validation.config import ReconciliationConfig, format_validation_error

if TYPE_CHECKING:
    from storage.store import ReconciliationStore

_, log_debug, log_info, log_warn, _ = create_logger("Config")


class ConfigProvider(Protocol):
    """Interface the orchestrator needs for configuration."""

    def get_config(self) -> ReconciliationConfig:
        ...

    def update_config(self, partial: dict[str, Any]) -> ReconciliationConfig:
        ...


@dataclass
class ConfigValidationResult:
    """Outcome of validating a partial configuration.

    Attributes:
        is_valid: True if the merged config passes validation
        errors: Blocking problems
        warnings: Advisory notes (valid but unusual values)
        validated_config: The merged config when valid
    """
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    validated_config: Optional[ReconciliationConfig] = None


class ConfigService:
    """Holds the live reconciliation configuration.

    Args:
        store: Optional store; when given, the config is loaded from and
               saved to it
        initial: Config to use when the store has none (default: defaults)

    Usage:
        service = ConfigService(store)
        service.update_config({'stability_period_days': 2})
        service.get_config().stability_period_days  # 2
    """

    def __init__(
        self,
        store: Optional["ReconciliationStore"] = None,
        initial: Optional[ReconciliationConfig] = None,
    ):
        self._store = store
        self._lock = threading.Lock()
        self._config = self._load(initial)

    def _load(self, initial: Optional[ReconciliationConfig]) -> ReconciliationConfig:
        if self._store is not None:
            stored = self._store.get_config()
            if stored is not None:
                log_debug("Loaded reconciliation config from store")
                return stored
        config = initial or ReconciliationConfig()
        if self._store is not None:
            self._store.save_config(config)
            log_info("Default reconciliation configuration created")
        return config

    def get_config(self) -> ReconciliationConfig:
        return self._config

    def update_config(self, partial: dict[str, Any]) -> ReconciliationConfig:
        """Apply a partial update.

        Raises:
            ConfigValidationError: if the merged config is invalid (config unchanged)
        """
        with self._lock:
            result = self.validate(partial)
            if not result.is_valid:
                raise ConfigValidationError(
                    f"Configuration validation failed: {'; '.join(result.errors)}"
                )
            for warning in result.warnings:
                log_warn(warning)
            if self._store is not None:
                self._store.save_config(result.validated_config)
            self._config = result.validated_config
            log_info(f"Reconciliation configuration updated: {sorted(partial)}")
            return self._config

    def reset(self, config: Optional[ReconciliationConfig] = None) -> ReconciliationConfig:
        """Replace the live config with ``config`` (default: built-in defaults)."""
        with self._lock:
            self._config = config or ReconciliationConfig()
            if self._store is not None:
                self._store.save_config(self._config)
            return self._config

    def validate(self, partial: dict[str, Any]) -> ConfigValidationResult:
        """Validate ``partial`` merged over the current config, with warnings."""
        try:
            merged = self._config.merged(partial)
        except ValidationError as e:
            return ConfigValidationResult(is_valid=False, errors=[format_validation_error(e)])
        except (TypeError, AttributeError) as e:
            return ConfigValidationResult(is_valid=False, errors=[f"Malformed configuration: {e}"])

        return ConfigValidationResult(
            is_valid=True,
            warnings=configuration_warnings(merged),
            validated_config=merged,
        )


def configuration_warnings(config: ReconciliationConfig) -> list[str]:
    """Advisory warnings for valid but unusual settings."""
    warnings = []
    thresholds = config.significant_change_thresholds
    if config.max_reconciliation_days > 30:
        warnings.append('max_reconciliation_days is very high (>30 days), consider reducing it')
    if config.check_frequency_hours < 6:
        warnings.append('check_frequency_hours is very low (<6 hours), this may cause excessive collection')
    elif config.check_frequency_hours > 48:
        warnings.append('check_frequency_hours is very high (>48 hours), changes may be detected late')
    if config.max_extension_days > 15:
        warnings.append('max_extension_days is very high (>15 days), reconciliation may run indefinitely')
    if thresholds.membership_percent > 10:
        warnings.append('membership_percent threshold is very high (>10%), significant changes may be missed')
    if thresholds.distinguished_percent > 20:
        warnings.append('distinguished_percent threshold is very high (>20%), significant changes may be missed')
    if not config.auto_extension_enabled:
        warnings.append('auto_extension_enabled is false - max_extension_days only applies to manual extensions')
    return warnings


__all__ = ['ConfigProvider', 'ConfigService', 'ConfigValidationResult', 'configuration_warnings']
