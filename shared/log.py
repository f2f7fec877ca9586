"""
Component logging for DistrictRecon.

Every module logs through the standard ``logging`` hierarchy under
``DistrictRecon.<component>`` with a ``[DistrictRecon <component>]`` message
prefix, so an embedding service can route or silence the subsystem with one
logger name.

This module provides a factory to create log functions with a component prefix,
eliminating the need to repeat the prefix and logger lookup in every module.

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Orchestrator")
    log_info("Started job reconciliation-42-2025-12")
    # -> DistrictRecon.Orchestrator INFO [DistrictRecon Orchestrator] Started job ...
"""

import logging

ROOT_LOGGER = "DistrictRecon"

# Below DEBUG; used for per-entry noise that is rarely wanted
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def create_logger(component: str = ""):
    """Create log functions for a component.

    Args:
        component: Component name suffix. If provided, prefix becomes
                   "[DistrictRecon {component}]", otherwise "[DistrictRecon]".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
    """
    prefix = f"[{ROOT_LOGGER} {component}]" if component else f"[{ROOT_LOGGER}]"
    name = f"{ROOT_LOGGER}.{component}" if component else ROOT_LOGGER
    logger = logging.getLogger(name)

    def log_trace(msg): logger.log(TRACE, f"{prefix} {msg}")
    def log_debug(msg): logger.debug(f"{prefix} {msg}")
    def log_info(msg): logger.info(f"{prefix} {msg}")
    def log_warn(msg): logger.warning(f"{prefix} {msg}")
    def log_error(msg): logger.error(f"{prefix} {msg}")

    return log_trace, log_debug, log_info, log_warn, log_error
