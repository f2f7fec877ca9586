"""Structured JSON logging configuration for DistrictRecon."""

from __future__ import annotations

import logging
from typing import IO, Optional

from pythonjsonlogger import json as jsonlogger

from shared.log import ROOT_LOGGER


def configure_logging(log_level: str = "info", stream: Optional[IO[str]] = None) -> logging.Logger:
    """Send DistrictRecon logs to ``stream`` as one JSON object per line.

    Output format: {"ts": "...", "level": "...", "name": "...", "msg": "..."}

    Only the DistrictRecon logger tree is configured; the embedding
    application's root logger is left alone.

    Args:
        log_level: Logging level string (e.g., "info", "debug", "trace").
        stream: Target stream (default: stderr).

    Returns:
        The configured DistrictRecon logger.
    """
    if log_level.lower() == "trace":
        level = logging.getLevelName("TRACE")
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={
            "asctime": "ts",
            "levelname": "level",
            "message": "msg",
        },
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    logger = logging.getLogger(ROOT_LOGGER)
    # Clear any existing handlers to avoid duplicate output
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
