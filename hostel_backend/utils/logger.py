"""Structured logging utilities."""

from __future__ import annotations

import logging
import sys
import warnings
from typing import Optional

from hostel_backend.domain.errors import InconsistencyWarning
from hostel_backend.utils.config import get_settings


_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once.

    Every module logs through the same handler so allocation conflicts and
    reconciliation errors share one format on stdout.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    settings = get_settings()
    resolved_level = (level or settings.log_level).upper()

    logging.basicConfig(
        level=resolved_level,
        format=(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        ),
        stream=sys.stdout,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)


def report_inconsistency(logger: logging.Logger, message: str) -> None:
    """Log a reconciliation problem for operators and raise it as a warning."""
    logger.error("InconsistencyWarning: %s", message)
    warnings.warn(InconsistencyWarning(message), stacklevel=3)
