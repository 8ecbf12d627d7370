"""Application-level logging utilities."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Optional

PACKAGE_LOGGER = "archtutor"


def setup_logger(name: str = PACKAGE_LOGGER, level: Optional[int | str] = None) -> logging.Logger:
    """Return a configured logger instance writing to stdout."""
    if level is None:
        from archtutor.core.config import get_settings

        level = get_settings().log_level.upper()

    logger = logging.getLogger(name)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    return logger


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value if value and " " not in value else json.dumps(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **details: Any,
) -> None:
    """
    Emit one structured event line: ``event key=value key=value``.

    Callers pass identifiers and sizes, never raw user content, so error-level
    lines stay safe to ship to a shared sink.
    """
    if not logger.isEnabledFor(level):
        return
    fields = " ".join(f"{key}={_format_value(value)}" for key, value in details.items())
    if fields:
        logger.log(level, "%s %s", event, fields)
    else:
        logger.log(level, "%s", event)


__all__ = ["PACKAGE_LOGGER", "log_event", "setup_logger"]
