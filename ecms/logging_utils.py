"""Structured logging helper shared by the media services."""

from __future__ import annotations

import logging
from typing import Any


def structured_log(
    logger: logging.Logger,
    level: str,
    event: str,
    /,
    **fields: Any,
) -> None:
    """Emit a structured log entry.

    The event name is the log message; ``JsonLogFormatter`` picks it up via
    ``record.getMessage()``, so it is not repeated in ``extra``.

    Usage:
        structured_log(logger, "info", "media.avatar_uploaded", user_id=1, blob_id="ab12")
    """
    log_method = getattr(logger, level.lower())
    log_method(event, extra=fields)
