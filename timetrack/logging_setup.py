from __future__ import annotations

import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING", stream: TextIO | None = None) -> logging.Logger:
    """Attach a single stream handler to the timetrack logger tree. Safe to call repeatedly."""
    logger = logging.getLogger("timetrack")
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.WARNING
    logger.setLevel(resolved)

    for handler in list(logger.handlers):
        if getattr(handler, "_timetrack", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._timetrack = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
