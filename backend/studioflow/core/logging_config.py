from __future__ import annotations

import logging
import sys

from studioflow.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Root logger to stdout at `settings.log_level`. Safe to call more than once."""
    log = logging.getLogger()
    log.setLevel((level or settings.log_level).upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    if log.hasHandlers():
        log.handlers.clear()
    log.addHandler(handler)

    # SQL echo is too noisy for normal runs.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
