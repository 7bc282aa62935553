"""Logging setup shared by the engine, the batch runner and the API.

Call `configure_logging()` once at process start (server/CLI entry points);
library modules only ask for a named logger via `get_logger(__name__)`.
"""
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger.

    Parameters:
        level: "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"; unknown
            names fall back to INFO.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger(__name__).info("Logging initialized with level %s", level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
