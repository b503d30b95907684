"""Logging setup for postgraph.

Library modules only ever ask for a logger:

    import logging
    log = logging.getLogger(__name__)

and leave handlers alone. The CLI calls ``configure_logging()`` once, which
attaches a single stderr handler to the ``postgraph`` logger.

POSTGRAPH_LOG_LEVEL picks the threshold:
    - DEBUG: per-document parse results and Build State decisions
    - INFO: one summary line per build (default)
    - WARNING: non-fatal diagnostics such as unused link definitions
    - ERROR: issues that failed the build
"""

import logging
import os
import sys
from typing import TextIO

PACKAGE_LOGGER = "postgraph"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def _level_from_env() -> int:
    name = os.environ.get("POSTGRAPH_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(stream: TextIO | None = None) -> None:
    """Attach a stderr handler to the package logger.

    Does nothing if the package logger already has a handler, so repeated
    calls (one per CLI invocation in tests) are harmless.

    Args:
        stream: Where log records go (defaults to sys.stderr).
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.handlers:
        return

    level = _level_from_env()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger.setLevel(level)
    package_logger.addHandler(handler)
    # Records stop here; the root logger would print them a second time
    package_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Show only errors while quiet, otherwise the POSTGRAPH_LOG_LEVEL threshold."""
    level = logging.ERROR if quiet else _level_from_env()
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module inside the package."""
    return logging.getLogger(name)
