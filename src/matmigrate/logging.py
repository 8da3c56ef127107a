"""Logging utilities for matmigrate.

Library modules log through stdlib loggers under the ``matmigrate``
namespace. The CLI installs a handler that forwards every record to the
active reporter, so the same messages come out as plain text, rich console
output or JSON lines depending on ``--reporter``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from .reporting import get_reporter

_LOGGER_NAME = "matmigrate"
_STEP_PREFIX = "  ->"

__all__ = [
    "get_logger",
    "configure_logging",
    "section",
    "step",
]


def get_logger(name: str | None = None) -> logging.Logger:
    if name:
        return logging.getLogger(f"{_LOGGER_NAME}.{name}")
    return logging.getLogger(_LOGGER_NAME)


class _ReporterHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            rep = get_reporter()
            msg = self.format(record)
            lvl = record.levelno
            if lvl >= logging.ERROR:
                rep.error(msg)
            elif lvl >= logging.WARNING:
                rep.warning(msg)
            elif lvl >= logging.INFO:
                rep.status(msg)
            else:
                rep.verbose(msg)
        except Exception:
            self.handleError(record)


def configure_logging(verbosity: int = 0) -> None:
    """Route ``matmigrate`` records to the active reporter.

    verbosity 0 shows INFO and above; 1 or more enables DEBUG.
    """
    logger = get_logger()
    logger.setLevel(logging.DEBUG if verbosity >= 1 else logging.INFO)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    handler = _ReporterHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)


def step(message: str) -> None:
    get_reporter().status(f"{_STEP_PREFIX} {message}")


@contextmanager
def section(title: str) -> Iterator[logging.Logger]:
    get_reporter().section(title)
    logger = get_logger()
    try:
        yield logger
    finally:
        logger.debug("end section: %s", title)
