"""Logging utilities for declgraph commands."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "declgraph"

_CONSOLE_FORMAT = "[declgraph] %(levelname)s %(message)s"
# Verbose output names the component (discovery, stores, session, ...).
_VERBOSE_FORMAT = "[declgraph] %(levelname)s %(component)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _ComponentFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        prefix = f"{_LOGGER_NAME}."
        record.component = record.name[len(prefix) :] if record.name.startswith(prefix) else record.name
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the declgraph hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install console (and optional file) handlers on the declgraph logger.

    ``verbose`` wins over ``quiet``. Calling this again replaces the handlers
    installed by the previous call.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger = reset_logging()
    logger.setLevel(level)
    logger.propagate = False

    console = logging.StreamHandler()
    console.setLevel(level)
    console.addFilter(_ComponentFilter())
    console.setFormatter(logging.Formatter(_VERBOSE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        # The file always records debug detail regardless of console level.
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.setLevel(logging.DEBUG)
        logger.addHandler(sink)

    return logger


def reset_logging() -> logging.Logger:
    """Detach and close every handler on the declgraph logger."""
    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    return logger


__all__ = ["configure_logging", "get_logger", "reset_logging"]
