"""
Logging for appbatch.

The log is the run report: the orchestrator writes every batch transition
through the ``appbatch`` logger hierarchy. :func:`setup_logging` attaches a
colorized stream handler and, with ``--log-file``, a plain file handler that
keeps logger names so reports can be filtered later.

Report lines carry the ``[BATCH UPGRADE]`` prefix; use
:func:`get_report_logger` for them.
"""

from __future__ import annotations

import os
import sys
import logging
import threading
from pathlib import Path
from typing import IO, Any, Dict, List, MutableMapping, Optional, Tuple

from appbatch.constants import (
    LOG_DATE_FORMAT,
    LOG_DEFAULT_FORMAT,
    LOG_PREFIX,
    LOG_VERBOSE_FORMAT,
)

ROOT_LOGGER_NAME = "appbatch"

_lock = threading.Lock()

_LEVEL_COLORS: Dict[int, str] = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}


class ColoredFormatter(logging.Formatter):
    """Color the level name with ANSI codes when writing to a terminal."""

    def __init__(
        self,
        fmt: str,
        *,
        datefmt: Optional[str] = None,
        use_color: bool = True,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        code = _LEVEL_COLORS.get(record.levelno)
        if code and self.use_color and self._should_use_color():
            # copy: the file handler formats the same record uncolored
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"\033[{code}m{record.levelname}\033[0m"
        return super().format(record)

    @staticmethod
    def _should_use_color() -> bool:
        if os.environ.get("NO_COLOR") or os.environ.get("CI"):
            return False
        try:
            return sys.stderr.isatty()
        except (AttributeError, OSError):
            return False


class ReportAdapter(logging.LoggerAdapter):
    """Prefix every message so run reports are easy to grep."""

    def __init__(self, logger: logging.Logger, prefix: str = LOG_PREFIX) -> None:
        super().__init__(logger, {})
        self.prefix = prefix

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"{self.prefix} {msg}", kwargs


def setup_logging(
    *,
    level: int = logging.INFO,
    verbose: bool = False,
    stream: Optional[IO[str]] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Route appbatch logging to ``stream`` (stderr) and optionally a file.

    Calling it again replaces the previous handlers.

    Args:
        level: Minimum level for every handler.
        verbose: Include logger names on the stream as well.
        stream: Output stream; ``sys.stderr`` when omitted.
        log_file: File receiving an uncolored copy of every line.
    """

    handlers: List[logging.Handler] = []

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(
        ColoredFormatter(
            LOG_VERBOSE_FORMAT if verbose else LOG_DEFAULT_FORMAT,
            datefmt=LOG_DATE_FORMAT,
            use_color=not os.environ.get("NO_COLOR"),
        )
    )
    handlers.append(console)

    if log_file is not None:
        report_file = logging.FileHandler(log_file, encoding="utf-8")
        report_file.setFormatter(
            logging.Formatter(LOG_VERBOSE_FORMAT, datefmt=LOG_DATE_FORMAT)
        )
        handlers.append(report_file)

    with _lock:
        root_logger = _reset_handlers()
        root_logger.setLevel(level)
        for handler in handlers:
            handler.setLevel(level)
            root_logger.addHandler(handler)
        root_logger.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``appbatch.<name>``; names already under ``appbatch`` are kept."""
    if not name or name == ROOT_LOGGER_NAME:
        full_name = ROOT_LOGGER_NAME
    elif name.startswith(f"{ROOT_LOGGER_NAME}."):
        full_name = name
    else:
        full_name = f"{ROOT_LOGGER_NAME}.{name}"

    logger = logging.getLogger(full_name)
    # silent until setup_logging runs
    if not logger.handlers and (not logger.parent or not logger.parent.handlers):
        logger.addHandler(logging.NullHandler())
    return logger


def get_report_logger(name: str) -> ReportAdapter:
    """Return a logger whose lines carry the run report prefix."""
    return ReportAdapter(get_logger(name))


def disable_logging() -> None:
    """Detach every appbatch handler; output is discarded afterwards."""
    with _lock:
        root_logger = _reset_handlers()
        root_logger.addHandler(logging.NullHandler())
        root_logger.setLevel(logging.NOTSET)


def _reset_handlers() -> logging.Logger:
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
        existing.close()
    return root_logger
