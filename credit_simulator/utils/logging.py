"""
credit_simulator/utils/logging.py
=================================
Central logging utilities.

Usage:
    from credit_simulator.utils.logging import get_logger, init_logging

    init_logging(debug=settings.debug)
    logger = get_logger(__name__)

Streamlit reruns the dashboard script, so handler setup is idempotent.
"""

from __future__ import annotations

import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Optional


_LOGGER_NAME_ROOT = "credit_simulator"


class _UTCFormatter(logging.Formatter):
    """Compact formatter with ISO UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def init_logging(
    *,
    debug: bool = False,
    level: Optional[int] = None,
    to_stdout: bool = True,
) -> None:
    """
    Configure the ``credit_simulator`` logger tree.

    Parameters
    ----------
    debug:
        If True, the default level is DEBUG instead of INFO.
    level:
        Explicit level override.
    to_stdout:
        Log to stdout (default) or stderr.
    """
    lvl = level if level is not None else (logging.DEBUG if debug else logging.INFO)

    root_logger = logging.getLogger(_LOGGER_NAME_ROOT)
    root_logger.setLevel(lvl)
    root_logger.propagate = False

    if getattr(root_logger, "_credit_simulator_configured", False):
        for h in list(root_logger.handlers):
            h.setLevel(lvl)
        return

    handler = logging.StreamHandler(sys.stdout if to_stdout else sys.stderr)
    handler.setLevel(lvl)
    # 2026-01-14T17:32:18.123Z | INFO  | credit_simulator.simulation | __init__:87 | message
    fmt = "%(asctime)s | %(levelname)-5s | %(name)s | %(module)s:%(lineno)d | %(message)s"
    handler.setFormatter(_UTCFormatter(fmt=fmt))
    root_logger.addHandler(handler)

    setattr(root_logger, "_credit_simulator_configured", True)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a logger under the credit_simulator namespace.

    Names already inside the namespace (e.g. ``__name__`` of a package
    module) are used as-is; anything else is prefixed.
    """
    if not name:
        return logging.getLogger(_LOGGER_NAME_ROOT)
    if name.startswith(_LOGGER_NAME_ROOT):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_NAME_ROOT}.{name}")


def log_exception(
    logger: logging.Logger,
    msg: str,
    *,
    exc: Optional[BaseException] = None,
    level: int = logging.ERROR,
    extra_context: Optional[dict] = None,
) -> None:
    """Log an exception with its traceback and optional key=value context."""
    if extra_context:
        ctx = " ".join(f"{k}={v!r}" for k, v in extra_context.items())
        msg = f"{msg} | {ctx}"

    if exc is not None:
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.log(level, "%s\n%s", msg, tb)
    else:
        logger.log(level, msg, exc_info=True)
