"""
Logging configuration for the arm_rig entry points.

Modules log through ``logging.getLogger(__name__)``; only entry points call
:func:`setup_logging`.  Repeated calls replace the handlers installed by the
previous call instead of stacking new ones.

Format::

    2026-10-19T13:45:12.345Z | INFO     | arm_rig.bridge.channel | Bridge connected

Functions:
    setup_logging: Configure the root logger (idempotent).
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

_installed: List[logging.Handler] = []


class RigFormatter(logging.Formatter):
    """Human-readable single-line formatter with UTC timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        line = f"{ts_str} | {record.levelname:8s} | {record.name} | {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    to_stderr: bool = True,
    quiet_libs: Optional[List[str]] = None,
) -> List[logging.Handler]:
    """Configure the root logger.

    Args:
        log_level: ``'DEBUG'``, ``'INFO'``, ``'WARNING'``, ``'ERROR'`` or
            ``'CRITICAL'``.
        log_file: Optional path of a log file (parent directories are
            created).
        to_stderr: Whether to log to the console.
        quiet_libs: Library logger names forced to ``WARNING``
            (e.g. ``['websockets']``).

    Returns:
        The handlers installed by this call.

    Raises:
        ValueError: If *log_level* is not a known level name.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level '{log_level}'")

    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()
    root.setLevel(level)

    if to_stderr:
        _installed.append(logging.StreamHandler(sys.stderr))
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _installed.append(logging.FileHandler(log_file))
    for handler in _installed:
        handler.setFormatter(RigFormatter())
        root.addHandler(handler)

    for lib in quiet_libs or []:
        logging.getLogger(lib).setLevel(logging.WARNING)
    return list(_installed)
