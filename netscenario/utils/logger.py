"""
JSON logging for scenario compilation.

Every module under ``netscenario`` logs through ``logging.getLogger(__name__)``
and passes event context (spec name, node, granted window) via ``extra=``.
``setup_logger`` installs the handlers once, on the package root, so those
records come out as one JSON object per line.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

try:
    from pythonjsonlogger.json import JsonFormatter as _JsonFormatter
except ImportError:                       # python-json-logger < 3.1
    from pythonjsonlogger.jsonlogger import JsonFormatter as _JsonFormatter


_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_RENAMED = {"asctime": "timestamp", "levelname": "level"}


def setup_logger(
    name: str = "netscenario",
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10_485_760,
    backup_count: int = 5,
    json_format: bool = True,
) -> logging.Logger:
    """
    Attach handlers for a compile run.

    Records go to stderr, and additionally to a rotating file when
    ``log_file`` is set. A logger that already has handlers is returned
    untouched, so repeated CLI or test setup never duplicates output.

    Args:
        name: Logger to configure; the package root covers every module.
        level: Level name such as ``"DEBUG"``; unknown names fall back to INFO.
        log_file: Optional path of the rotating log file.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files kept beside the active one.
        json_format: False switches to plain-text lines.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False

    formatter = (
        _JsonFormatter(_LOG_FORMAT, rename_fields=_RENAMED)
        if json_format
        else logging.Formatter(_LOG_FORMAT)
    )

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        ))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
