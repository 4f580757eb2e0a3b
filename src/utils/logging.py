import logging
import os
from typing import Optional

from pythonjsonlogger import jsonlogger


class _DefaultFields(logging.Filter):
    """Ensures the optional policy fields exist so the formatter never raises KeyError."""

    _fields = ("identity", "table", "command")

    def filter(self, record: logging.LogRecord) -> bool:
        for attr in self._fields:
            if not hasattr(record, attr):
                setattr(record, attr, "")
        return True


def _make_formatter() -> logging.Formatter:
    """JSON when LOG_FORMAT=json, key=value otherwise."""
    timefmt = os.getenv("LOG_TIMEFMT", "%Y-%m-%dT%H:%M:%S%z")
    if os.getenv("LOG_FORMAT", "structured").lower() == "json":
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(identity)s %(table)s %(command)s",
            datefmt=timefmt,
        )
    return logging.Formatter(
        fmt=(
            "time=%(asctime)s level=%(levelname)s logger=%(name)s "
            "msg=%(message)s identity=%(identity)s table=%(table)s command=%(command)s"
        ),
        datefmt=timefmt,
    )


_LOGGERS: dict[Optional[str], logging.Logger] = {}


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name in _LOGGERS:
        return _LOGGERS[name]
    logger = logging.getLogger(name or "study_platform")
    if not logger.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        handler = logging.StreamHandler()
        handler.addFilter(_DefaultFields())
        handler.setFormatter(_make_formatter())
        logger.addHandler(handler)
        logger.propagate = False
    _LOGGERS[name] = logger
    return logger
