"""
Structured Logging — Per-subsystem structured logging with JSON output.

Provides contextual logging with subsystem tags, turn correlation IDs,
and a JSON formatter enabled at startup.
"""

import json
import logging
import sys
from contextvars import ContextVar
from enum import Enum
from typing import Any, Dict

# Context variables for turn correlation
activity_id_var: ContextVar[str] = ContextVar("activity_id", default="")
channel_id_var: ContextVar[str] = ContextVar("channel_id", default="")


class Subsystem(str, Enum):
    DIRECTORY = "directory"
    COMPOSER = "composer"
    ROUTER = "router"
    INGESTOR = "ingestor"
    TRANSPORT = "transport"
    API = "api"


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "subsystem": getattr(record, "subsystem", "general"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        act_id = activity_id_var.get("")
        if act_id:
            log_entry["activity_id"] = act_id
        ch_id = channel_id_var.get("")
        if ch_id:
            log_entry["channel_id"] = ch_id

        extra = getattr(record, "extra_data", None)
        if extra:
            log_entry["data"] = extra

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stack": self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class SubsystemLogger:
    """Logger wrapper that adds subsystem context."""

    def __init__(self, subsystem: Subsystem, logger: logging.Logger):
        self._subsystem = subsystem
        self._logger = logger

    def _log(self, level: int, msg: str, extra_data: Any = None, **kwargs):
        extra = {"subsystem": self._subsystem.value}
        if extra_data:
            extra["extra_data"] = extra_data
        self._logger.log(level, msg, extra=extra, **kwargs)

    def debug(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.DEBUG, msg, data, **kwargs)

    def info(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.INFO, msg, data, **kwargs)

    def warning(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.WARNING, msg, data, **kwargs)

    def error(self, msg: str, data: Any = None, **kwargs):
        self._log(logging.ERROR, msg, data, **kwargs)

    def exception(self, msg: str, data: Any = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, data, **kwargs)


# ── Logger Registry ──
_loggers: Dict[str, SubsystemLogger] = {}
_structured_enabled = False


def get_subsystem_logger(subsystem: Subsystem) -> SubsystemLogger:
    """Get a structured logger for a subsystem."""
    key = subsystem.value
    if key not in _loggers:
        logger = logging.getLogger(f"commonbot.{key}")
        _loggers[key] = SubsystemLogger(subsystem, logger)
    return _loggers[key]


def enable_structured_logging(level: int = logging.INFO):
    """Enable JSON structured logging for the commonbot hierarchy."""
    global _structured_enabled
    if _structured_enabled:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger("commonbot")
    root.addHandler(handler)
    root.setLevel(level)
    _structured_enabled = True


def set_turn_context(activity_id: str = "", channel_id: str = ""):
    """Set context variables for the turn being processed."""
    activity_id_var.set(activity_id)
    channel_id_var.set(channel_id)


# ── Convenience loggers ──
directory_log = get_subsystem_logger(Subsystem.DIRECTORY)
composer_log = get_subsystem_logger(Subsystem.COMPOSER)
router_log = get_subsystem_logger(Subsystem.ROUTER)
ingestor_log = get_subsystem_logger(Subsystem.INGESTOR)
transport_log = get_subsystem_logger(Subsystem.TRANSPORT)
api_log = get_subsystem_logger(Subsystem.API)
