"""
Gateway logging.

Every module logs through the "streamgate" logger with %-style arguments.
Records about a single stream carry `stream_id` / `outcome` / `reason`
through `extra=` (see stream_context()), so cancellations and upstream
failures stay distinguishable in the log files. Cancellations go to the
"streamgate.cancellation" child logger and can be routed or silenced on
their own.
"""

import datetime
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings


LOGGER_NAME = "streamgate"
CANCELLATION_LOGGER_NAME = f"{LOGGER_NAME}.cancellation"

# `outcome` values attached to per-stream records.
OUTCOME_COMPLETED = "completed"
OUTCOME_CANCELLED = "cancelled"
OUTCOME_INTERRUPTED = "interrupted"
OUTCOME_FAILED = "failed"

_CONTEXT_FIELDS = ("stream_id", "outcome", "reason")

_configured = False


def stream_context(
    stream_id: str, outcome: Optional[str] = None, **fields: Any
) -> Dict[str, Any]:
    """`extra=` mapping for a record about one stream."""
    extra: Dict[str, Any] = {"stream_id": stream_id}
    if outcome is not None:
        extra["outcome"] = outcome
    extra.update(fields)
    return extra


def _resolve_timezone(name: Optional[str]) -> Optional[datetime.tzinfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return None


class GatewayFormatter(logging.Formatter):
    """
    ISO-8601 timestamps in LOG_TIMEZONE (system local time when unset or
    unknown), plus a ` [stream=.. outcome=.. reason=..]` tag after the logger
    name for records that carry stream context.
    """

    default_format = "%(asctime)s [%(levelname)s] %(name)s%(context)s - %(message)s"

    def __init__(self, fmt: Optional[str] = None, *, timezone_name: Optional[str] = None):
        super().__init__(fmt or self.default_format)
        self._tz = _resolve_timezone(timezone_name)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        moment = datetime.datetime.fromtimestamp(record.created, tz=self._tz)
        if self._tz is None:
            moment = moment.astimezone()
        if datefmt:
            return moment.strftime(datefmt)
        return moment.isoformat(timespec="milliseconds")

    def format(self, record: logging.LogRecord) -> str:
        tags = [
            f"{field}={getattr(record, field)}"
            for field in _CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]
        record.context = f" [{' '.join(tags)}]" if tags else ""
        return super().format(record)


def setup_logging() -> None:
    """
    Configure logging once per process: gateway records go to
    <LOG_DIR>/app.log (rotated at midnight, 7 days kept); the root logger
    gets a console handler so uvicorn output stays visible.
    """
    global _configured
    if _configured:
        return

    level = logging.getLevelName(str(settings.log_level).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = GatewayFormatter(timezone_name=settings.log_timezone)

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        log_dir / "app.log", when="midnight", backupCount=7, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level)
    app_logger.addHandler(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(type(handler) is logging.StreamHandler for handler in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _configured = True


logger = logging.getLogger(LOGGER_NAME)
cancellation_logger = logging.getLogger(CANCELLATION_LOGGER_NAME)
