import logging
from logging.handlers import TimedRotatingFileHandler

import pytest

from streamgate import logging_config
from streamgate.logging_config import (
    GatewayFormatter,
    OUTCOME_CANCELLED,
    setup_logging,
    stream_context,
)
from streamgate.settings import settings


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {
            "name": "streamgate.cancellation",
            "levelname": "INFO",
            "levelno": logging.INFO,
            "msg": "stream %s: cancelled",
            "args": ("s1",),
            "created": 0.0,
        }
    )
    record.__dict__.update(extra)
    return record


def test_stream_context_only_sets_given_fields():
    assert stream_context("s1") == {"stream_id": "s1"}
    assert stream_context("s1", OUTCOME_CANCELLED, reason="superseded") == {
        "stream_id": "s1",
        "outcome": "cancelled",
        "reason": "superseded",
    }


def test_formatter_tags_records_with_stream_context():
    formatter = GatewayFormatter(timezone_name="UTC")

    line = formatter.format(
        _record(**stream_context("s1", OUTCOME_CANCELLED, reason="client_disconnected"))
    )

    assert line == (
        "1970-01-01T00:00:00.000+00:00 [INFO] streamgate.cancellation"
        " [stream_id=s1 outcome=cancelled reason=client_disconnected]"
        " - stream s1: cancelled"
    )


def test_formatter_leaves_plain_records_untagged():
    formatter = GatewayFormatter(timezone_name="UTC")
    assert formatter.format(_record()).endswith("streamgate.cancellation - stream s1: cancelled")


def test_unknown_timezone_falls_back_to_local_time():
    formatter = GatewayFormatter(timezone_name="Mars/Olympus_Mons")
    stamp = formatter.formatTime(_record())
    # Local, but still offset-aware.
    assert stamp[-6] in "+-"


@pytest.fixture
def fresh_logging(monkeypatch, tmp_path):
    monkeypatch.setattr(logging_config, "_configured", False)
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "log_level", "DEBUG")
    app_logger = logging.getLogger("streamgate")
    root_logger = logging.getLogger()
    before_app = list(app_logger.handlers)
    before_root = list(root_logger.handlers)
    app_level, root_level = app_logger.level, root_logger.level
    yield tmp_path / "logs"
    for handler in app_logger.handlers:
        if handler not in before_app:
            handler.close()
    app_logger.handlers = before_app
    root_logger.handlers = before_root
    app_logger.setLevel(app_level)
    root_logger.setLevel(root_level)


def test_setup_logging_writes_rotating_app_log_once(fresh_logging):
    setup_logging()
    setup_logging()

    app_logger = logging.getLogger("streamgate")
    file_handlers = [h for h in app_logger.handlers if isinstance(h, TimedRotatingFileHandler)]
    assert len(file_handlers) == 1
    assert app_logger.level == logging.DEBUG

    logging.getLogger("streamgate.cancellation").info(
        "stream %s: cancelled", "s9", extra=stream_context("s9", OUTCOME_CANCELLED)
    )
    file_handlers[0].flush()

    content = (fresh_logging / "app.log").read_text(encoding="utf-8")
    assert "[stream_id=s9 outcome=cancelled] - stream s9: cancelled" in content
