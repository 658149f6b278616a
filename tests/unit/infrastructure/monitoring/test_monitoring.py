import logging
from logging.handlers import RotatingFileHandler

import pytest

from photostream.domain.errors import NotFoundError, RateLimitExceededError
from photostream.infrastructure.config.settings import set_config_for_testing
from photostream.infrastructure.monitoring.error_tracking import capture_error
from photostream.infrastructure.monitoring.logger_setup import resolve_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize("env, name, expected", [
    ("test", "warning", logging.WARNING),
    ("test", None, logging.INFO),
    ("test", "LOUD", logging.INFO),
    ("development", None, logging.DEBUG),
])
def test_resolve_level(env, name, expected):
    set_config_for_testing({"app.env": env})
    assert resolve_level(name) == expected


def test_setup_logging_with_rotating_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "photostream.log"

    setup_logging(logging.INFO, log_file=str(log_file), max_bytes=1024, backup_count=2)
    logging.getLogger("photostream.test").info("hello from the test")

    handlers = restore_root_logger.handlers
    assert len(handlers) == 2
    rotating = [h for h in handlers if isinstance(h, RotatingFileHandler)]
    assert rotating[0].maxBytes == 1024
    rotating[0].flush()
    assert "hello from the test" in log_file.read_text()
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_survives_unwritable_file(tmp_path, restore_root_logger):
    setup_logging(logging.INFO, log_file=str(tmp_path / "missing" / "dir" / "app.log"))

    assert len(restore_root_logger.handlers) == 1


def test_operational_errors_are_not_escalated(caplog):
    with caplog.at_level(logging.WARNING):
        assert capture_error(NotFoundError("gone"), {"asset_id": "p1"}) is False
        assert capture_error(RateLimitExceededError("slow down", retry_after=5)) is False

    assert all(r.levelno == logging.WARNING for r in caplog.records)


def test_unexpected_errors_are_escalated_with_traceback(caplog):
    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        error = e

    with caplog.at_level(logging.WARNING):
        assert capture_error(error, {"path": "/api/batch"}) is True

    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert record.exc_info[1] is error
    assert "path" in record.getMessage()
