"""Tests for logging configuration."""

import logging

from glacier_upload.log import get_logger, setup_logging


def test_setup_logging_default_level():
    """Default logging level should be INFO."""
    setup_logging()
    logger = get_logger()
    assert logger.level == logging.INFO


def test_setup_logging_verbose():
    """Verbose mode should set DEBUG level."""
    setup_logging(verbose=True)
    logger = get_logger()
    assert logger.level == logging.DEBUG


def test_setup_logging_quiet():
    """Quiet mode should set WARNING level."""
    setup_logging(quiet=True)
    logger = get_logger()
    assert logger.level == logging.WARNING


def test_get_logger_returns_named_logger():
    """get_logger should return the glacier-upload logger."""
    logger = get_logger()
    assert logger.name == "glacier-upload"


def test_setup_logging_replaces_handlers():
    """Repeated setup should not stack console handlers."""
    setup_logging()
    setup_logging()
    assert len(get_logger().handlers) == 1


def test_log_file(tmp_path):
    """Messages should also be written to the log file."""
    log_file = tmp_path / "upload.log"
    setup_logging(verbose=True, log_file=str(log_file))
    get_logger().debug("part 3 accepted")

    for handler in get_logger().handlers:
        handler.flush()
    assert "part 3 accepted" in log_file.read_text()

    setup_logging()


def test_library_loggers_quiet_by_default():
    """botocore and urllib3 should only report warnings."""
    setup_logging()
    assert logging.getLogger("botocore").level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert not set(get_logger().handlers) & set(logging.getLogger("urllib3").handlers)


def test_verbose_routes_connection_logs():
    """Verbose mode should send urllib3 output through the console handler."""
    setup_logging(verbose=True)
    urllib3_logger = logging.getLogger("urllib3")
    verbose_handlers = list(get_logger().handlers)

    assert urllib3_logger.level == logging.DEBUG
    assert all(h in urllib3_logger.handlers for h in verbose_handlers)
    assert logging.getLogger("botocore").level == logging.WARNING

    setup_logging()
    assert not any(h in urllib3_logger.handlers for h in verbose_handlers)


def test_verbose_format_names_thread(capsys):
    """Verbose lines should show which worker thread logged them."""
    setup_logging(verbose=True)
    get_logger().debug("part 1 sent")

    assert "[MainThread] glacier-upload: part 1 sent" in capsys.readouterr().err

    setup_logging()
