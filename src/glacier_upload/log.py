"""Logging configuration for glacier-upload."""

import logging
import sys

LOGGER_NAME = "glacier-upload"

# botocore debug output includes canonical requests and signing material
QUIET_LOGGERS = ("botocore", "boto3")

# Connection pool and retry messages, shown only with --verbose
CONNECTION_LOGGERS = ("urllib3",)

DEFAULT_FORMAT = "%(asctime)s %(levelname)-5s %(message)s"
# Parts are sent from a thread pool
VERBOSE_FORMAT = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s: %(message)s"

_logger: logging.Logger | None = None
_library_handlers: list[tuple[logging.Logger, logging.Handler]] = []


def _configure_library_loggers(verbose: bool, handlers: list[logging.Handler]) -> None:
    while _library_handlers:
        library_logger, handler = _library_handlers.pop()
        library_logger.removeHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name in CONNECTION_LOGGERS:
        library_logger = logging.getLogger(name)
        if verbose:
            library_logger.setLevel(logging.DEBUG)
            for handler in handlers:
                library_logger.addHandler(handler)
                _library_handlers.append((library_logger, handler))
        else:
            library_logger.setLevel(logging.WARNING)


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: str | None = None,
) -> None:
    """Configure the package logger and the HTTP stack's loggers."""
    global _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logger.setLevel(level)

    formatter = logging.Formatter(
        VERBOSE_FORMAT if verbose else DEFAULT_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for handler in handlers:
        logger.addHandler(handler)

    _configure_library_loggers(verbose, handlers)
    _logger = logger


def get_logger() -> logging.Logger:
    """Get the logger, initializing with defaults if setup_logging wasn't called."""
    global _logger
    if _logger is None:
        setup_logging()
    assert _logger is not None
    return _logger
