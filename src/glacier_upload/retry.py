"""Transport-level retries with exponential backoff."""

import time
from functools import wraps
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError
from requests.exceptions import RequestException

from .log import get_logger

T = TypeVar("T")

# Failures below the HTTP layer. Service answers (any status) are never retried here.
DEFAULT_RETRYABLE = (
    ConnectionError,
    TimeoutError,
    RequestException,
    BotoCoreError,
)


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(self, message: str, last_exception: Exception):
        super().__init__(message)
        self.last_exception = last_exception


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator that retries a function with exponential backoff.

    max_retries is the total number of attempts; values below 1 still make one.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            logger = get_logger()
            last_exception: Exception | None = None
            attempts = max(max_retries, 1)

            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if attempt >= attempts:
                        break

                    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)

                    logger.warning(
                        f"Attempt {attempt}/{attempts} failed for {func.__name__}: {e}. "
                        f"Waiting {delay:.1f}s..."
                    )
                    time.sleep(delay)

            assert last_exception is not None
            raise RetryExhausted(
                f"Failed after {attempts} attempts: {last_exception}",
                last_exception,
            )

        return wrapper

    return decorator
