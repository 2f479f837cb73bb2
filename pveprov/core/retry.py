"""Bounded retry with exponential backoff for flaky network and host calls."""
import functools
import time
from typing import Callable, Optional, Tuple, Type

from pveprov.core.logger import get_logger

logger = get_logger(__name__)


def retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    attempts_from: Optional[Callable[[], int]] = None,
):
    """Retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay in seconds between attempts
        backoff: Multiplier applied to the delay after each failure
        exceptions: Exception types that trigger another attempt
        attempts_from: Optional callable read at call time that overrides
            ``max_attempts`` (used to honour runtime configuration)

    Example:
        @retry(max_attempts=3, delay=5, exceptions=(requests.ConnectionError,))
        def download_image(url):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max(1, attempts_from() if attempts_from else max_attempts)
            current_delay = delay

            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        logger.error(f"{func.__name__} failed after {attempts} attempts: {e}")
                        raise

                    logger.warning(f"{func.__name__} failed (attempt {attempt}/{attempts}): {e}")
                    logger.info(f"Retrying in {current_delay:.1f}s...")
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
