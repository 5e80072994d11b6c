"""Decorator utilities for cross-cutting concerns."""
import time
import logging
import functools
from typing import Any, Callable, Optional, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_execution_time(func: F) -> F:
    """Decorator to log function execution time.

    Args:
        func: The function to decorate

    Returns:
        Decorated function that logs execution time
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            duration = time.time() - start_time
            logger.info(f"{func.__name__} completed in {duration:.2f}s")
            return result
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"{func.__name__} failed after {duration:.2f}s: {str(e)}")
            raise
    return cast(F, wrapper)


def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: tuple = (Exception,), logger_name: Optional[str] = None,
          sleep: Callable[[float], None] = time.sleep):
    """Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries in seconds
        backoff: Backoff multiplier (1.0 keeps a fixed delay)
        exceptions: Tuple of exceptions to catch for retry
        logger_name: Optional logger name (defaults to module logger)
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorator function
    """
    retry_logger = logging.getLogger(logger_name) if logger_name else logger

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay

            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        retry_logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {str(e)}")
                        raise

                    retry_logger.debug(
                        f"Attempt {attempt}/{max_attempts} for {func.__name__} failed: {str(e)}. "
                        f"Retrying in {current_delay:.2f}s"
                    )

                    sleep(current_delay)
                    attempt += 1
                    current_delay *= backoff

        return cast(F, wrapper)

    return decorator
