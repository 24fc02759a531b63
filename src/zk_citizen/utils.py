"""
Utility functions and decorators for the ZK-Citizen core.

This module provides logging setup, a timing decorator, a bounded retry
decorator, identifier generation and hex helpers used across the package.
"""

import logging
import sys
import time
import uuid
import functools
from typing import Any, Callable, Optional, TypeVar
import structlog

from . import config

# Initialize structured logger
logger = structlog.get_logger(__name__)

# Type variable for generic decorators
F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    level: Optional[str] = None, structured: Optional[bool] = None
) -> None:
    """
    Configure structlog rendering for the application.

    Parameters
    ----------
    level : Optional[str], default=None
        Log level name. Defaults to ``config.LOG_LEVEL``.
    structured : Optional[bool], default=None
        Render JSON when True, console key/value pairs otherwise.
        Defaults to ``config.STRUCTURED_LOGGING``.
    """
    level_name = (level or config.LOG_LEVEL).upper()
    use_json = config.STRUCTURED_LOGGING if structured is None else structured

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level_name)
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )


def timer(func: F) -> F:
    """
    Decorator to measure and log function execution time.

    Examples
    --------
    >>> @timer
    ... def build():
    ...     return "done"
    >>> build()  # Logs execution time at DEBUG
    'done'
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
            execution_time = (time.perf_counter() - start_time) * 1000

            logger.debug(
                "Function execution completed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=execution_time,
                success=True,
            )

            return result

        except Exception as e:
            execution_time = (time.perf_counter() - start_time) * 1000

            logger.debug(
                "Function execution failed",
                function_name=func.__name__,
                module=func.__module__,
                execution_time_ms=execution_time,
                error_type=type(e).__name__,
                success=False,
            )

            raise

    return wrapper


def retry(
    max_attempts: int = 3,
    delay: float = 0.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
) -> Callable[[F], F]:
    """
    Decorator to retry function execution on selected exceptions.

    Only exceptions listed in ``exceptions`` are retried; anything else
    propagates immediately. After ``max_attempts`` failures the last
    exception is re-raised.

    Parameters
    ----------
    max_attempts : int, default=3
        Maximum number of attempts.
    delay : float, default=0.0
        Initial delay between attempts in seconds.
    backoff : float, default=2.0
        Multiplier applied to the delay after each failure.
    exceptions : tuple, default=(Exception,)
        Exception types that trigger a retry.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)

                except exceptions as e:
                    if attempt == max_attempts - 1:
                        logger.warning(
                            f"Function {func.__name__} failed after all retries",
                            total_attempts=max_attempts,
                            error_type=type(e).__name__,
                        )
                        raise

                    logger.info(
                        f"Function {func.__name__} failed, retrying",
                        attempt=attempt + 1,
                        max_attempts=max_attempts,
                        delay_seconds=current_delay,
                        error_type=type(e).__name__,
                    )

                    if current_delay > 0:
                        time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator


def generate_id(prefix: str = "rec") -> str:
    """
    Generate a unique record identifier.

    Examples
    --------
    >>> generate_id("snap")  # e.g., "snap_20240101_123456_abc12345"
    """
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    unique_suffix = str(uuid.uuid4())[:8]
    return f"{prefix}_{timestamp}_{unique_suffix}"


def to_hex(value: int) -> str:
    """Format a field element as a 64-digit hex string."""
    return f"{value:064x}"


def short_hex(value: int, length: int = 16) -> str:
    """Return a short hex preview of a field element for logs."""
    return to_hex(value)[:length] + "..."
