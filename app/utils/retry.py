"""
Retry utilities with exponential backoff for refresh steps.

The step executor wraps every compute/write/watermark step with these helpers,
so any step may run more than once.
"""
import functools
import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Type

from sqlalchemy.exc import IntegrityError, OperationalError

from app.exceptions import MissingSegmentError, QueryBackendError, UnsupportedTimeframeError
from app.utils.logger import log


@dataclass
class RetryStats:
    """Tracks retry statistics for a single operation."""
    attempts: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    success: bool = False

    def record_attempt(self, error: Optional[Exception] = None, delay: float = 0.0):
        """Record a retry attempt."""
        self.attempts += 1
        self.total_delay_seconds += delay
        if error:
            error_str = f"{type(error).__name__}: {str(error)}"
            self.last_error = error_str
            self.errors.append(error_str)

    def mark_success(self):
        """Mark the operation as successful."""
        self.success = True

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "attempts": self.attempts,
            "total_delay_seconds": round(self.total_delay_seconds, 2),
            "success": self.success,
            "last_error": self.last_error,
            "errors": self.errors[:5]  # Cap at 5 errors
        }


# Transient failures: network, database locks, query backend
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    OSError,
    OperationalError,
    IntegrityError,  # Lost an insert race on a cache slice; the retry updates instead
    QueryBackendError,
)

# Programmer or data errors that no amount of retrying fixes
FATAL_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    UnsupportedTimeframeError,
    MissingSegmentError,
)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add randomness to prevent thundering herd

    Returns:
        Delay in seconds
    """
    delay = base_delay * (exponential_base ** (attempt - 1))
    delay = min(delay, max_delay)

    # Add jitter (0-25% of delay)
    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    retryable_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504)
) -> bool:
    """
    Check if an error is retryable.

    Query backend errors carrying a 4xx status other than 429 are treated as
    permanent (a malformed query will not start working on its own).
    """
    if isinstance(error, FATAL_EXCEPTIONS):
        return False

    if isinstance(error, QueryBackendError) and error.status_code is not None:
        return error.status_code in retryable_status_codes

    if isinstance(error, retryable_exceptions):
        return True

    error_str = str(error).lower()
    if "timeout" in error_str or "timed out" in error_str:
        return True

    return False


def retry_sync(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    label: Optional[str] = None,
):
    """
    Decorator for retrying operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Initial delay between retries
        max_delay: Maximum delay cap
        exponential_base: Base for exponential backoff
        retryable_exceptions: Exception types to retry
        on_retry: Callback called on each retry (attempt, error, delay)
        label: Name used in log lines (defaults to the function name)

    Usage:
        @retry_sync(max_attempts=3)
        def load_rows():
            ...
    """
    def decorator(func: Callable):
        name = label or getattr(func, "__name__", repr(func))
        # Mutable container to hold last call's stats (accessible from get_retry_stats)
        last_stats = [None]

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            stats = RetryStats()
            last_stats[0] = stats
            last_error = None

            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)
                    stats.record_attempt()
                    stats.mark_success()

                    if attempt > 1:
                        log.info(
                            f"{name} succeeded on attempt {attempt} "
                            f"after {stats.total_delay_seconds:.1f}s total delay"
                        )

                    return result

                except Exception as e:
                    last_error = e

                    if attempt >= max_attempts or not is_retryable_error(e, retryable_exceptions):
                        stats.record_attempt(error=e)
                        log.error(f"{name} failed after {attempt} attempts: {e}")
                        raise

                    delay = calculate_backoff(
                        attempt,
                        base_delay=base_delay,
                        max_delay=max_delay,
                        exponential_base=exponential_base
                    )

                    stats.record_attempt(error=e, delay=delay)

                    log.warning(
                        f"{name} attempt {attempt} failed: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )

                    if on_retry:
                        on_retry(attempt, e, delay)

                    time.sleep(delay)

            raise last_error if last_error else RuntimeError("Retry exhausted")

        wrapper.get_retry_stats = lambda: last_stats[0]
        return wrapper

    return decorator
