"""
Step execution for refresh runs.

A refresh run is a sequence of named steps (compute a metric family, write a
slice, advance the watermark). Steps must be idempotent: an executor is free to
run any of them more than once.
"""
from typing import Any, Callable, Optional, TypeVar

from app.config import get_settings
from app.utils.logger import log
from app.utils.retry import retry_sync

T = TypeVar("T")


class StepExecutor:
    """Runs each step once, inline."""

    def run(self, name: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        log.debug(f"step {name}")
        return fn(*args, **kwargs)


class RetryingStepExecutor(StepExecutor):
    """
    Retries each failed step with exponential backoff.

    Fatal errors (unsupported timeframe, missing segment) and permanent query
    errors are raised on the first attempt.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        settings = get_settings()
        self.max_attempts = max_attempts or settings.step_max_attempts
        self.base_delay = base_delay if base_delay is not None else settings.step_base_delay_seconds
        self.max_delay = max_delay if max_delay is not None else settings.step_max_delay_seconds

    def run(self, name: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        log.debug(f"step {name}")
        step = retry_sync(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            label=f"step {name}",
        )(fn)
        return step(*args, **kwargs)
