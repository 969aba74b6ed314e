"""Shared retry policy for upstream calls."""

import logging
import time
from typing import Callable

from .errors import ResolutionError

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Retry retryable ResolutionErrors with exponential backoff.

    Delay before attempt n+1 is ``base_delay * 2**(n-1)``, capped at
    ``max_delay`` (1s, 2s, 4s with the defaults). Non-retryable errors and
    anything that isn't a ResolutionError propagate immediately.
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0,
                 max_delay: float = 4.0, sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def call(self, fn: Callable, *args, **kwargs):
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except ResolutionError as e:
                if not e.retryable or attempt == self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{getattr(fn, '__name__', 'call')} failed ({e.kind.value}), "
                    f"retry {attempt}/{self.max_attempts - 1} in {delay:.1f}s"
                )
                self._sleep(delay)


NO_RETRY = RetryPolicy(max_attempts=1)
