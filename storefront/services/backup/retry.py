"""Bounded retry policy shared by uploads and the scheduler's delayed retry."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from storefront.config.logging import get_logger
from storefront.services.backup.errors import TransientStorageError

logger = get_logger("backup.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts plus an exponential backoff function.

    Attempt numbers are 1-based; ``delay_for(n)`` is the wait after attempt
    ``n`` fails, i.e. base, base*factor, base*factor**2 ... capped at max_delay.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    factor: float = 2.0
    max_delay: float = 60.0
    retry_on: tuple[type[BaseException], ...] = (TransientStorageError,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    @property
    def retries(self) -> int:
        return max(self.max_attempts - 1, 0)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.factor ** (attempt - 1)), self.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and isinstance(error, self.retry_on)

    def call(self, fn: Callable[..., T], *args, description: str = "operation", **kwargs) -> T:
        """Run fn, retrying retryable errors. The last error propagates."""
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{description} failed after {attempt} attempt(s): {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): {e}, retrying in {delay:.0f}s"
                )
                self.sleep(delay)
                attempt += 1
