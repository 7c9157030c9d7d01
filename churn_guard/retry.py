# churn_guard/retry.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from .errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
BASE_BACKOFF_SECONDS = 0.5


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential-backoff retry for a single CRM step.

    With the defaults: up to 3 attempts, sleeping 0.5s before attempt 2 and 1.0s
    before attempt 3. Only errors accepted by is_retryable are retried; anything
    else, or the last attempt's error, propagates unchanged.
    """
    max_attempts: int = MAX_ATTEMPTS
    base_delay: float = BASE_BACKOFF_SECONDS
    is_retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    def backoff(self, attempt: int) -> float:
        """Delay after a failed `attempt` (1-based), before the next one."""
        return self.base_delay * 2 ** (attempt - 1)

    def run(self, operation: Callable[[int], T], label: Optional[str] = None) -> T:
        label = label or getattr(operation, "__name__", "operation")
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation(attempt)
            except Exception as e:
                if not self.is_retryable(e) or attempt >= self.max_attempts:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s failed on attempt %d/%d (%r); retrying in %.2fs",
                    label, attempt, self.max_attempts, e, delay,
                )
                self.sleep(delay)
