"""Bounded retry for transient fetch failures."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits for tails and registry lookups.

    Attributes:
        max_attempts: Total attempts, including the first one.
        interval: Wait in seconds before the second attempt.
        backoff: Growth rate of the wait; each further wait is
            (1 + backoff) times the previous one.
    """

    max_attempts: int = 3
    interval: float = 0.5
    backoff: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def next_interval(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        if not self.interval:
            return 0.0
        return self.interval * pow(1 + self.backoff, attempt - 1)

    def call(
        self,
        func: Callable[[], T],
        transient: tuple[type[BaseException], ...],
        description: str = "operation",
    ) -> T:
        """Run func, retrying on the given transient exception types.

        Exceptions outside `transient` propagate immediately. Once the
        attempts are exhausted the last transient exception is re-raised.

        Args:
            func: Zero-argument callable to run.
            transient: Exception types worth another attempt.
            description: Short label used in log messages.

        Returns:
            Whatever func returns.
        """
        attempt = 1
        while True:
            try:
                return func()
            except transient as e:
                if attempt >= self.max_attempts:
                    LOGGER.warning(
                        "%s failed after %d attempts: %s", description, attempt, e
                    )
                    raise
                wait = self.next_interval(attempt)
                LOGGER.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt,
                    self.max_attempts,
                    wait,
                    e,
                )
                if wait:
                    time.sleep(wait)
                attempt += 1
