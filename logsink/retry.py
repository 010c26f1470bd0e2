"""Bounded retry for transient I/O failures.

Attempts back off linearly (``attempt * base_delay``). Nested retry loops
inside one logical operation share a single RetryBudget, so the total time
spent sleeping is capped by ``max_total_delay`` no matter how many loops
are stacked.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 0.1
    max_total_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt

    def budget(self, sleep: Callable[[float], None] = time.sleep) -> "RetryBudget":
        return RetryBudget(self, sleep=sleep)


class RetryBudget:
    """Back-off allowance shared by every retry loop of one operation."""

    def __init__(self, policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep):
        self._policy = policy
        self._sleep = sleep
        self._spent = 0.0

    @property
    def spent(self) -> float:
        return self._spent

    @property
    def remaining(self) -> float:
        return max(0.0, self._policy.max_total_delay - self._spent)

    def backoff(self, attempt: int) -> bool:
        """Sleep before the next attempt. False if the budget cannot cover it."""
        delay = self._policy.delay_for(attempt)
        if self._spent + delay > self._policy.max_total_delay:
            return False
        self._spent += delay
        if delay > 0:
            self._sleep(delay)
        return True


def retry_io(
    operation: Callable[[], T],
    policy: RetryPolicy,
    budget: RetryBudget,
    on_retry: Callable[[int, OSError], None] | None = None,
) -> T:
    """Run ``operation``, retrying on OSError within ``policy`` and ``budget``.

    Any other exception propagates immediately, as does the last OSError once
    attempts or budget run out.
    """
    attempt = 1
    while True:
        try:
            return operation()
        except OSError as e:
            if attempt >= policy.attempts:
                raise
            if on_retry is not None:
                on_retry(attempt, e)
            if not budget.backoff(attempt):
                raise
            attempt += 1
