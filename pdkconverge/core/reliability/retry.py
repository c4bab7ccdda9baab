"""
Retry with bounded backoff — for package managers that hold a lock.

Uses exponential backoff with jitter. Only errors flagged
``retryable`` (manager busy, command timeout) are retried; anything
else propagates on the first attempt.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from pdkconverge.core.errors import ExternalToolFailure, ReconcileError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How many times and how long to wait between attempts."""

    max_attempts: int = 4
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.3

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * self.jitter)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or a non-retryable error occurs.

    Raises:
        ExternalToolFailure: When retryable attempts are exhausted.
        ReconcileError: Any non-retryable error, unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except ReconcileError as exc:
            if not exc.retryable:
                raise
            if attempt >= policy.max_attempts:
                raise ExternalToolFailure(
                    f"{label or 'command'}: still busy after {attempt} attempts ({exc})",
                    returncode=getattr(exc, "returncode", None),
                    output=getattr(exc, "output", ""),
                ) from exc
            wait = policy.delay(attempt)
            logger.warning(
                "%s busy (attempt %d/%d), retrying in %.1fs: %s",
                label or "command", attempt, policy.max_attempts, wait, exc,
            )
            sleep(wait)
