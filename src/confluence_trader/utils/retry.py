"""Reusable retry policy with linear backoff."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(step_s: float = 1.0) -> Callable[[int], float]:
    """Delay of ``attempt * step_s`` seconds after the given failed attempt."""

    def _delay(attempt: int) -> float:
        return attempt * step_s

    return _delay


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=linear_backoff)
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = time.sleep

    def call(
        self,
        fn: Callable[[], T],
        *,
        label: str = "call",
        should_retry: Optional[Callable[[BaseException], bool]] = None,
    ) -> T:
        """Run ``fn`` until it succeeds or attempts run out.

        The last exception is re-raised unchanged so callers can translate it
        into their own error type.
        """
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except self.retry_on as exc:
                retryable = should_retry(exc) if should_retry else True
                if not retryable or attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed on attempt %d/%d: %s",
                        label,
                        attempt,
                        self.max_attempts,
                        exc,
                    )
                    raise
                delay = self.backoff(attempt)
                logger.info(
                    "%s attempt %d/%d failed (%s); retrying in %.1fs",
                    label,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                self.sleep(delay)
        raise RuntimeError(f"{label}: retry loop exited without result")
