"""
Circuit breaker for oracle calls

CLOSED: calls go through, consecutive failures are counted.
OPEN: after `failure_threshold` consecutive failures calls are refused
      without contacting the oracle.
HALF_OPEN: once `reset_timeout` seconds have passed, one trial call is let
      through; success closes the breaker, failure reopens it.

Bot runs create a fresh breaker per invocation with reset_timeout=None, so
an opened breaker stays open for the rest of the run.
"""
import logging
import time
from enum import Enum
from typing import Optional, Callable

logger = logging.getLogger(__name__)


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.state = BreakerState.CLOSED
        self.failures = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.state == BreakerState.OPEN

    def allow_request(self) -> bool:
        """Whether a call may be attempted now."""
        if self.state == BreakerState.OPEN:
            if (
                self.reset_timeout is not None
                and self.opened_at is not None
                and self._clock() - self.opened_at >= self.reset_timeout
            ):
                self.state = BreakerState.HALF_OPEN
                logger.info("🔄 Circuit breaker half-open, probing oracle")
                return True
            return False
        return True

    def record_success(self) -> None:
        if self.state != BreakerState.CLOSED:
            logger.info("✅ Circuit breaker closed")
        self.state = BreakerState.CLOSED
        self.failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failures += 1
        if self.state == BreakerState.HALF_OPEN or self.failures >= self.failure_threshold:
            if self.state != BreakerState.OPEN:
                logger.warning(
                    f"⚠️ Circuit breaker opened after {self.failures} consecutive failures"
                )
            self.state = BreakerState.OPEN
            self.opened_at = self._clock()
