"""Circuit breaker guarding outbound Bitbucket calls.

In-memory, one breaker per executor. Uses time.monotonic() for timing.

    closed --(failure_threshold consecutive failures)--> open
    open --(reset_timeout elapsed)--> half_open
    half_open --(success)--> closed
    half_open --(failure)--> open
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Consecutive-failure circuit breaker."""
    failure_threshold: int = 5
    reset_timeout: float = 30.0  # seconds
    state: str = CLOSED
    consecutive_failures: int = 0
    opened_at: float = 0.0
    trips: int = field(default=0)

    def allow_request(self, now: Optional[float] = None) -> bool:
        """Return True if a request may be sent right now.

        An open breaker moves to half-open once reset_timeout has elapsed and
        lets the trial request through.
        """
        if self.state != OPEN:
            return True

        if now is None:
            now = time.monotonic()

        if now - self.opened_at >= self.reset_timeout:
            self.state = HALF_OPEN
            logger.info("Circuit breaker half-open, probing upstream")
            return True
        return False

    def record_success(self):
        if self.state == HALF_OPEN:
            logger.info("Circuit breaker closed after successful trial request")
        self.state = CLOSED
        self.consecutive_failures = 0

    def record_failure(self, now: Optional[float] = None):
        if now is None:
            now = time.monotonic()

        self.consecutive_failures += 1
        if self.state == HALF_OPEN or self.consecutive_failures >= self.failure_threshold:
            if self.state != OPEN:
                self.trips += 1
                logger.warning(
                    "Circuit breaker opened after %d consecutive failures",
                    self.consecutive_failures,
                )
            self.state = OPEN
            self.opened_at = now

    def time_until_half_open(self, now: Optional[float] = None) -> float:
        """Seconds until an open breaker lets a trial request through."""
        if self.state != OPEN:
            return 0.0
        if now is None:
            now = time.monotonic()
        return max(0.0, self.reset_timeout - (now - self.opened_at))

    @property
    def is_closed(self) -> bool:
        return self.state == CLOSED

    def stats(self) -> Dict[str, object]:
        return {
            "isClosed": self.is_closed,
            "state": self.state,
            "trips": self.trips,
        }
