from __future__ import annotations

import logging
import time
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Optional, Union


logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Tracks upstream failures across fetch calls and blocks calls while open.

    CLOSED -> OPEN once ``threshold`` failures have been recorded,
    OPEN -> HALF_OPEN when ``cooldown`` seconds have passed since the last
    failure, HALF_OPEN -> CLOSED on the next success or back to OPEN on the
    next failure.
    """

    def __init__(
        self,
        threshold: int = 5,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "upstream",
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be positive")
        self.threshold = threshold
        self.cooldown = cooldown
        self.name = name
        self._clock = clock
        self._lock = Lock()
        self.failures = 0
        self.last_failure_time: Optional[float] = None
        self.state = BreakerState.CLOSED

    def allow_request(self) -> bool:
        with self._lock:
            if self.state is not BreakerState.OPEN:
                return True
            elapsed = self._clock() - (self.last_failure_time or 0.0)
            if elapsed < self.cooldown:
                return False
            self.state = BreakerState.HALF_OPEN
            logger.info("Circuit %s half-open after %.1fs cool-down", self.name, elapsed)
            return True

    def record_result(self, success: bool) -> None:
        with self._lock:
            if success:
                if self.state is BreakerState.HALF_OPEN:
                    self.state = BreakerState.CLOSED
                    self.failures = 0
                    logger.info("Circuit %s closed", self.name)
                return

            self.failures += 1
            self.last_failure_time = self._clock()
            if self.state is BreakerState.HALF_OPEN or self.failures >= self.threshold:
                if self.state is not BreakerState.OPEN:
                    logger.warning("Circuit %s opened after %d failures", self.name, self.failures)
                self.state = BreakerState.OPEN

    def snapshot(self) -> Dict[str, Union[str, int]]:
        with self._lock:
            return {"circuit_breaker_state": self.state.value, "circuit_breaker_failures": self.failures}


__all__ = ["BreakerState", "CircuitBreaker"]
