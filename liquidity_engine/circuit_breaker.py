"""
Circuit breaker for venue order book fetches.

A venue that keeps failing is blocked for a cool-down period so a market
scan drops it quickly instead of waiting on retries for every symbol.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import logfire

from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpen(Exception):
    """Raised when a call is attempted while the venue's circuit is open."""

    def __init__(self, venue: str):
        super().__init__(f"Circuit '{venue}' is OPEN. Requests blocked.")
        self.venue = venue


CB_TRIPS_COUNTER = logfire.metric_counter(
    "circuit_breaker_trips_total",
    unit="1",
    description="Total number of times a venue circuit breaker has opened"
)
CB_FAILURE_COUNTER = logfire.metric_counter(
    "circuit_breaker_failures_total",
    unit="1",
    description="Total number of failed calls recorded by venue circuit breakers"
)


class CircuitBreaker:
    """
    Per-venue state machine.

    States:
    - CLOSED: calls go through.
    - OPEN: calls are rejected until recovery_timeout has passed.
    - HALF_OPEN: one trial call decides between CLOSED and OPEN.
    """

    def __init__(
        self,
        venue: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[int] = None,
    ):
        """
        Args:
            venue: Exchange id the breaker protects, used in logs and metrics
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds to stay open before a trial call
        """
        self.venue = venue
        self.failure_threshold = failure_threshold or settings.circuit_failure_threshold
        self.recovery_timeout = recovery_timeout or settings.circuit_recovery_timeout
        self._failures = 0
        self._opened_at: Optional[datetime] = None
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._opened_at:
            if datetime.now() - self._opened_at > timedelta(seconds=self.recovery_timeout):
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` under the breaker.

        Raises:
            CircuitBreakerOpen: circuit is OPEN, or HALF_OPEN with a trial call already running
            Exception: whatever ``func`` raised, after recording the failure
        """
        current = self.state
        if current is CircuitState.OPEN:
            raise CircuitBreakerOpen(self.venue)
        if current is CircuitState.HALF_OPEN:
            # Only one trial call at a time; the rest are rejected until it settles
            if self._trial_in_flight:
                raise CircuitBreakerOpen(self.venue)
            self._trial_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise
        finally:
            if current is CircuitState.HALF_OPEN:
                self._trial_in_flight = False

        if current is CircuitState.HALF_OPEN or self._failures:
            if current is CircuitState.HALF_OPEN:
                logger.info(f"Circuit '{self.venue}' recovered. State -> CLOSED")
                if settings.logfire_token:
                    logfire.info("circuit_recovered", venue=self.venue)
            self._reset()
        return result

    def _record_failure(self, error: Exception):
        self._failures += 1
        logger.warning(f"Circuit '{self.venue}' failure {self._failures}/{self.failure_threshold}: {error}")
        if settings.logfire_token:
            CB_FAILURE_COUNTER.add(1, {"venue": self.venue, "error": type(error).__name__})

        reopen = self._state is CircuitState.OPEN
        if self._failures >= self.failure_threshold or reopen:
            self._opened_at = datetime.now()
            if not reopen:
                self._state = CircuitState.OPEN
                logger.error(f"Circuit '{self.venue}' OPENED after {self._failures} failures.")
                if settings.logfire_token:
                    CB_TRIPS_COUNTER.add(1, {"venue": self.venue})
                    logfire.error("circuit_opened", venue=self.venue, failures=self._failures)

    def _reset(self):
        self._failures = 0
        self._state = CircuitState.CLOSED
        self._opened_at = None
