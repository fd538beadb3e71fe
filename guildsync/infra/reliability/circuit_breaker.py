# =============================================================================
# File: guildsync/infra/reliability/circuit_breaker.py
# Description: Circuit breakers for Discord, Redis and PostgreSQL
# =============================================================================

import asyncio
import time
from collections import deque
from enum import Enum, auto
from typing import Deque, Dict, Optional
import logging

from guildsync.config.reliability_config import CircuitBreakerConfig
from guildsync.infra.metrics.sync_metrics import circuit_breaker_state, circuit_breaker_trips

logger = logging.getLogger("guildsync.circuit_breaker")


class CircuitState(Enum):
    CLOSED = auto()
    OPEN = auto()
    HALF_OPEN = auto()


_STATE_GAUGE = {CircuitState.CLOSED: 0, CircuitState.OPEN: 1, CircuitState.HALF_OPEN: 2}


class CircuitBreakerOpenError(Exception):
    """Raised when a call is refused because the breaker is open."""
    pass


class CircuitBreaker:
    """
    Guards one external dependency. Callers ask ``can_execute()`` before a
    call and report the result with ``record_success``/``record_failure``.

    Opens after ``failure_threshold`` consecutive failures, or when the
    failure rate over the last ``window_size`` calls reaches
    ``failure_rate_threshold``. After ``reset_timeout_seconds`` up to
    ``half_open_max_calls`` probes are let through; ``success_threshold``
    probe successes close it again, any probe failure reopens it.
    """

    def __init__(self, config: CircuitBreakerConfig):
        self.name = config.name
        self.config = config

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_successes = 0
        self._probes_started = 0
        self._opened_at: Optional[float] = None
        self._window: Optional[Deque[bool]] = deque(maxlen=config.window_size) if config.window_size else None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def can_execute(self) -> bool:
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if time.monotonic() - (self._opened_at or 0.0) < self.config.reset_timeout_seconds:
                return False
            self._set_state(CircuitState.HALF_OPEN)
            self._probes_started = 0
            self._probe_successes = 0

        if self._probes_started < self.config.half_open_max_calls:
            self._probes_started += 1
            return True
        return False

    async def record_success(self) -> None:
        async with self._lock:
            if self._window is not None:
                self._window.append(True)
            self._consecutive_failures = 0

            if self._state == CircuitState.HALF_OPEN:
                self._probe_successes += 1
                if self._probe_successes >= self.config.success_threshold:
                    self._close()

    async def record_failure(self, error_details: Optional[str] = None) -> None:
        async with self._lock:
            if self._window is not None:
                self._window.append(False)
            self._consecutive_failures += 1

            if error_details:
                logger.debug(f"Circuit breaker {self.name} failure: {error_details}")

            if self._state == CircuitState.HALF_OPEN:
                self._open()
            elif self._state == CircuitState.CLOSED and self._should_open():
                self._open()

    def _should_open(self) -> bool:
        if self._consecutive_failures >= self.config.failure_threshold:
            return True
        if self.config.failure_rate_threshold is None or self._window is None:
            return False
        if len(self._window) < self.config.window_size:
            return False
        return self.failure_rate() >= self.config.failure_rate_threshold

    def failure_rate(self) -> float:
        if not self._window:
            return 0.0
        return sum(1 for ok in self._window if not ok) / len(self._window)

    def _open(self) -> None:
        self._opened_at = time.monotonic()
        self._set_state(CircuitState.OPEN)
        circuit_breaker_trips.labels(name=self.name).inc()
        logger.warning(f"Circuit breaker {self.name} opened")

    def _close(self) -> None:
        self._consecutive_failures = 0
        if self._window is not None:
            self._window.clear()
        self._set_state(CircuitState.CLOSED)
        logger.info(f"Circuit breaker {self.name} closed")

    def _set_state(self, state: CircuitState) -> None:
        self._state = state
        circuit_breaker_state.labels(name=self.name).set(_STATE_GAUGE[state])

    def get_state_sync(self) -> str:
        return self._state.name


_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
    """Get or create the process-wide breaker called ``name``."""
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(config or CircuitBreakerConfig(name=name))
    return _circuit_breakers[name]


def reset_circuit_breakers() -> None:
    """Drop every registered breaker (for testing)."""
    _circuit_breakers.clear()
