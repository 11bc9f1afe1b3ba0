"""
Circuit Breaker for upstream collaborators

Keeps a dead rating proxy or weather provider from costing every build a
full timeout. While a breaker is OPEN the gateway skips the network call
and answers with its empty result, exactly as if the call had failed.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Upstream is failing, calls are refused immediately
- HALF_OPEN: Recovery probe, calls pass through until one fails or enough succeed

Usage:
    async with rating_proxy_circuit_breaker:
        response = await client.post(...)
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from place_intel.core.config import settings
from place_intel.core.metrics import metrics

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}


@dataclass
class CircuitBreakerStats:
    """Statistics for a circuit breaker"""
    name: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    total_calls: int = 0
    total_failures: int = 0
    total_rejections: int = 0
    total_circuit_opens: int = 0

    @property
    def failure_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.total_failures / self.total_calls

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_circuit_opens": self.total_circuit_opens,
            "failure_rate": self.failure_rate,
        }


class CircuitBreakerError(Exception):
    """Raised when a call is refused because the circuit is open"""
    def __init__(self, name: str, message: str = "Circuit breaker is open"):
        self.name = name
        self.message = f"[{name}] {message}"
        super().__init__(self.message)


class CircuitBreaker:
    """
    Async circuit breaker around one upstream collaborator.

    Attributes:
        name: Identifier, also used as the metrics label
        failure_threshold: Consecutive failures before the circuit opens
        recovery_timeout: Seconds spent OPEN before a HALF_OPEN probe is allowed
        success_threshold: Successful probes needed to close again
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        success_threshold: int = 1,
        clock=time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self._stats = CircuitBreakerStats(name=name)
        self._lock = threading.Lock()
        self._publish_state()

    @property
    def state(self) -> CircuitState:
        return self._stats.state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def _publish_state(self):
        metrics.circuit_breaker_state.labels(name=self.name).set(
            _STATE_GAUGE_VALUES[self._stats.state]
        )

    def _should_allow_request(self) -> bool:
        with self._lock:
            if self._stats.state == CircuitState.CLOSED:
                return True

            if self._stats.state == CircuitState.OPEN:
                elapsed = self._clock() - (self._stats.last_failure_time or 0.0)
                if elapsed < self.recovery_timeout:
                    self._stats.total_rejections += 1
                    return False
                self._stats.state = CircuitState.HALF_OPEN
                self._stats.success_count = 0
                self._publish_state()
                logger.info(
                    f"Circuit breaker '{self.name}' HALF_OPEN after {elapsed:.1f}s"
                )

            return True

    def _record_success(self):
        with self._lock:
            self._stats.total_calls += 1
            self._stats.failure_count = 0
            if self._stats.state == CircuitState.HALF_OPEN:
                self._stats.success_count += 1
                if self._stats.success_count >= self.success_threshold:
                    self._stats.state = CircuitState.CLOSED
                    self._publish_state()
                    logger.info(f"Circuit breaker '{self.name}' CLOSED")

    def _record_failure(self, exception: BaseException):
        with self._lock:
            self._stats.total_calls += 1
            self._stats.total_failures += 1
            self._stats.failure_count += 1
            self._stats.last_failure_time = self._clock()

            reopen = self._stats.state == CircuitState.HALF_OPEN
            trip = (
                self._stats.state == CircuitState.CLOSED
                and self._stats.failure_count >= self.failure_threshold
            )
            if reopen or trip:
                self._stats.state = CircuitState.OPEN
                self._stats.total_circuit_opens += 1
                self._publish_state()
                logger.warning(
                    f"Circuit breaker '{self.name}' OPENED after "
                    f"{self._stats.failure_count} failures: {type(exception).__name__}"
                )

    async def __aenter__(self):
        if not self._should_allow_request():
            raise CircuitBreakerError(
                self.name,
                f"Circuit is OPEN. Will retry after {self.recovery_timeout}s",
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_val is None:
            self._record_success()
        elif isinstance(exc_val, Exception):
            self._record_failure(exc_val)
        return False  # Don't suppress exceptions

    def reset(self):
        """Manually reset the circuit breaker to closed state."""
        with self._lock:
            self._stats.state = CircuitState.CLOSED
            self._stats.failure_count = 0
            self._stats.success_count = 0
            self._publish_state()


# Global circuit breaker registry
_circuit_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(
    name: str,
    failure_threshold: Optional[int] = None,
    recovery_timeout: Optional[float] = None,
) -> CircuitBreaker:
    """
    Get or create a circuit breaker by name.

    Breakers are shared per upstream so that every engine in the process
    sees the same health picture.
    """
    with _registry_lock:
        if name not in _circuit_breakers:
            _circuit_breakers[name] = CircuitBreaker(
                name=name,
                failure_threshold=failure_threshold or settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=recovery_timeout or settings.CIRCUIT_BREAKER_RECOVERY_SECONDS,
            )
        return _circuit_breakers[name]


def get_all_circuit_breaker_stats() -> Dict[str, Dict]:
    """Get statistics for all circuit breakers."""
    with _registry_lock:
        return {name: cb.stats.to_dict() for name, cb in _circuit_breakers.items()}


def reset_all_circuit_breakers():
    """Reset all circuit breakers to closed state."""
    with _registry_lock:
        for cb in _circuit_breakers.values():
            cb.reset()


rating_proxy_circuit_breaker = get_circuit_breaker(name="rating_proxy")

weather_circuit_breaker = get_circuit_breaker(
    name="weather",
    failure_threshold=3,
    recovery_timeout=120.0,
)

telemetry_circuit_breaker = get_circuit_breaker(name="telemetry_sink")
