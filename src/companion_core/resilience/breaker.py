"""Process-wide circuit breakers keyed by logical operation name."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from companion_core.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(slots=True)
class CircuitBreakerState:
    failures: int = 0
    last_failure_at: float = 0.0
    state: CircuitState = CircuitState.CLOSED
    trial_in_flight: bool = False


class CircuitBreakerRegistry:
    """Thread-safe breaker table shared by every executor that receives it.

    Unknown names start CLOSED. An OPEN breaker admits a single trial call
    once `recovery_timeout_ms` has passed since its last failure; the trial's
    outcome closes or re-opens it.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, CircuitBreakerState] = {}

    def allow(self, name: str) -> bool:
        with self._lock:
            record = self._states.setdefault(name, CircuitBreakerState())
            if record.state is CircuitState.CLOSED:
                return True
            if record.state is CircuitState.HALF_OPEN:
                if record.trial_in_flight:
                    return False
                record.trial_in_flight = True
                return True

            elapsed_ms = (self._clock() - record.last_failure_at) * 1000.0
            if elapsed_ms > self.config.recovery_timeout_ms:
                record.state = CircuitState.HALF_OPEN
                record.trial_in_flight = True
                logger.info("Circuit %s half-open, allowing one trial call", name)
                return True
            return False

    def record_success(self, name: str) -> None:
        with self._lock:
            record = self._states.setdefault(name, CircuitBreakerState())
            if record.state is not CircuitState.CLOSED:
                logger.info("Circuit %s closed", name)
            record.failures = 0
            record.state = CircuitState.CLOSED
            record.trial_in_flight = False

    def record_failure(self, name: str) -> None:
        with self._lock:
            record = self._states.setdefault(name, CircuitBreakerState())
            record.failures += 1
            record.last_failure_at = self._clock()
            record.trial_in_flight = False
            if (
                record.state is CircuitState.HALF_OPEN
                or record.failures >= self.config.failure_threshold
            ):
                if record.state is not CircuitState.OPEN:
                    logger.warning(
                        "Circuit %s opened after %d failures", name, record.failures
                    )
                record.state = CircuitState.OPEN

    def state_of(self, name: str) -> CircuitState:
        with self._lock:
            record = self._states.get(name)
            return record.state if record else CircuitState.CLOSED

    def status(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                name: {**asdict(record), "state": record.state.value}
                for name, record in self._states.items()
            }

    def reset(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._states.clear()
            else:
                self._states.pop(name, None)
