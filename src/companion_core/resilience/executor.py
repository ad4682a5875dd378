"""Retry with exponential backoff behind a per-operation circuit breaker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from companion_core.config import RetryConfig
from companion_core.errors import (
    RETRYABLE_CODES,
    CircuitOpenError,
    StandardizedError,
    classify_error,
)
from companion_core.resilience.breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


@dataclass(slots=True)
class ParallelResult:
    name: str
    success: bool
    result: Any = None
    error: BaseException | None = None


def backoff_delay_ms(config: RetryConfig, attempt: int) -> float:
    """Delay before retry number `attempt` (1-based)."""
    delay = config.base_delay_ms * config.backoff_multiplier ** (attempt - 1)
    return min(delay, config.max_delay_ms)


class ResilientExecutor:
    """Runs arbitrary async operations under one retry and breaker policy.

    The executor knows nothing about what it runs. Errors are classified into
    `ErrorCode`s; only network, timeout, rate-limit and temporary failures are
    retried. The final failure (or the first non-retryable one) is raised as
    `StandardizedError` and counted against the operation's breaker.
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry | None = None,
        retry: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.breakers = breakers or CircuitBreakerRegistry()
        self.retry = retry or RetryConfig()
        self._sleep = sleep

    async def run(
        self,
        operation: Operation[T],
        name: str,
        retry: RetryConfig | None = None,
    ) -> T:
        config = retry or self.retry
        if not self.breakers.allow(name):
            raise CircuitOpenError(name)

        try:
            return await self._attempt(operation, name, config)
        except asyncio.CancelledError:
            # Cancelled mid-call or mid-backoff; a half-open trial must not stay in flight.
            self.breakers.record_failure(name)
            raise

    async def _attempt(self, operation: Operation[T], name: str, config: RetryConfig) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await operation()
            except Exception as exc:
                code = classify_error(exc)
                if code not in RETRYABLE_CODES or attempt >= config.max_retries:
                    self.breakers.record_failure(name)
                    raise StandardizedError(
                        f"{name} failed after {attempt} attempts: {exc}",
                        code=code,
                        operation_name=name,
                        attempts=attempt,
                        cause=exc,
                    ) from exc

                delay_ms = backoff_delay_ms(config, attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.0f ms",
                    name, attempt, config.max_retries, code.value, delay_ms,
                )
                await self._sleep(delay_ms / 1000.0)
            else:
                self.breakers.record_success(name)
                return result

    async def run_parallel(
        self,
        operations: Sequence[tuple[str, Operation[Any]]],
        retry: RetryConfig | None = None,
    ) -> list[ParallelResult]:
        """Run named operations concurrently; every outcome is returned, in order."""

        async def _one(name: str, operation: Operation[Any]) -> ParallelResult:
            try:
                result = await self.run(operation, name, retry)
                return ParallelResult(name=name, success=True, result=result)
            except Exception as exc:
                return ParallelResult(name=name, success=False, error=exc)

        return list(await asyncio.gather(*(_one(name, op) for name, op in operations)))

    def circuit_status(self) -> dict[str, dict[str, Any]]:
        return self.breakers.status()

    def reset_circuits(self) -> None:
        self.breakers.reset()
