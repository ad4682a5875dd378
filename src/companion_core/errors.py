"""Exception hierarchy for the assistant core.

Every exception carries:
- code: ErrorCode for categorization
- message: human-readable message
- retryable: whether the resilience layer may try again
- context: extra key/value pairs for debugging
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import httpx


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    TEMPORARY_FAILURE = "TEMPORARY_FAILURE"
    AUTH_ERROR = "AUTH_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.RATE_LIMIT,
        ErrorCode.TEMPORARY_FAILURE,
    }
)

_STATUS_CODES = {
    401: ErrorCode.AUTH_ERROR,
    403: ErrorCode.AUTH_ERROR,
    404: ErrorCode.NOT_FOUND,
    408: ErrorCode.TIMEOUT,
    429: ErrorCode.RATE_LIMIT,
    500: ErrorCode.TEMPORARY_FAILURE,
    502: ErrorCode.TEMPORARY_FAILURE,
    503: ErrorCode.TEMPORARY_FAILURE,
    504: ErrorCode.TIMEOUT,
}


class CompanionError(Exception):
    """Base exception for all core errors."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.context = context if context else None
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }


class TransientError(CompanionError):
    """Network, timeout or provider-side throttling; safe to retry."""

    code = ErrorCode.TEMPORARY_FAILURE
    retryable = True


class ProviderAuthError(CompanionError):
    code = ErrorCode.AUTH_ERROR


class ProviderNotFoundError(CompanionError):
    code = ErrorCode.NOT_FOUND


class CircuitOpenError(CompanionError):
    """Raised without invoking the operation while its breaker is open."""

    code = ErrorCode.CIRCUIT_OPEN

    def __init__(self, operation_name: str) -> None:
        super().__init__(
            f"Circuit breaker open for {operation_name}",
            operation_name=operation_name,
        )
        self.operation_name = operation_name


class StandardizedError(CompanionError):
    """Final failure of a resilient operation after classification and retries."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        operation_name: str,
        attempts: int,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            retryable=code in RETRYABLE_CODES,
            operation_name=operation_name,
            attempts=attempts,
        )
        self.operation_name = operation_name
        self.attempts = attempts
        self.cause = cause


def classify_error(error: BaseException) -> ErrorCode:
    """Map an arbitrary exception onto an ErrorCode.

    Errors of this hierarchy keep their own code. Everything else is matched
    on type first and then on message keywords; unknown errors are not retried.
    """

    if isinstance(error, CompanionError):
        return error.code
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorCode.TIMEOUT
    if isinstance(error, httpx.HTTPStatusError):
        return _STATUS_CODES.get(error.response.status_code, ErrorCode.UNKNOWN_ERROR)
    if isinstance(error, (ConnectionError, httpx.TransportError)):
        return ErrorCode.NETWORK_ERROR

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return ErrorCode.TIMEOUT
    if "rate limit" in message or "429" in message:
        return ErrorCode.RATE_LIMIT
    if "unauthorized" in message or "401" in message or "invalid api key" in message:
        return ErrorCode.AUTH_ERROR
    if "not found" in message or "404" in message:
        return ErrorCode.NOT_FOUND
    if "fetch" in message or "connection" in message or "network" in message:
        return ErrorCode.NETWORK_ERROR
    if "temporar" in message or "503" in message or "overloaded" in message:
        return ErrorCode.TEMPORARY_FAILURE
    return ErrorCode.UNKNOWN_ERROR
