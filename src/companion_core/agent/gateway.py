"""Rate-limited, confirmation-gated and audited tool dispatch."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from companion_core.agent.registry import ToolRegistry, ToolResult
from companion_core.config import RateLimitConfig
from companion_core.obs.audit import AuditLog, AuditLogEntry
from companion_core.obs.tracing import Timer

logger = logging.getLogger(__name__)

AFFIRMATIVE_TOKEN = "yes"
CONFIRMATION_REQUIRED = (
    'Deletion requires confirmation. Please confirm by setting confirmation to "yes"'
)
GENERIC_FAILURE = "Tool execution failed"
GLOBAL_SCOPE = "__global__"


@dataclass(slots=True)
class RateLimitState:
    operations: int = 0
    destructive_operations: int = 0
    last_operation_at: float | None = None


class RateLimiter:
    """Per-turn operation counters, keyed per conversation or shared globally.

    `reset` clears the counters for a new turn but keeps the time of the last
    operation, so the cooldown still applies across a turn boundary. Only the
    `max_tracked_keys` most recently used keys are kept.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._states: OrderedDict[str, RateLimitState] = OrderedDict()

    def key_for(self, conversation_id: str | None) -> str:
        if self.config.scope == "global" or conversation_id is None:
            return GLOBAL_SCOPE
        return conversation_id

    def acquire(self, key: str, *, destructive: bool) -> str | None:
        """Count one operation, or return the rejection reason without counting."""
        with self._lock:
            state = self._touch(key)
            now = self._clock()
            if (
                state.last_operation_at is not None
                and (now - state.last_operation_at) * 1000.0 < self.config.cooldown_ms
            ):
                return "Rate limit: too many operations too quickly"
            if state.operations >= self.config.max_operations_per_turn:
                return "Rate limit: too many operations in this message"
            if destructive and state.destructive_operations >= self.config.max_destructive_ops_per_turn:
                return "Rate limit: too many destructive operations in this message"

            state.operations += 1
            state.last_operation_at = now
            if destructive:
                state.destructive_operations += 1
            return None

    def _touch(self, key: str) -> RateLimitState:
        state = self._states.get(key)
        if state is not None:
            self._states.move_to_end(key)
            return state
        state = self._states[key] = RateLimitState()
        while len(self._states) > self.config.max_tracked_keys:
            self._states.popitem(last=False)
        return state

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            targets = list(self._states) if key is None else [key]
            for target in targets:
                state = self._states.get(target)
                if state is not None:
                    state.operations = 0
                    state.destructive_operations = 0

    def snapshot(self, key: str) -> RateLimitState:
        with self._lock:
            state = self._states.get(key, RateLimitState())
            return RateLimitState(
                state.operations, state.destructive_operations, state.last_operation_at
            )


def is_confirmed(value: Any) -> bool:
    if value is True:
        return True
    return isinstance(value, str) and value.strip().lower() == AFFIRMATIVE_TOKEN


class ToolGateway:
    """Single entry point for side-effecting tool calls.

    Order of checks: rate limits, tool lookup, destructive confirmation,
    argument validation, then the handler. Every outcome is a result dict with
    a `success` flag and is appended to the audit log once the call finishes.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        rate_limiter: RateLimiter | None = None,
        audit_log: AuditLog | None = None,
    ) -> None:
        registry.ensure_complete()
        self.registry = registry
        self.rate_limiter = rate_limiter or RateLimiter()
        self.audit_log = audit_log or AuditLog(self.rate_limiter.config.audit_capacity)

    def reset_rate_limits(self, conversation_id: str | None = None) -> None:
        if conversation_id is None:
            self.rate_limiter.reset()
        else:
            self.rate_limiter.reset(self.rate_limiter.key_for(conversation_id))

    async def execute(
        self,
        tool_name: str,
        args: dict[str, Any],
        *,
        conversation_id: str | None = None,
    ) -> ToolResult:
        with Timer() as timer:
            result, error = await self._dispatch(tool_name, args, conversation_id)

        self.audit_log.append(
            AuditLogEntry(
                tool_name=tool_name,
                parameters=dict(args),
                result=result,
                success=bool(result.get("success")),
                error=error,
                conversation_id=conversation_id,
                latency_ms=timer.elapsed_ms,
            )
        )
        return result

    async def _dispatch(
        self,
        tool_name: str,
        args: dict[str, Any],
        conversation_id: str | None,
    ) -> tuple[ToolResult, str | None]:
        destructive = self.registry.is_destructive(tool_name)
        key = self.rate_limiter.key_for(conversation_id)
        rejection = self.rate_limiter.acquire(key, destructive=destructive)
        if rejection is not None:
            logger.info("Rejected %s for %s: %s", tool_name, key, rejection)
            return {"success": False, "code": "rate_limited", "error": rejection}, rejection

        spec = self.registry.get(tool_name)
        if spec is None:
            message = f"Unknown tool: {tool_name}"
            logger.warning(message)
            return {"success": False, "code": "unknown_tool", "error": message}, message

        if spec.destructive and not is_confirmed(args.get("confirmation")):
            return (
                {
                    "success": False,
                    "code": "confirmation_required",
                    "requires_confirmation": True,
                    "error": CONFIRMATION_REQUIRED,
                },
                CONFIRMATION_REQUIRED,
            )

        try:
            result = await spec.invoke(args)
        except ValidationError as exc:
            message = f"Invalid arguments for {tool_name}: {exc.error_count()} error(s)"
            return (
                {
                    "success": False,
                    "code": "validation_error",
                    "error": message,
                    "details": exc.errors(include_url=False, include_context=False, include_input=False),
                },
                message,
            )
        except Exception:
            logger.exception("Tool %s raised", tool_name)
            return {"success": False, "code": "internal_error", "error": GENERIC_FAILURE}, GENERIC_FAILURE

        return result, None if result.get("success") else str(result.get("error"))
