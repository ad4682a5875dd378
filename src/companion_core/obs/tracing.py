"""Per-turn execution trails and aggregate turn metrics."""

from __future__ import annotations

import re
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from companion_core.types import ExecutionStep

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


class ExecutionTrace:
    """Ordered list of `ExecutionStep`s for one turn, with an optional listener."""

    def __init__(self, listener: Any | None = None) -> None:
        self.steps: list[ExecutionStep] = []
        self._listener = listener

    def add(self, step_type: str, description: str, **metadata: Any) -> ExecutionStep:
        step = ExecutionStep(type=step_type, description=description, metadata=metadata)
        self.steps.append(step)
        if self._listener is not None:
            self._listener(step)
        return step

    def types(self) -> list[str]:
        return [step.type for step in self.steps]


@dataclass(slots=True)
class TurnRecord:
    trace_id: str
    timestamp_utc: str
    conversation_id: str
    final_state: str
    route_reason: str | None
    used_fallback: bool
    provider_calls: int
    retrieval_calls: int
    tool_calls: int
    input_tokens: int
    output_tokens: int
    latency_ms: float
    steps: list[ExecutionStep] = field(default_factory=list)


class TraceStore:
    """Bounded in-memory store of recent turns for API-level observability."""

    def __init__(self, capacity: int = 500) -> None:
        self._records: deque[TurnRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        conversation_id: str,
        final_state: str,
        route_reason: str | None,
        used_fallback: bool,
        provider_calls: int,
        retrieval_calls: int,
        tool_calls: int,
        question: str,
        answer: str,
        latency_ms: float,
        steps: list[ExecutionStep],
    ) -> TurnRecord:
        record = TurnRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            conversation_id=conversation_id,
            final_state=final_state,
            route_reason=route_reason,
            used_fallback=used_fallback,
            provider_calls=provider_calls,
            retrieval_calls=retrieval_calls,
            tool_calls=tool_calls,
            input_tokens=estimate_token_count(question),
            output_tokens=estimate_token_count(answer),
            latency_ms=latency_ms,
            steps=list(steps),
        )
        with self._lock:
            self._records.append(record)
        return record

    def get(self, trace_id: str) -> TurnRecord:
        with self._lock:
            for record in self._records:
                if record.trace_id == trace_id:
                    return record
        raise KeyError(f"Trace not found: {trace_id}")

    def list_recent(self, limit: int = 20) -> list[TurnRecord]:
        with self._lock:
            return list(self._records)[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate turn metrics for dashboard display."""
        records = self.list_recent(limit=len(self._records))
        total = len(records)
        if total == 0:
            return {
                "total_turns": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "fallback_rate": 0.0,
                "pre_routed_turns": 0,
                "total_tool_calls": 0,
                "total_output_tokens": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_turns": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "fallback_rate": sum(1 for r in records if r.used_fallback) / total,
            "pre_routed_turns": sum(
                1 for r in records if r.provider_calls == 0 and r.retrieval_calls == 0
            ),
            "total_tool_calls": sum(r.tool_calls for r in records),
            "total_output_tokens": sum(r.output_tokens for r in records),
        }


class Timer:
    """Simple context timer used by the orchestrator and gateway."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
