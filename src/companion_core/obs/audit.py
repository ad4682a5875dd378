"""In-memory audit trail of tool executions."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(slots=True)
class AuditLogEntry:
    """One tool call as executed, including rejected and failed ones."""

    tool_name: str
    parameters: dict[str, Any]
    result: dict[str, Any]
    success: bool
    error: str | None = None
    conversation_id: str | None = None
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "tool_name": self.tool_name,
            "parameters": self.parameters,
            "result": self.result,
            "success": self.success,
            "error": self.error,
            "conversation_id": self.conversation_id,
            "latency_ms": self.latency_ms,
        }


class AuditLog:
    """Capped ring buffer; the oldest entries are evicted past `capacity`."""

    def __init__(self, capacity: int = 1000) -> None:
        self._entries: deque[AuditLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def recent(self, limit: int = 50) -> list[AuditLogEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries[-limit:] if limit > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
