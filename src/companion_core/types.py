"""Shared domain models."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class Document:
    """A saved note, bookmark or summary in the user's library."""

    id: str
    title: str
    content: str
    type: str = "note"
    url: str | None = None
    tags: list[str] = field(default_factory=list)
    date_added: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Chunk:
    """A bounded slice of a document; the unit of retrieval."""

    id: str
    document_id: str
    document_title: str
    index: int
    text: str
    embedding: list[float] = field(default_factory=list)


@dataclass(slots=True)
class SearchResult:
    chunk: Chunk
    score: float
    score_percent: int


@dataclass(frozen=True, slots=True)
class RouteDecision:
    use_local: bool
    use_web: bool
    reason: str


@dataclass(frozen=True, slots=True)
class PreRouteResult:
    should_route: bool
    response: str | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class HistoryMessage:
    role: str
    content: str


@dataclass(slots=True)
class ChatMessage:
    """A persisted conversation message."""

    conversation_id: str
    role: str
    content: str
    id: str = field(default_factory=lambda: new_id("msg"))
    timestamp: float = field(default_factory=time.time)
    sources: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Conversation:
    id: str
    title: str = "New conversation"
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    message_count: int = 0


@dataclass(slots=True)
class Fact:
    id: str
    category: str
    subject: str
    fact_text: str
    context: str | None = None
    confidence: float = 1.0
    created_at: float = field(default_factory=time.time)


@dataclass(slots=True)
class ToolCall:
    """A tool invocation requested by the completion provider."""

    id: str
    name: str
    arguments_json: str


@dataclass(slots=True)
class WebResult:
    title: str
    url: str
    description: str


class TurnState(str, Enum):
    ROUTING = "routing"
    RETRIEVING = "retrieving"
    PROMPTING = "prompting"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class ExecutionStep:
    """Observability record for one state of a turn."""

    type: str
    description: str
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)
