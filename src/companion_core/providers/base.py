"""Provider contracts for streaming completions and web search."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from langchain_core.messages import BaseMessage

from companion_core.types import ToolCall, WebResult


@dataclass(slots=True)
class ToolCallDelta:
    """A fragment of a tool call; arguments arrive as partial JSON text."""

    index: int | None = None
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(slots=True)
class StreamDelta:
    content: str | None = None
    tool_call: ToolCallDelta | None = None


class CompletionProvider(Protocol):
    name: str

    async def is_available(self) -> bool:
        """Cheap readiness check performed before each turn."""

    def stream_complete(
        self,
        messages: Sequence[BaseMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamDelta]:
        """Stream content and tool-call fragments for one completion."""


class WebSearchProvider(Protocol):
    async def search(self, query: str, n: int = 5) -> list[WebResult]:
        """Return up to `n` results."""

    async def fetch_content(self, url: str) -> str:
        """Return readable page text, or an empty string when unavailable."""


@dataclass(slots=True)
class _PartialCall:
    id: str | None = None
    name: str = ""
    arguments: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Merges streamed tool-call fragments into complete `ToolCall`s.

    Fragments are matched by index when the provider sends one, else by id.
    A fragment carrying neither continues the most recent call.
    """

    def __init__(self) -> None:
        self._calls: list[_PartialCall] = []
        self._by_index: dict[int, _PartialCall] = {}
        self._by_id: dict[str, _PartialCall] = {}

    def add(self, delta: ToolCallDelta) -> None:
        call = self._resolve(delta)
        if delta.id and not call.id:
            call.id = delta.id
            self._by_id[delta.id] = call
        if delta.name:
            call.name = call.name or delta.name
        if delta.arguments:
            call.arguments.append(delta.arguments)

    def calls(self) -> list[ToolCall]:
        return [
            ToolCall(
                id=call.id or f"call_{position}",
                name=call.name,
                arguments_json="".join(call.arguments),
            )
            for position, call in enumerate(self._calls)
        ]

    def _resolve(self, delta: ToolCallDelta) -> _PartialCall:
        if delta.index is not None and delta.index in self._by_index:
            return self._by_index[delta.index]
        if delta.id and delta.id in self._by_id:
            return self._by_id[delta.id]
        if delta.index is None and not delta.id and self._calls:
            return self._calls[-1]

        call = _PartialCall()
        self._calls.append(call)
        if delta.index is not None:
            self._by_index[delta.index] = call
        return call
