"""Closed tool catalogue built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from langchain_core.tools import StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, ConfigDict, Field

ToolResult = dict[str, Any]


class ToolName(str, Enum):
    CREATE_NOTE = "create_note"
    CREATE_BOOKMARK = "create_bookmark"
    UPDATE_DOCUMENT = "update_document"
    DELETE_DOCUMENT = "delete_document"
    SEARCH_DOCUMENTS = "search_documents"
    LIST_DOCUMENTS = "list_documents"
    ADD_FACT = "add_fact"
    SEARCH_FACTS = "search_facts"
    LIST_FACTS = "list_facts"
    UPDATE_FACT = "update_fact"
    DELETE_FACT = "delete_fact"
    GET_CHAT_HISTORY = "get_chat_history"
    SEARCH_CONVERSATIONS = "search_conversations"
    DELETE_CONVERSATION = "delete_conversation"
    GET_USER_STATS = "get_user_stats"
    CREATE_SUMMARY = "create_summary"

    @classmethod
    def parse(cls, value: str) -> "ToolName | None":
        try:
            return cls(value)
        except ValueError:
            return None


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: ToolName
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[Any], Awaitable[ToolResult]]
    destructive: bool = False
    default_arguments: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    async def invoke(self, payload: dict[str, Any]) -> ToolResult:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)


class ToolRegistry:
    """Maps every `ToolName` to exactly one spec and exports provider schemas."""

    def __init__(self) -> None:
        self._tools: dict[ToolName, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name.value}")
        self._tools[spec.name] = spec

    def ensure_complete(self) -> None:
        """Fail at startup if any tool kind lacks a handler."""
        missing = [name.value for name in ToolName if name not in self._tools]
        if missing:
            raise RuntimeError(f"Tools without handlers: {', '.join(missing)}")

    def get(self, name: str) -> ToolSpec | None:
        tool = ToolName.parse(name)
        return self._tools.get(tool) if tool is not None else None

    def is_destructive(self, name: str) -> bool:
        spec = self.get(name)
        return spec is not None and spec.destructive

    def default_arguments(self, name: str) -> dict[str, Any]:
        spec = self.get(name)
        return dict(spec.default_arguments) if spec is not None else {}

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name.value,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec),
                )
            )
        return tools

    def tool_definitions(self) -> list[dict[str, Any]]:
        """OpenAI function-calling definitions for every registered tool."""
        return [convert_to_openai_tool(tool) for tool in self.as_langchain_tools()]

    @staticmethod
    def _build_coroutine(spec: ToolSpec) -> Callable[..., Awaitable[str]]:
        async def _callable(**kwargs: Any) -> str:
            return json.dumps(await spec.invoke(kwargs), default=str)

        return _callable
