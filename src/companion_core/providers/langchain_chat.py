"""Completion provider backed by any LangChain chat model."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessageChunk, BaseMessage

from companion_core.providers.base import StreamDelta, ToolCallDelta

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.1:8b-instruct-q8_0"


class LangChainChatProvider:
    """Streams from `model.astream`, binding tool definitions when given."""

    def __init__(
        self,
        model: BaseChatModel,
        *,
        name: str = "langchain",
        availability_check: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self.model = model
        self.name = name
        self._availability_check = availability_check

    async def is_available(self) -> bool:
        if self._availability_check is None:
            return True
        return await self._availability_check()

    async def stream_complete(
        self,
        messages: Sequence[BaseMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamDelta]:
        runnable = self.model.bind_tools(tools) if tools else self.model
        async for chunk in runnable.astream(list(messages)):
            text = _chunk_text(chunk.content)
            if text:
                yield StreamDelta(content=text)
            if isinstance(chunk, AIMessageChunk):
                for fragment in chunk.tool_call_chunks:
                    yield StreamDelta(
                        tool_call=ToolCallDelta(
                            index=fragment.get("index"),
                            id=fragment.get("id"),
                            name=fragment.get("name"),
                            arguments=fragment.get("args") or "",
                        )
                    )


def create_openai_provider(
    model: str = "gpt-4o-mini",
    *,
    api_key: str | None = None,
    **kwargs: Any,
) -> LangChainChatProvider:
    """Build a provider on `langchain_openai.ChatOpenAI`; requires the `openai` extra.

    The provider reports itself available only while an API key is configured,
    either passed in or taken from `OPENAI_API_KEY`.
    """
    from langchain_openai import ChatOpenAI

    key = api_key or os.getenv("OPENAI_API_KEY")
    if key:
        kwargs["api_key"] = key
    chat = ChatOpenAI(model=model, temperature=0.7, streaming=True, **kwargs)

    async def _configured() -> bool:
        return bool(key)

    return LangChainChatProvider(chat, name="openai", availability_check=_configured)


def create_ollama_provider(
    model: str = DEFAULT_OLLAMA_MODEL,
    *,
    base_url: str = DEFAULT_OLLAMA_URL,
    client: httpx.AsyncClient | None = None,
    **kwargs: Any,
) -> LangChainChatProvider:
    """Build a provider on a local Ollama server via `langchain_ollama.ChatOllama`.

    Availability is checked against the server before every turn.
    """
    from langchain_ollama import ChatOllama

    chat = ChatOllama(model=model, base_url=base_url, temperature=0.7, **kwargs)
    return LangChainChatProvider(
        chat,
        name="ollama",
        availability_check=lambda: ollama_is_running(base_url, client=client),
    )


async def ollama_is_running(
    base_url: str = DEFAULT_OLLAMA_URL,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 2.0,
) -> bool:
    url = base_url.rstrip("/") + "/api/tags"
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as http:
                response = await http.get(url)
    except httpx.HTTPError as exc:
        logger.debug("Ollama at %s is not reachable: %s", base_url, exc)
        return False
    return response.is_success


def _chunk_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return ""
