"""FastAPI shell exposing chat, ingest and observability endpoints."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from companion_core.agent.orchestrator import TurnResult
from companion_core.config import CoreConfig
from companion_core.core import build_core
from companion_core.obs.log_setup import setup_logging
from companion_core.providers.base import CompletionProvider
from companion_core.types import Document, HistoryMessage, new_id

logger = logging.getLogger(__name__)


def _create_providers() -> list[CompletionProvider]:
    """OpenAI first when a key is set, then a local Ollama server as fallback."""
    from companion_core.providers.langchain_chat import (
        DEFAULT_OLLAMA_MODEL,
        DEFAULT_OLLAMA_URL,
        create_ollama_provider,
        create_openai_provider,
    )

    providers: list[CompletionProvider] = []
    if os.getenv("OPENAI_API_KEY"):
        providers.append(create_openai_provider(os.getenv("OPENAI_MODEL", "gpt-4o-mini")))
    if os.getenv("COMPANION_OLLAMA", "1") != "0":
        providers.append(
            create_ollama_provider(
                os.getenv("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
                base_url=os.getenv("OLLAMA_URL", DEFAULT_OLLAMA_URL),
            )
        )
    return providers


def _create_web_search() -> Any:
    if os.getenv("COMPANION_WEB_SEARCH", "1") == "0":
        return None

    from companion_core.providers.web_search import WikipediaSearchProvider

    return WikipediaSearchProvider()


class HistoryItem(BaseModel):
    role: str = Field(pattern="^(user|assistant|system)$")
    content: str


class ChatRequest(BaseModel):
    conversation_id: str | None = None
    message: str = Field(min_length=1)
    history: list[HistoryItem] = Field(default_factory=list)


class DocumentRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    type: str = "note"
    url: str | None = None
    tags: list[str] = Field(default_factory=list)
    fast: bool = False


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=20)


class ToolRequest(BaseModel):
    conversation_id: str | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)


if os.getenv("COMPANION_LOG_LEVEL"):
    setup_logging(getattr(logging, os.environ["COMPANION_LOG_LEVEL"].upper(), logging.INFO))

app = FastAPI(title="Companion Core", version="0.1.0")

_providers = _create_providers()
_core = build_core(
    config=CoreConfig(),
    providers=_providers,
    web_search=_create_web_search(),
)


def _turn_payload(result: TurnResult) -> dict[str, Any]:
    return {
        "conversation_id": result.message.conversation_id,
        "message_id": result.message.id,
        "content": result.content,
        "sources": result.sources,
        "state": result.state.value,
        "pre_routed": result.pre_routed,
        "used_fallback": result.used_fallback,
        "provider": result.provider,
        "route": asdict(result.route) if result.route else None,
        "trace_id": result.trace_id,
        "tools": [
            {"name": inv.name, "outcome": inv.outcome.value, "success": inv.result.get("success")}
            for inv in result.tool_invocations
        ],
    }


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "providers": [provider.name for provider in _providers],
        "documents": len(_core.storage.list_documents()),
        "turns": len(_core.trace_store.list_recent(limit=1000)),
    }


@app.post("/chat")
async def chat(request: ChatRequest) -> dict[str, Any]:
    conversation_id = request.conversation_id or new_id("conv")
    history = [HistoryMessage(role=item.role, content=item.content) for item in request.history]
    try:
        result = await _core.orchestrator.run_turn(conversation_id, request.message, history)
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Turn failed") from exc
    return _turn_payload(result)


@app.post("/documents")
async def create_document(request: DocumentRequest) -> dict[str, Any]:
    document = Document(
        id=new_id(request.type),
        title=request.title,
        content=request.content,
        type=request.type,
        url=request.url,
        tags=request.tags,
    )
    chunks = await _core.pipeline.ingest(document, fast=request.fast)
    return {
        "document_id": document.id,
        "chunks_created": len(chunks),
        "chunk_ids": [chunk.id for chunk in chunks],
    }


@app.post("/documents/reprocess")
async def reprocess_documents() -> dict[str, Any]:
    return {"chunks_embedded": await _core.pipeline.reprocess()}


@app.post("/sources/search")
async def source_search(request: SourceSearchRequest) -> dict[str, Any]:
    hits = await _core.engine.search(request.query, request.top_k)
    return {
        "items": [
            {
                "chunk_id": hit.chunk.id,
                "document_id": hit.chunk.document_id,
                "title": hit.chunk.document_title,
                "score": hit.score,
                "score_percent": hit.score_percent,
                "text": hit.chunk.text,
            }
            for hit in hits
        ]
    }


@app.post("/tools/{tool_name}")
async def run_tool(tool_name: str, request: ToolRequest) -> dict[str, Any]:
    return await _core.gateway.execute(
        tool_name, request.arguments, conversation_id=request.conversation_id
    )


@app.get("/conversations/{conversation_id}/messages")
def conversation_messages(conversation_id: str) -> dict[str, Any]:
    if _core.storage.get_conversation(conversation_id) is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return {"items": [asdict(msg) for msg in _core.storage.get_messages(conversation_id)]}


@app.get("/audit")
def audit(limit: int = 50) -> dict[str, Any]:
    return {"items": [entry.to_dict() for entry in _core.gateway.audit_log.recent(limit)]}


@app.get("/circuits")
def circuits() -> dict[str, Any]:
    return _core.executor.circuit_status()


@app.post("/circuits/reset")
def reset_circuits() -> dict[str, Any]:
    _core.executor.reset_circuits()
    return {"status": "reset"}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _core.trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _core.trace_store.summary()
