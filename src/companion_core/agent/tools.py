"""Built-in tools exposed to the completion provider."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from companion_core.agent.registry import ToolName, ToolRegistry, ToolResult, ToolSpec
from companion_core.ingest.pipeline import IngestPipeline
from companion_core.retrieval.engine import RetrievalEngine
from companion_core.storage import Storage
from companion_core.types import Document, Fact, new_id

Confirmation = str | bool | None


class CreateNoteInput(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)


class CreateBookmarkInput(BaseModel):
    url: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    tags: list[str] = Field(default_factory=list)


class UpdateDocumentInput(BaseModel):
    document_id: str = Field(min_length=1)
    title: str | None = None
    content: str | None = None
    tags: list[str] | None = None


class DeleteDocumentInput(BaseModel):
    document_id: str = Field(min_length=1)
    confirmation: Confirmation = Field(default=None, description='Must be "yes" to delete.')


class SearchDocumentsInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)
    type: str | None = None


class ListDocumentsInput(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)
    tag: str | None = None
    type: str | None = None


class AddFactInput(BaseModel):
    category: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    fact_text: str = Field(min_length=1)
    context: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class SearchFactsInput(BaseModel):
    query: str = Field(min_length=1)
    category: str | None = None
    subject: str | None = None
    limit: int = Field(default=10, ge=1, le=50)


class ListFactsInput(BaseModel):
    category: str | None = None
    limit: int = Field(default=20, ge=1, le=100)


class UpdateFactInput(BaseModel):
    fact_id: str = Field(min_length=1)
    fact_text: str | None = None
    context: str | None = None


class DeleteFactInput(BaseModel):
    fact_id: str = Field(min_length=1)
    confirmation: Confirmation = Field(default=None, description='Must be "yes" to delete.')


class ChatHistoryInput(BaseModel):
    conversation_id: str | None = None
    limit: int = Field(default=10, ge=1, le=100)


class SearchConversationsInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=50)


class DeleteConversationInput(BaseModel):
    conversation_id: str = Field(min_length=1)
    confirmation: Confirmation = Field(default=None, description='Must be "yes" to delete.')


class UserStatsInput(BaseModel):
    pass


class CreateSummaryInput(BaseModel):
    query: str = Field(min_length=1)
    summary_title: str = "AI Generated Summary"
    summary_type: Literal["summary", "key_points", "outline"] = "summary"
    limit: int = Field(default=5, ge=1, le=20)


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    storage: Storage,
    engine: RetrievalEngine,
    pipeline: IngestPipeline,
) -> None:
    """Register the full tool catalogue against one storage backend.

    Handlers return structured results. Missing records come back as
    `{"success": False, "code": "not_found"}` rather than raising.
    """

    async def _create_note(data: CreateNoteInput) -> ToolResult:
        document = Document(
            id=new_id("note"), title=data.title, content=data.content, tags=data.tags
        )
        chunks = await pipeline.ingest(document)
        return {
            "success": True,
            "document_id": document.id,
            "chunks": len(chunks),
            "message": f'Created note "{data.title}"',
        }

    async def _create_bookmark(data: CreateBookmarkInput) -> ToolResult:
        document = Document(
            id=new_id("bookmark"),
            title=data.title,
            content=data.description or data.title,
            type="bookmark",
            url=data.url,
            tags=data.tags,
        )
        await pipeline.ingest(document)
        return {
            "success": True,
            "document_id": document.id,
            "message": f'Saved bookmark "{data.title}"',
        }

    async def _update_document(data: UpdateDocumentInput) -> ToolResult:
        patch = data.model_dump(exclude={"document_id"}, exclude_none=True)
        if not patch:
            return {"success": False, "code": "validation_error", "error": "Nothing to update"}
        document = storage.update_document(data.document_id, patch)
        if document is None:
            return _not_found("Document", data.document_id)
        if "title" in patch or "content" in patch:
            await pipeline.ingest(document)
        return {
            "success": True,
            "document_id": document.id,
            "updated_fields": sorted(patch),
            "message": f'Updated "{document.title}"',
        }

    async def _delete_document(data: DeleteDocumentInput) -> ToolResult:
        document = storage.get_document(data.document_id)
        if document is None:
            return _not_found("Document", data.document_id)
        storage.delete_chunks(document.id)
        storage.delete_document(document.id)
        return {"success": True, "message": f'Deleted "{document.title}"'}

    async def _search_documents(data: SearchDocumentsInput) -> ToolResult:
        fetch = data.limit * 3 if data.type else data.limit
        hits = await engine.search(data.query, fetch)
        results: list[dict[str, Any]] = []
        for hit in hits:
            document = storage.get_document(hit.chunk.document_id)
            if data.type and (document is None or document.type != data.type):
                continue
            results.append(
                {
                    "document_id": hit.chunk.document_id,
                    "title": hit.chunk.document_title,
                    "snippet": _truncate(hit.chunk.text.replace("\n", " "), 220),
                    "score_percent": hit.score_percent,
                }
            )
        results = results[: data.limit]
        return {"success": True, "count": len(results), "results": results}

    async def _list_documents(data: ListDocumentsInput) -> ToolResult:
        documents = [
            doc
            for doc in storage.list_documents()
            if (data.tag is None or data.tag in doc.tags)
            and (data.type is None or doc.type == data.type)
        ][: data.limit]
        return {
            "success": True,
            "count": len(documents),
            "documents": [
                {"id": doc.id, "title": doc.title, "type": doc.type, "tags": doc.tags}
                for doc in documents
            ],
        }

    async def _add_fact(data: AddFactInput) -> ToolResult:
        fact = Fact(id=new_id("fact"), **data.model_dump())
        storage.save_fact(fact)
        return {"success": True, "fact_id": fact.id, "message": f"Remembered: {fact.fact_text}"}

    async def _search_facts(data: SearchFactsInput) -> ToolResult:
        needle = data.query.lower()
        facts = [
            fact
            for fact in storage.list_facts()
            if (needle in fact.fact_text.lower() or needle in fact.subject.lower())
            and (data.category is None or fact.category == data.category)
            and (data.subject is None or fact.subject.lower() == data.subject.lower())
        ][: data.limit]
        return {"success": True, "count": len(facts), "facts": [_fact_dict(f) for f in facts]}

    async def _list_facts(data: ListFactsInput) -> ToolResult:
        facts = [
            fact
            for fact in storage.list_facts()
            if data.category is None or fact.category == data.category
        ][: data.limit]
        return {"success": True, "count": len(facts), "facts": [_fact_dict(f) for f in facts]}

    async def _update_fact(data: UpdateFactInput) -> ToolResult:
        patch = data.model_dump(exclude={"fact_id"}, exclude_none=True)
        if not patch:
            return {"success": False, "code": "validation_error", "error": "Nothing to update"}
        fact = storage.update_fact(data.fact_id, patch)
        if fact is None:
            return _not_found("Fact", data.fact_id)
        return {"success": True, "fact": _fact_dict(fact)}

    async def _delete_fact(data: DeleteFactInput) -> ToolResult:
        if not storage.delete_fact(data.fact_id):
            return _not_found("Fact", data.fact_id)
        return {"success": True, "message": "Fact deleted"}

    async def _get_chat_history(data: ChatHistoryInput) -> ToolResult:
        if data.conversation_id is None:
            conversations = storage.list_conversations()[: data.limit]
            return {
                "success": True,
                "conversations": [
                    {"id": conv.id, "title": conv.title, "message_count": conv.message_count}
                    for conv in conversations
                ],
            }
        if storage.get_conversation(data.conversation_id) is None:
            return _not_found("Conversation", data.conversation_id)
        messages = storage.get_messages(data.conversation_id)[-data.limit :]
        return {
            "success": True,
            "messages": [
                {"role": msg.role, "content": _truncate(msg.content, 500)} for msg in messages
            ],
        }

    async def _search_conversations(data: SearchConversationsInput) -> ToolResult:
        needle = data.query.lower()
        matches = [
            conv for conv in storage.list_conversations() if needle in conv.title.lower()
        ][: data.limit]
        return {
            "success": True,
            "count": len(matches),
            "conversations": [{"id": conv.id, "title": conv.title} for conv in matches],
        }

    async def _delete_conversation(data: DeleteConversationInput) -> ToolResult:
        if not storage.delete_conversation(data.conversation_id):
            return _not_found("Conversation", data.conversation_id)
        return {"success": True, "message": "Conversation deleted"}

    async def _get_user_stats(data: UserStatsInput) -> ToolResult:
        documents = storage.list_documents()
        return {
            "success": True,
            "documents": len(documents),
            "notes": sum(1 for doc in documents if doc.type == "note"),
            "bookmarks": sum(1 for doc in documents if doc.type == "bookmark"),
            "facts": len(storage.list_facts()),
            "conversations": len(storage.list_conversations()),
        }

    async def _create_summary(data: CreateSummaryInput) -> ToolResult:
        hits = await engine.search(data.query, data.limit)
        if not hits:
            hits = engine.lexical_search(data.query, data.limit)
        if not hits:
            return {"success": False, "code": "not_found", "error": "No documents to summarize"}

        content = _compose_summary(data.summary_type, [(h.chunk.document_title, h.chunk.text) for h in hits])
        document = Document(
            id=new_id("summary"),
            title=data.summary_title,
            content=content,
            tags=["summary", data.summary_type],
            metadata={"source_documents": sorted({h.chunk.document_id for h in hits})},
        )
        await pipeline.ingest(document)
        return {
            "success": True,
            "document_id": document.id,
            "sources": len(hits),
            "message": f'Created {data.summary_type.replace("_", " ")} "{data.summary_title}"',
        }

    for spec in (
        ToolSpec(
            name=ToolName.CREATE_NOTE,
            description="Create a new note in the user's library.",
            args_schema=CreateNoteInput,
            handler=_create_note,
            tags=["documents", "write"],
        ),
        ToolSpec(
            name=ToolName.CREATE_BOOKMARK,
            description="Save a web page as a bookmark.",
            args_schema=CreateBookmarkInput,
            handler=_create_bookmark,
            tags=["documents", "write"],
        ),
        ToolSpec(
            name=ToolName.UPDATE_DOCUMENT,
            description="Update the title, content or tags of a document.",
            args_schema=UpdateDocumentInput,
            handler=_update_document,
            tags=["documents", "write"],
        ),
        ToolSpec(
            name=ToolName.DELETE_DOCUMENT,
            description='Delete a document. Requires confirmation="yes" from the user.',
            args_schema=DeleteDocumentInput,
            handler=_delete_document,
            destructive=True,
            tags=["documents", "destructive"],
        ),
        ToolSpec(
            name=ToolName.SEARCH_DOCUMENTS,
            description="Semantic search over the user's saved documents.",
            args_schema=SearchDocumentsInput,
            handler=_search_documents,
            default_arguments={"query": "all documents", "limit": 5},
            tags=["documents", "read"],
        ),
        ToolSpec(
            name=ToolName.LIST_DOCUMENTS,
            description="List saved documents, optionally filtered by tag or type.",
            args_schema=ListDocumentsInput,
            handler=_list_documents,
            default_arguments={"limit": 20},
            tags=["documents", "read"],
        ),
        ToolSpec(
            name=ToolName.ADD_FACT,
            description="Remember a fact about the user.",
            args_schema=AddFactInput,
            handler=_add_fact,
            tags=["facts", "write"],
        ),
        ToolSpec(
            name=ToolName.SEARCH_FACTS,
            description="Search remembered facts.",
            args_schema=SearchFactsInput,
            handler=_search_facts,
            tags=["facts", "read"],
        ),
        ToolSpec(
            name=ToolName.LIST_FACTS,
            description="List remembered facts, optionally by category.",
            args_schema=ListFactsInput,
            handler=_list_facts,
            default_arguments={"limit": 20},
            tags=["facts", "read"],
        ),
        ToolSpec(
            name=ToolName.UPDATE_FACT,
            description="Correct a remembered fact.",
            args_schema=UpdateFactInput,
            handler=_update_fact,
            tags=["facts", "write"],
        ),
        ToolSpec(
            name=ToolName.DELETE_FACT,
            description='Forget a fact. Requires confirmation="yes" from the user.',
            args_schema=DeleteFactInput,
            handler=_delete_fact,
            destructive=True,
            tags=["facts", "destructive"],
        ),
        ToolSpec(
            name=ToolName.GET_CHAT_HISTORY,
            description="Read recent messages of a conversation, or list recent conversations.",
            args_schema=ChatHistoryInput,
            handler=_get_chat_history,
            default_arguments={"limit": 10},
            tags=["conversations", "read"],
        ),
        ToolSpec(
            name=ToolName.SEARCH_CONVERSATIONS,
            description="Find past conversations by title.",
            args_schema=SearchConversationsInput,
            handler=_search_conversations,
            tags=["conversations", "read"],
        ),
        ToolSpec(
            name=ToolName.DELETE_CONVERSATION,
            description='Delete a conversation. Requires confirmation="yes" from the user.',
            args_schema=DeleteConversationInput,
            handler=_delete_conversation,
            destructive=True,
            tags=["conversations", "destructive"],
        ),
        ToolSpec(
            name=ToolName.GET_USER_STATS,
            description="Counts of saved documents, facts and conversations.",
            args_schema=UserStatsInput,
            handler=_get_user_stats,
            tags=["utility", "read"],
        ),
        ToolSpec(
            name=ToolName.CREATE_SUMMARY,
            description="Summarize matching documents into a new note.",
            args_schema=CreateSummaryInput,
            handler=_create_summary,
            default_arguments={
                "query": "all documents",
                "summary_title": "AI Generated Summary",
                "summary_type": "summary",
            },
            tags=["utility", "write"],
        ),
    ):
        registry.register(spec)

    registry.ensure_complete()


def _not_found(kind: str, record_id: str) -> ToolResult:
    return {"success": False, "code": "not_found", "error": f"{kind} not found: {record_id}"}


def _fact_dict(fact: Fact) -> dict[str, Any]:
    return {
        "id": fact.id,
        "category": fact.category,
        "subject": fact.subject,
        "fact_text": fact.fact_text,
        "context": fact.context,
    }


def _compose_summary(summary_type: str, sources: list[tuple[str, str]]) -> str:
    if summary_type == "outline":
        lines = ["# Outline", ""]
        for title, text in sources:
            lines.append(f"## {title}")
            lines.append(f"- {_truncate(_first_sentence(text), 200)}")
        return "\n".join(lines)
    if summary_type == "key_points":
        lines = ["# Key points", ""]
        lines.extend(f"- **{title}**: {_truncate(_first_sentence(text), 200)}" for title, text in sources)
        return "\n".join(lines)

    paragraphs = [f"{title}: {_truncate(' '.join(text.split()), 300)}" for title, text in sources]
    return "# Summary\n\n" + "\n\n".join(paragraphs)


def _first_sentence(text: str) -> str:
    ends = [idx for idx in (text.find(mark) for mark in (". ", "! ", "? ")) if idx != -1]
    return text[: min(ends) + 1] if ends else text


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
