"""Storage contract and an in-memory implementation."""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Any, Protocol

from companion_core.types import ChatMessage, Chunk, Conversation, Document, Fact


class Storage(Protocol):
    """Minimal persistence contract consumed by the core."""

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        """Return one chunk by id."""

    def put_chunks(self, chunks: list[Chunk]) -> None:
        """Insert or replace chunks."""

    def all_chunks(self) -> list[Chunk]:
        """Return every stored chunk in insertion order."""

    def delete_chunks(self, document_id: str) -> int:
        """Remove all chunks of a document and return how many were removed."""

    def get_document(self, document_id: str) -> Document | None:
        """Return one document by id."""

    def save_document(self, document: Document) -> None:
        """Insert or replace a document."""

    def update_document(self, document_id: str, patch: dict[str, Any]) -> Document | None:
        """Apply a field patch; return the updated document or None if missing."""

    def delete_document(self, document_id: str) -> bool:
        """Delete a document; return False if it did not exist."""

    def list_documents(self) -> list[Document]:
        """Return all documents, newest first."""

    def save_fact(self, fact: Fact) -> None:
        """Insert or replace a fact."""

    def get_fact(self, fact_id: str) -> Fact | None:
        """Return one fact by id."""

    def update_fact(self, fact_id: str, patch: dict[str, Any]) -> Fact | None:
        """Apply a field patch; return the updated fact or None if missing."""

    def delete_fact(self, fact_id: str) -> bool:
        """Delete a fact; return False if it did not exist."""

    def list_facts(self) -> list[Fact]:
        """Return all facts, newest first."""

    def append_message(self, message: ChatMessage) -> None:
        """Append a message, creating its conversation on first use."""

    def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Return a conversation's messages in order."""

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Return one conversation by id."""

    def list_conversations(self) -> list[Conversation]:
        """Return conversations, most recently updated first."""

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages."""

    def update_conversation_meta(self, conversation_id: str, patch: dict[str, Any]) -> None:
        """Apply a metadata patch to a conversation."""


class InMemoryStorage:
    """Dictionary-backed storage used for tests and local prototyping."""

    def __init__(self) -> None:
        self._chunks: dict[str, Chunk] = {}
        self._documents: dict[str, Document] = {}
        self._facts: dict[str, Fact] = {}
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[ChatMessage]] = {}

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        return self._chunks.get(chunk_id)

    def put_chunks(self, chunks: list[Chunk]) -> None:
        for chunk in chunks:
            self._chunks[chunk.id] = chunk

    def all_chunks(self) -> list[Chunk]:
        return list(self._chunks.values())

    def delete_chunks(self, document_id: str) -> int:
        doomed = [cid for cid, chunk in self._chunks.items() if chunk.document_id == document_id]
        for chunk_id in doomed:
            del self._chunks[chunk_id]
        return len(doomed)

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def save_document(self, document: Document) -> None:
        self._documents[document.id] = document

    def update_document(self, document_id: str, patch: dict[str, Any]) -> Document | None:
        current = self._documents.get(document_id)
        if current is None:
            return None
        updated = replace(current, **patch)
        self._documents[document_id] = updated
        return updated

    def delete_document(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    def list_documents(self) -> list[Document]:
        return sorted(self._documents.values(), key=lambda doc: doc.date_added, reverse=True)

    def save_fact(self, fact: Fact) -> None:
        self._facts[fact.id] = fact

    def get_fact(self, fact_id: str) -> Fact | None:
        return self._facts.get(fact_id)

    def update_fact(self, fact_id: str, patch: dict[str, Any]) -> Fact | None:
        current = self._facts.get(fact_id)
        if current is None:
            return None
        updated = replace(current, **patch)
        self._facts[fact_id] = updated
        return updated

    def delete_fact(self, fact_id: str) -> bool:
        return self._facts.pop(fact_id, None) is not None

    def list_facts(self) -> list[Fact]:
        return sorted(self._facts.values(), key=lambda fact: fact.created_at, reverse=True)

    def append_message(self, message: ChatMessage) -> None:
        conversation = self._conversations.get(message.conversation_id)
        if conversation is None:
            conversation = Conversation(id=message.conversation_id)
            self._conversations[message.conversation_id] = conversation
        self._messages.setdefault(message.conversation_id, []).append(message)
        conversation.message_count += 1
        conversation.updated_at = time.time()

    def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        return list(self._messages.get(conversation_id, []))

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def list_conversations(self) -> list[Conversation]:
        return sorted(
            self._conversations.values(), key=lambda conv: conv.updated_at, reverse=True
        )

    def delete_conversation(self, conversation_id: str) -> bool:
        self._messages.pop(conversation_id, None)
        return self._conversations.pop(conversation_id, None) is not None

    def update_conversation_meta(self, conversation_id: str, patch: dict[str, Any]) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(id=conversation_id)
        self._conversations[conversation_id] = replace(conversation, **patch)
