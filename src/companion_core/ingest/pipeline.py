"""Ingest pipeline: save -> chunk -> embed -> store."""

from __future__ import annotations

import logging

from companion_core.ingest.chunker import TextChunker
from companion_core.ingest.embedder import Embedder
from companion_core.resilience.executor import ResilientExecutor
from companion_core.storage import Storage
from companion_core.types import Chunk, Document

logger = logging.getLogger(__name__)

EMBEDDING_OPERATION = "embedding"


class IngestPipeline:
    """Coordinates chunker, embedder and storage stages.

    Fast mode stores chunks without embeddings so a document is searchable
    lexically right away; `reprocess` fills the vectors in later. Embedding
    calls are retried through `executor` when one is given.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedder: Embedder,
        storage: Storage,
        *,
        executor: ResilientExecutor | None = None,
    ) -> None:
        self._chunker = chunker
        self._embedder = embedder
        self._storage = storage
        self._executor = executor

    async def ingest(self, document: Document, *, fast: bool = False) -> list[Chunk]:
        """Save a document and (re)build its chunks."""

        self._storage.save_document(document)
        self._storage.delete_chunks(document.id)

        chunks = self._chunker.chunk_document(document)
        if not fast and chunks:
            await self._embed_chunks(chunks)
        self._storage.put_chunks(chunks)
        logger.info(
            "Ingested document %s: %d chunks (fast=%s)", document.id, len(chunks), fast
        )
        return chunks

    async def reprocess(self, document_id: str | None = None) -> int:
        """Embed stored chunks that have no vector yet; returns how many were filled."""

        pending = [
            chunk
            for chunk in self._storage.all_chunks()
            if not chunk.embedding and (document_id is None or chunk.document_id == document_id)
        ]
        if not pending:
            return 0
        await self._embed_chunks(pending)
        self._storage.put_chunks(pending)
        logger.info("Reprocessed %d chunks", len(pending))
        return len(pending)

    async def _embed_chunks(self, chunks: list[Chunk]) -> None:
        texts = [chunk.text for chunk in chunks]
        if self._executor is None:
            vectors = await self._embedder.aembed_documents(texts)
        else:
            vectors = await self._executor.run(
                lambda: self._embedder.aembed_documents(texts), EMBEDDING_OPERATION
            )
        for chunk, vector in zip(chunks, vectors, strict=True):
            chunk.embedding = vector
