"""Semantic retrieval over stored chunks with expansion and boosting."""

from __future__ import annotations

import logging
from typing import Literal

from companion_core.config import RetrievalConfig
from companion_core.ingest.chunker import TextChunker
from companion_core.ingest.embedder import Embedder
from companion_core.ingest.pipeline import EMBEDDING_OPERATION
from companion_core.resilience.executor import ResilientExecutor
from companion_core.retrieval.scoring import (
    content_boost,
    cosine_similarity,
    expand_query,
    lexical_score,
    score_percent,
)
from companion_core.storage import Storage
from companion_core.types import Chunk, SearchResult

logger = logging.getLogger(__name__)

SearchStrategy = Literal["balanced", "exact", "broad"]
_STRATEGY_MIN_SCORE: dict[str, float] = {"exact": 0.3, "broad": 0.05, "balanced": 0.1}


class RetrievalEngine:
    """Ranks stored chunks against a query.

    Each query is embedded once together with up to three paraphrases, and a
    chunk keeps its best similarity over all of them. Literal title, text and
    name matches add a capped bonus on top, so final scores can exceed 1.0.
    When the query cannot be embedded at all, ranking falls back to word
    overlap. Query embeddings go through `executor` when one is given.
    """

    def __init__(
        self,
        storage: Storage,
        embedder: Embedder,
        *,
        chunker: TextChunker | None = None,
        config: RetrievalConfig | None = None,
        executor: ResilientExecutor | None = None,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.config = config or RetrievalConfig()
        self.executor = executor

    def chunk(self, text: str, **options: int | bool) -> list[str]:
        return self.chunker.chunk_text(text, **options)

    async def embed(self, text: str) -> list[float]:
        if self.executor is None:
            return await self.embedder.aembed_query(text)
        return await self.executor.run(
            lambda: self.embedder.aembed_query(text), EMBEDDING_OPERATION
        )

    async def search(
        self,
        query: str,
        k: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchResult]:
        top_k = k or self.config.top_k
        threshold = self.config.min_score if min_score is None else min_score
        chunks = self.storage.all_chunks()
        if not chunks:
            return []

        try:
            query_vector = await self.embed(query)
        except Exception:
            logger.warning("Query embedding failed, using lexical search", exc_info=True)
            return self.lexical_search(query, top_k, chunks=chunks)

        query_vectors = [query_vector]
        for expansion in expand_query(query, self.config.max_expansions):
            try:
                query_vectors.append(await self.embed(expansion))
            except Exception:
                logger.debug("Skipping expansion %r: embedding failed", expansion)

        results: list[SearchResult] = []
        for chunk in chunks:
            if not chunk.embedding:
                continue
            best = max(self._similarity(vector, chunk) for vector in query_vectors)
            score = best + content_boost(query, chunk.text, chunk.document_title, self.config)
            if score >= threshold:
                results.append(
                    SearchResult(chunk=chunk, score=score, score_percent=score_percent(score))
                )

        # sorted() is stable, so equal scores keep storage order.
        results = sorted(results, key=lambda item: item.score, reverse=True)[:top_k]
        logger.debug("Semantic search %r: %d results", query, len(results))
        return results

    def lexical_search(
        self,
        query: str,
        k: int | None = None,
        *,
        chunks: list[Chunk] | None = None,
    ) -> list[SearchResult]:
        top_k = k or self.config.top_k
        results: list[SearchResult] = []
        for chunk in chunks if chunks is not None else self.storage.all_chunks():
            score = lexical_score(query, f"{chunk.document_title} {chunk.text}")
            if score > self.config.lexical_min_score:
                results.append(
                    SearchResult(chunk=chunk, score=score, score_percent=score_percent(score))
                )
        return sorted(results, key=lambda item: item.score, reverse=True)[:top_k]

    async def search_with_strategy(
        self,
        query: str,
        strategy: SearchStrategy = "balanced",
        k: int | None = None,
    ) -> list[SearchResult]:
        top_k = k or self.config.top_k
        fetch_k = top_k * 2 if strategy == "broad" else top_k
        results = await self.search(query, fetch_k, _STRATEGY_MIN_SCORE[strategy])
        return results[:top_k]

    @staticmethod
    def _similarity(vector: list[float], chunk: Chunk) -> float:
        try:
            return cosine_similarity(vector, chunk.embedding)
        except ValueError:
            logger.debug("Dimension mismatch for chunk %s", chunk.id)
            return 0.0
