"""Vectorizers for chunks and queries."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

_EDGE_PUNCTUATION = ".,!?;:\"'()"


class Embedder(ABC):
    """Turns text into vectors of a fixed dimension.

    The async variants default to running the sync method in a worker thread.
    """

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        ...

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        ...

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        return await asyncio.to_thread(self.embed_documents, texts)

    async def aembed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self.embed_query, text)


class HashingEmbedder(Embedder):
    """Signed feature hashing over lowercased words, L2-normalized.

    Needs no model or network, so retrieval works offline and tests are
    deterministic. Wrap a real model with `LangChainEmbedder` in production.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return list(map(self._vectorize, texts))

    def embed_query(self, text: str) -> list[float]:
        return self._vectorize(text)

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        return self.embed_documents(texts)

    async def aembed_query(self, text: str) -> list[float]:
        return self._vectorize(text)

    def _vectorize(self, text: str) -> list[float]:
        counts = [0.0] * self.dimension
        for word in text.lower().split():
            bucket, sign = self._feature(word.strip(_EDGE_PUNCTUATION))
            counts[bucket] += sign
        return _l2_normalize(counts)

    def _feature(self, word: str) -> tuple[int, float]:
        digest = blake2b(word.encode("utf-8"), digest_size=8).digest()
        bucket = int.from_bytes(digest[:4], "little") % self.dimension
        return bucket, (-1.0 if digest[4] & 1 else 1.0)


class LangChainEmbedder(Embedder):
    """Adapts any LangChain `Embeddings` model and normalizes its vectors."""

    def __init__(self, embeddings: Embeddings) -> None:
        self._embeddings = embeddings

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [_l2_normalize(vec) for vec in self._embeddings.embed_documents(texts)]

    def embed_query(self, text: str) -> list[float]:
        return _l2_normalize(self._embeddings.embed_query(text))

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        vectors = await self._embeddings.aembed_documents(texts)
        return [_l2_normalize(vec) for vec in vectors]

    async def aembed_query(self, text: str) -> list[float]:
        return _l2_normalize(await self._embeddings.aembed_query(text))


def _l2_normalize(vector: list[float]) -> list[float]:
    length = sqrt(sum(component * component for component in vector))
    if length == 0:
        return list(vector)
    return [component / length for component in vector]
