"""Character-window chunking with sentence and word boundary preference."""

from __future__ import annotations

from companion_core.config import ChunkingConfig
from companion_core.types import Chunk, Document

_SENTENCE_TERMINATORS = (".", "!", "?")


class TextChunker:
    """Splits documents into overlapping windows of at most `max_chunk_size` chars.

    Cut selection for each window `[start, start + max_chunk_size)`:
    1. After the last sentence terminator (`.`, `!`, `?`) when it lies past 50%
       of the window.
    2. Otherwise at the last space when it lies past 70% of the window.
       With `split_by_sentence=False` this is the first rule tried.
    3. Otherwise at the window edge.

    The next window starts `overlap` characters before the cut, so adjacent
    chunks share context. The final window takes whatever text remains.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk_text(
        self,
        text: str,
        *,
        max_chunk_size: int | None = None,
        overlap: int | None = None,
        split_by_sentence: bool | None = None,
    ) -> list[str]:
        size = max_chunk_size or self.config.max_chunk_size
        step_back = self.config.overlap if overlap is None else overlap
        by_sentence = (
            self.config.split_by_sentence if split_by_sentence is None else split_by_sentence
        )

        if len(text) <= size:
            return [text]

        chunks: list[str] = []
        start = 0
        while start < len(text):
            end = start + size
            if end >= len(text):
                chunks.append(text[start:].strip())
                break

            end = start + self._cut_offset(text[start:end], size, by_sentence)

            chunks.append(text[start:end].strip())
            next_start = max(end - step_back, 0)
            # A cut shorter than the overlap would stall the window.
            start = next_start if next_start > start else end

        return [chunk for chunk in chunks if chunk]

    def chunk_document(self, document: Document) -> list[Chunk]:
        """Chunk a document into ordered `Chunk` records without embeddings."""

        return [
            Chunk(
                id=f"{document.id}-chunk-{index:04d}",
                document_id=document.id,
                document_title=document.title,
                index=index,
                text=text,
            )
            for index, text in enumerate(self.chunk_text(document.content))
        ]

    @staticmethod
    def _cut_offset(window: str, size: int, by_sentence: bool) -> int:
        if by_sentence:
            last_sentence = max(window.rfind(mark) for mark in _SENTENCE_TERMINATORS)
            if last_sentence > size * 0.5:
                return last_sentence + 1
        last_space = window.rfind(" ")
        if last_space > size * 0.7:
            return last_space
        return size
