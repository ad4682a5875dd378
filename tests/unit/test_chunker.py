import pytest

from companion_core.config import ChunkingConfig
from companion_core.ingest.chunker import TextChunker
from companion_core.types import Document


def test_short_text_is_returned_unchanged() -> None:
    chunker = TextChunker()
    text = "  A short note with surrounding space.  "

    assert chunker.chunk_text(text) == [text]
    assert chunker.chunk_text("x" * 500) == ["x" * 500]


def test_cuts_after_sentence_terminator_past_half_window() -> None:
    chunker = TextChunker(ChunkingConfig(max_chunk_size=100, overlap=10))
    first = "a" * 69 + "."
    text = first + " " + "b" * 150

    chunks = chunker.chunk_text(text)

    assert chunks[0] == first
    # The next window starts `overlap` characters before the cut.
    assert chunks[1].startswith("a" * 9 + ".")


def test_cuts_at_word_boundary_when_no_sentence_end() -> None:
    chunker = TextChunker(ChunkingConfig(max_chunk_size=100, overlap=0))
    text = "word " * 60

    chunks = chunker.chunk_text(text)

    assert all(len(chunk) <= 100 for chunk in chunks)
    assert all(not chunk.endswith("wor") for chunk in chunks)
    assert " ".join(chunks).split() == text.split()


def test_hard_cut_advances_by_size_minus_overlap() -> None:
    chunker = TextChunker(ChunkingConfig(max_chunk_size=100, overlap=20))
    text = "".join(chr(ord("a") + i % 26) for i in range(250))

    chunks = chunker.chunk_text(text)

    assert chunks[0] == text[:100]
    assert chunks[1] == text[80:180]
    assert chunks[2] == text[160:]


def test_split_by_sentence_can_be_disabled() -> None:
    chunker = TextChunker(ChunkingConfig(max_chunk_size=50, overlap=0))
    text = "a" * 30 + ". " + "bbbb " * 30

    by_sentence = chunker.chunk_text(text)
    by_word = chunker.chunk_text(text, split_by_sentence=False)

    assert by_sentence[0] == "a" * 30 + "."
    # Still cut at a word boundary, never mid-word.
    assert by_word[0] == "a" * 30 + ". bbbb bbbb bbbb"
    assert all(word == "bbbb" for chunk in by_word[1:] for word in chunk.split())


def test_chunk_document_assigns_monotonic_indices() -> None:
    chunker = TextChunker(ChunkingConfig(max_chunk_size=120, overlap=20))
    document = Document(
        id="doc-1",
        title="Garden log",
        content=" ".join(f"Day {i}: watered the tomatoes and checked the basil." for i in range(30)),
    )

    chunks = chunker.chunk_document(document)

    assert len(chunks) > 1
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))
    assert chunks[0].id == "doc-1-chunk-0000"
    assert all(chunk.document_title == "Garden log" for chunk in chunks)
    assert all(chunk.embedding == [] for chunk in chunks)


def test_overlap_must_be_smaller_than_chunk_size() -> None:
    with pytest.raises(ValueError):
        ChunkingConfig(max_chunk_size=50, overlap=50)
