import pytest

from companion_core.agent.registry import ToolRegistry
from companion_core.agent.tools import register_builtin_tools
from companion_core.ingest.chunker import TextChunker
from companion_core.ingest.embedder import HashingEmbedder
from companion_core.ingest.pipeline import IngestPipeline
from companion_core.retrieval.engine import RetrievalEngine
from companion_core.storage import InMemoryStorage
from companion_core.types import Chunk


def make_chunk(
    chunk_id: str,
    text: str,
    *,
    title: str = "Untitled",
    document_id: str | None = None,
    index: int = 0,
    embedder: HashingEmbedder | None = None,
) -> Chunk:
    embedder = embedder or HashingEmbedder()
    return Chunk(
        id=chunk_id,
        document_id=document_id or chunk_id,
        document_title=title,
        index=index,
        text=text,
        embedding=embedder.embed_query(text),
    )


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def engine(storage: InMemoryStorage) -> RetrievalEngine:
    return RetrievalEngine(storage, HashingEmbedder(), chunker=TextChunker())


@pytest.fixture()
def chunk_factory():
    return make_chunk


@pytest.fixture()
def pipeline(storage: InMemoryStorage) -> IngestPipeline:
    return IngestPipeline(TextChunker(), HashingEmbedder(), storage)


@pytest.fixture()
def registry(storage: InMemoryStorage, engine: RetrievalEngine, pipeline: IngestPipeline) -> ToolRegistry:
    tools = ToolRegistry()
    register_builtin_tools(tools, storage=storage, engine=engine, pipeline=pipeline)
    return tools
