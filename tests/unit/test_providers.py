import httpx
import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage
from langchain_core.messages.tool import tool_call_chunk

from companion_core.providers.base import ToolCallAccumulator, ToolCallDelta
from companion_core.providers.langchain_chat import (
    LangChainChatProvider,
    create_ollama_provider,
    create_openai_provider,
    ollama_is_running,
)


class _ToolCallingModel:
    """Streams two argument fragments for a single tool call."""

    def __init__(self) -> None:
        self.bound_tools: list[dict] | None = None

    def bind_tools(self, tools):
        self.bound_tools = tools
        return self

    async def astream(self, messages):
        yield AIMessageChunk(
            content="",
            tool_call_chunks=[tool_call_chunk(name="list_facts", args='{"li', id="call_9", index=0)],
        )
        yield AIMessageChunk(
            content="",
            tool_call_chunks=[tool_call_chunk(name=None, args='mit": 3}', id=None, index=0)],
        )


def test_accumulator_merges_by_index_and_id() -> None:
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(index=0, id="a", name="search_documents", arguments='{"query": '))
    acc.add(ToolCallDelta(index=1, name="list_facts", arguments="{}"))
    acc.add(ToolCallDelta(index=0, arguments='"bread"}'))
    acc.add(ToolCallDelta(id="a", arguments=""))

    calls = acc.calls()

    assert [(c.id, c.name, c.arguments_json) for c in calls] == [
        ("a", "search_documents", '{"query": "bread"}'),
        ("call_1", "list_facts", "{}"),
    ]


def test_accumulator_continues_last_call_without_index_or_id() -> None:
    acc = ToolCallAccumulator()
    acc.add(ToolCallDelta(name="add_fact", arguments='{"a"'))
    acc.add(ToolCallDelta(arguments=": 1}"))

    assert [c.arguments_json for c in acc.calls()] == ['{"a": 1}']


@pytest.mark.asyncio
async def test_streams_text_from_chat_model() -> None:
    model = GenericFakeChatModel(messages=iter([AIMessage(content="Hello there friend")]))
    provider = LangChainChatProvider(model, name="fake")

    deltas = [d async for d in provider.stream_complete([HumanMessage(content="hi")])]

    assert "".join(d.content for d in deltas if d.content) == "Hello there friend"
    assert all(d.tool_call is None for d in deltas)
    assert await provider.is_available() is True


@pytest.mark.asyncio
async def test_streams_tool_call_fragments_when_tools_bound() -> None:
    model = _ToolCallingModel()
    provider = LangChainChatProvider(model)
    tools = [{"type": "function", "function": {"name": "list_facts", "parameters": {}}}]

    acc = ToolCallAccumulator()
    async for delta in provider.stream_complete([HumanMessage(content="facts?")], tools):
        assert delta.content is None
        acc.add(delta.tool_call)

    assert model.bound_tools == tools
    assert [(c.id, c.name, c.arguments_json) for c in acc.calls()] == [
        ("call_9", "list_facts", '{"limit": 3}')
    ]


@pytest.mark.asyncio
async def test_availability_check_is_delegated() -> None:
    async def _down() -> bool:
        return False

    provider = LangChainChatProvider(_ToolCallingModel(), availability_check=_down)

    assert await provider.is_available() is False


def _ollama_client(status: int | None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        if status is None:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status, json={"models": [{"name": "llama3.1:8b-instruct-q8_0"}]})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "expected"), [(200, True), (500, False), (None, False)])
async def test_ollama_liveness_probe(status: int | None, expected: bool) -> None:
    async with _ollama_client(status) as client:
        assert await ollama_is_running("http://ollama.test/", client=client) is expected


@pytest.mark.asyncio
async def test_ollama_provider_checks_server_before_use() -> None:
    async with _ollama_client(None) as client:
        provider = create_ollama_provider(base_url="http://ollama.test", client=client)

        assert provider.name == "ollama"
        assert await provider.is_available() is False


@pytest.mark.asyncio
async def test_openai_provider_is_available_with_a_configured_key(monkeypatch) -> None:
    pytest.importorskip("langchain_openai")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    provider = create_openai_provider(api_key="sk-test")

    assert provider.name == "openai"
    assert await provider.is_available() is True
