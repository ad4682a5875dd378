import pytest

from companion_core.agent.registry import ToolRegistry
from companion_core.types import ChatMessage


async def _call(registry: ToolRegistry, name: str, **payload):
    return await registry.get(name).invoke(payload)


@pytest.mark.asyncio
async def test_created_notes_are_searchable(registry, storage) -> None:
    created = await _call(
        registry, "create_note", title="Sourdough", content="Feed the starter twice a day."
    )
    found = await _call(registry, "search_documents", query="feed the starter")

    assert created["success"] is True
    assert storage.get_document(created["document_id"]).title == "Sourdough"
    assert found["results"][0]["document_id"] == created["document_id"]


@pytest.mark.asyncio
async def test_update_document_reindexes_content(registry, storage) -> None:
    created = await _call(registry, "create_note", title="Plan", content="old plan text")

    updated = await _call(
        registry, "update_document", document_id=created["document_id"], content="plant garlic"
    )
    missing = await _call(registry, "update_document", document_id="nope", title="x")
    empty = await _call(registry, "update_document", document_id=created["document_id"])

    assert updated["updated_fields"] == ["content"]
    assert [c.text for c in storage.all_chunks()] == ["plant garlic"]
    assert missing["code"] == "not_found"
    assert empty["success"] is False


@pytest.mark.asyncio
async def test_bookmarks_and_listing_filters(registry) -> None:
    await _call(registry, "create_note", title="Note", content="body", tags=["home"])
    await _call(registry, "create_bookmark", url="https://example.org", title="Example")

    bookmarks = await _call(registry, "list_documents", type="bookmark")
    tagged = await _call(registry, "list_documents", tag="home")
    stats = await _call(registry, "get_user_stats")

    assert [d["title"] for d in bookmarks["documents"]] == ["Example"]
    assert [d["title"] for d in tagged["documents"]] == ["Note"]
    assert stats["notes"] == 1
    assert stats["bookmarks"] == 1


@pytest.mark.asyncio
async def test_fact_lifecycle(registry) -> None:
    added = await _call(
        registry, "add_fact", category="pets", subject="Miso", fact_text="Miso is a grey cat"
    )
    await _call(registry, "add_fact", category="food", subject="Tea", fact_text="Prefers oolong")

    by_text = await _call(registry, "search_facts", query="grey cat")
    by_category = await _call(registry, "list_facts", category="food")
    corrected = await _call(
        registry, "update_fact", fact_id=added["fact_id"], fact_text="Miso is a black cat"
    )
    deleted = await _call(registry, "delete_fact", fact_id=added["fact_id"], confirmation="yes")
    deleted_again = await _call(registry, "delete_fact", fact_id=added["fact_id"])

    assert [f["subject"] for f in by_text["facts"]] == ["Miso"]
    assert [f["subject"] for f in by_category["facts"]] == ["Tea"]
    assert corrected["fact"]["fact_text"] == "Miso is a black cat"
    assert deleted["success"] is True
    assert deleted_again["code"] == "not_found"


@pytest.mark.asyncio
async def test_conversation_tools(registry, storage) -> None:
    storage.append_message(ChatMessage(conversation_id="c1", role="user", content="hello"))
    storage.append_message(ChatMessage(conversation_id="c1", role="assistant", content="hi!"))
    storage.update_conversation_meta("c1", {"title": "Garden planning"})

    history = await _call(registry, "get_chat_history", conversation_id="c1", limit=1)
    listing = await _call(registry, "get_chat_history")
    found = await _call(registry, "search_conversations", query="garden")
    missing = await _call(registry, "get_chat_history", conversation_id="c404")
    deleted = await _call(registry, "delete_conversation", conversation_id="c1", confirmation="yes")

    assert history["messages"] == [{"role": "assistant", "content": "hi!"}]
    assert listing["conversations"][0]["message_count"] == 2
    assert [c["id"] for c in found["conversations"]] == ["c1"]
    assert missing["code"] == "not_found"
    assert deleted["success"] is True
    assert storage.get_messages("c1") == []


@pytest.mark.asyncio
async def test_create_summary_writes_a_new_document(registry, storage) -> None:
    nothing = await _call(registry, "create_summary", query="tomatoes")
    await _call(
        registry,
        "create_note",
        title="Tomatoes",
        content="Tomatoes need full sun. Water them deeply twice a week.",
    )

    summary = await _call(
        registry, "create_summary", query="tomatoes", summary_type="key_points", summary_title="Garden"
    )

    document = storage.get_document(summary["document_id"])
    assert document.title == "Garden"
    assert document.content.startswith("# Key points")
    assert "**Tomatoes**: Tomatoes need full sun." in document.content
    assert nothing["code"] == "not_found"
