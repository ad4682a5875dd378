from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from companion_core.agent.prompting import (
    LOCAL_CONTEXT_HEADER,
    PromptBuilder,
    format_local_context,
    format_web_context,
    looks_generic,
)
from companion_core.types import Chunk, HistoryMessage, SearchResult, WebResult


def _hit(title: str, text: str, score: float) -> SearchResult:
    chunk = Chunk(id=f"{title}-0", document_id=title, document_title=title, index=0, text=text)
    return SearchResult(chunk=chunk, score=score, score_percent=round(score * 100))


def test_prompt_tells_model_to_use_saved_content() -> None:
    messages = PromptBuilder("Sage").build(
        "what is my starter ratio?",
        local_context=format_local_context([_hit("Sourdough", "1:1:1 by weight", 0.82)]),
    )

    system = messages[0]
    assert isinstance(system, SystemMessage)
    assert system.content.startswith("You are Sage")
    assert "say it comes from\n   their saved content" in system.content
    assert f"{LOCAL_CONTEXT_HEADER}:\n\n[Source 1: Sourdough (82% match)]\n1:1:1 by weight" in system.content
    assert messages[-1] == HumanMessage(content="what is my starter ratio?")


def test_history_is_replayed_and_summarized_within_window() -> None:
    history = [HistoryMessage("user" if i % 2 == 0 else "assistant", f"m{i}") for i in range(8)]

    messages = PromptBuilder(history_window=2).build("next", history)

    system = messages[0].content
    assert "User: m6\nAssistant: m7" in system
    assert "m5" not in system
    assert len(messages) == 1 + len(history) + 1
    assert isinstance(messages[1], HumanMessage)
    assert isinstance(messages[2], AIMessage)


def test_empty_context_and_history_placeholders() -> None:
    system = PromptBuilder().build("hello there")[0].content

    assert "No saved or web context was found for this message." in system
    assert "(this is the start of the conversation)" in system


def test_web_context_lists_urls() -> None:
    result = WebResult("Rust 1.80", "https://blog.example/rust", "notes")
    block = format_web_context([(result, "Release notes")])

    assert block.endswith("[Web 1: Rust 1.80]\nURL: https://blog.example/rust\nRelease notes")
    assert format_web_context([]) == ""
    assert format_local_context([]) == ""


def test_generic_reply_detection() -> None:
    assert looks_generic("That's a great question! What would you like to focus on?")
    assert not looks_generic("Your starter ratio is 1:1:1 by weight.")
