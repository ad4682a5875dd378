"""Prompt assembly for a completion turn."""

from __future__ import annotations

from collections.abc import Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from companion_core.types import HistoryMessage, SearchResult, WebResult

LOCAL_CONTEXT_HEADER = "RELEVANT INFORMATION FROM YOUR KNOWLEDGE BASE"
WEB_CONTEXT_HEADER = "RELEVANT INFORMATION FROM WEB SEARCH"

_SYSTEM_PROMPT = """
You are {persona}, a personal assistant that learns about the user over time.

Rules:
1) When a knowledge-base section is present below, you already have the
   information the user asked about. Use it directly and say it comes from
   their saved content instead of asking for clarification.
2) Attribute web information to its source.
3) Use the available tools to create, update, search or delete the user's
   notes, bookmarks, facts and conversations. Deletions need the user's
   explicit confirmation.
4) Stay consistent with the recent conversation and do not repeat questions
   that were already answered.

{context}

Recent conversation:
{recent_history}
""".strip()

_GENERIC_PHRASES = (
    "that's a great question",
    "what would you like to focus on",
    "could you tell me more about",
    "i'd be happy to help you with that",
    "what specific aspect",
    "that's interesting!",
    "i'm here to help you explore",
)


def format_local_context(results: Sequence[SearchResult]) -> str:
    if not results:
        return ""
    entries = [
        f"[Source {i}: {hit.chunk.document_title} ({hit.score_percent}% match)]\n{hit.chunk.text}"
        for i, hit in enumerate(results, start=1)
    ]
    return f"{LOCAL_CONTEXT_HEADER}:\n\n" + "\n\n".join(entries)


def format_web_context(results: Sequence[tuple[WebResult, str]]) -> str:
    """Format `(result, body)` pairs; `body` is fetched text or the description."""
    if not results:
        return ""
    entries = [
        f"[Web {i}: {result.title}]\nURL: {result.url}\n{body}"
        for i, (result, body) in enumerate(results, start=1)
    ]
    return f"{WEB_CONTEXT_HEADER}:\n\n" + "\n\n".join(entries)


def to_langchain_messages(history: Sequence[HistoryMessage]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for message in history:
        if message.role == "assistant":
            messages.append(AIMessage(content=message.content))
        elif message.role == "system":
            messages.append(SystemMessage(content=message.content))
        else:
            messages.append(HumanMessage(content=message.content))
    return messages


def looks_generic(response: str) -> bool:
    lowered = response.lower()
    return any(phrase in lowered for phrase in _GENERIC_PHRASES)


class PromptBuilder:
    """System prompt (persona, context, recent turns) + full history + new message."""

    def __init__(self, persona: str = "Companion", history_window: int = 6) -> None:
        self.persona = persona
        self.history_window = history_window
        self._template = ChatPromptTemplate.from_messages(
            [
                ("system", _SYSTEM_PROMPT),
                MessagesPlaceholder(variable_name="chat_history", optional=True),
                ("human", "{input}"),
            ]
        )

    def build(
        self,
        utterance: str,
        history: Sequence[HistoryMessage] = (),
        *,
        local_context: str = "",
        web_context: str = "",
    ) -> list[BaseMessage]:
        context = "\n\n".join(block for block in (local_context, web_context) if block)
        recent = history[-self.history_window :] if self.history_window else []
        recent_history = "\n".join(
            f"{'Assistant' if msg.role == 'assistant' else 'User'}: {msg.content}" for msg in recent
        )
        return self._template.format_messages(
            persona=self.persona,
            context=context or "No saved or web context was found for this message.",
            recent_history=recent_history or "(this is the start of the conversation)",
            chat_history=to_langchain_messages(history),
            input=utterance,
        )
