"""Deterministic persona replies used when no completion provider can answer."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from companion_core.types import HistoryMessage


@dataclass(frozen=True, slots=True)
class _Rule:
    name: str
    pattern: re.Pattern[str]
    reply: Callable[[str, str, Sequence[HistoryMessage]], str]


def _words(*words: str) -> re.Pattern[str]:
    return re.compile(r"\b(" + "|".join(words) + r")\b")


def _build_reply(persona: str, message: str, history: Sequence[HistoryMessage]) -> str:
    recent = " ".join(msg.content.lower() for msg in history[-4:])
    if "app" in recent:
        return (
            "Great! You're working on an app. What kind of app is it, and what "
            "features are you focusing on right now?"
        )
    return "I'd love to help you build something! What kind of app or project are you working on?"


_RULES: tuple[_Rule, ...] = (
    _Rule(
        "greeting",
        _words("hello", "hi", "hey"),
        lambda persona, message, history: (
            f"Hi! I'm {persona}, your personal assistant. I'm just starting to learn "
            "about you. What brings you here today?"
        ),
    ),
    _Rule("build", _words("app", "build", "develop"), _build_reply),
    _Rule(
        "code",
        _words("code", "coding", "programming", "react", "javascript", "typescript", "python"),
        lambda persona, message, history: (
            "Yes! I can help with coding. I know React, TypeScript, and many other "
            "technologies. What specific coding challenge are you working on?"
        ),
    ),
    _Rule(
        "context",
        _words("contextual", "remember", "context"),
        lambda persona, message, history: (
            "Yes, I'm contextual. I can see our conversation history and maintain "
            "context throughout our chat. Is there something specific from our "
            "conversation you want me to reference?"
        ),
    ),
    _Rule(
        "realtime",
        _words("weather", "time", "date"),
        lambda persona, message, history: (
            "I don't have access to real-time data like weather or current time. "
            "You'd need to check a weather website or app for that. But I can help "
            "with other things!"
        ),
    ),
    _Rule(
        "help",
        _words("help", "assist"),
        lambda persona, message, history: (
            "I'm here to help! I can assist with coding, planning, brainstorming, "
            "learning, and general guidance. What specific area would you like "
            "support with?"
        ),
    ),
    _Rule(
        "question",
        re.compile(r"\?"),
        lambda persona, message, history: (
            "That's a good question! I'd be happy to help you with that. Could you "
            "tell me a bit more about what you're looking for?"
        ),
    ),
)


class PersonaFallback:
    """First matching keyword rule wins; otherwise a default reply echoing the message."""

    def __init__(self, persona_name: str = "Companion") -> None:
        self.persona_name = persona_name

    def rule_for(self, message: str) -> str:
        rule = _match(message)
        return rule.name if rule is not None else "default"

    def respond(self, message: str, history: Sequence[HistoryMessage] = ()) -> str:
        rule = _match(message)
        if rule is not None:
            return rule.reply(self.persona_name, message, history)
        return (
            f'I see you mentioned "{message}". I\'m {self.persona_name}, your personal '
            "assistant. I'm here to help you with whatever you're working on. What "
            "would you like to explore or work on together?"
        )


def _match(message: str) -> _Rule | None:
    lowered = message.lower()
    return next((rule for rule in _RULES if rule.pattern.search(lowered)), None)
