import pytest

from companion_core.agent.fallback import PersonaFallback
from companion_core.types import HistoryMessage


@pytest.mark.parametrize(
    ("message", "rule"),
    [
        ("Hello there", "greeting"),
        ("I want to build an app", "build"),
        ("I'm writing Python code", "code"),
        ("do you remember what I said", "context"),
        ("what's the weather like", "realtime"),
        ("please assist me", "help"),
        ("why is the sky blue?", "question"),
        ("this shipping application", "default"),
    ],
)
def test_first_matching_rule_wins(message: str, rule: str) -> None:
    assert PersonaFallback().rule_for(message) == rule


def test_replies_use_persona_name() -> None:
    fallback = PersonaFallback("Sage")

    assert fallback.respond("hey").startswith("Hi! I'm Sage, your personal assistant.")
    assert fallback.respond("sourdough").startswith('I see you mentioned "sourdough". I\'m Sage')


def test_build_reply_looks_at_recent_history() -> None:
    fallback = PersonaFallback()
    history = [
        HistoryMessage("user", "I'm making a budgeting app"),
        HistoryMessage("assistant", "Nice."),
    ]

    assert fallback.respond("how do I build it", history).startswith("Great! You're working on an app.")
    assert fallback.respond("how do I build it").startswith("I'd love to help you build something!")


@pytest.mark.parametrize(
    ("message", "prefix"),
    [
        ("please assist me", "I'm here to help!"),
        ("what's the weather like", "I don't have access to real-time data"),
        ("why is the sky blue?", "That's a good question!"),
        ("this shipping application", 'I see you mentioned "this shipping application".'),
    ],
)
def test_reply_follows_the_matched_rule(message: str, prefix: str) -> None:
    assert PersonaFallback().respond(message).startswith(prefix)
