"""Lenient parsing of tool-call argument payloads streamed by a provider."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CLOSERS = {"{": "}", "[": "]"}


class ParseOutcome(str, Enum):
    PARSED = "parsed"
    REPAIRED = "repaired"
    DEFAULTED = "defaulted"


@dataclass(frozen=True, slots=True)
class ParsedArguments:
    outcome: ParseOutcome
    arguments: dict[str, Any] = field(default_factory=dict)
    raw: str = ""


def repair_json(raw: str) -> str:
    """Close an unterminated object and strip trailing commas.

    Only truncation damage is handled: an open string is closed, then every
    open brace/bracket is closed in reverse order.
    """

    stack: list[str] = []
    in_string = False
    escaped = False
    for char in raw:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]") and stack and stack[-1] == char:
            stack.pop()

    repaired = raw.rstrip()
    if in_string:
        repaired += '"'
    repaired += "".join(reversed(stack))
    return _TRAILING_COMMA.sub(r"\1", repaired)


def parse_tool_arguments(raw: str | None, defaults: dict[str, Any]) -> ParsedArguments:
    """Parse `raw` strictly, then via `repair_json`, then fall back to `defaults`."""

    text = raw or ""
    parsed = _loads_object(text)
    if parsed is not None:
        return ParsedArguments(ParseOutcome.PARSED, parsed, text)

    if "{" in text:
        repaired = _loads_object(repair_json(text))
        if repaired is not None:
            logger.debug("Repaired tool arguments %r", text)
            return ParsedArguments(ParseOutcome.REPAIRED, repaired, text)

    logger.info("Unparseable tool arguments %r, using defaults", text)
    return ParsedArguments(ParseOutcome.DEFAULTED, dict(defaults), text)


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None
