"""Instant answers for trivial utterances that need no retrieval or model call."""

from __future__ import annotations

import logging
import math
import random
import re
from collections.abc import Callable
from datetime import datetime

from companion_core.types import PreRouteResult

logger = logging.getLogger(__name__)

GREETING_RESPONSES = (
    "Hello! How can I help you today?",
    "Hi! What would you like to work on?",
    "Hey! What can I do for you?",
    "Hi there! Ready to help when you are.",
)
ACKNOWLEDGEMENT_RESPONSE = "Got it! Anything else I can help with?"

_COMPLEX_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"explain.*benefits",
        r"what.*would.*be",
        r"analyze.*impact",
        r"comprehensive.*overview",
        r"detailed.*explanation",
        r"pros.*and.*cons",
        r"advantages.*disadvantages",
        r"how.*does.*work",
        r"why.*is.*important",
        r"what.*are.*the.*implications",
    )
)
_GREETING_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"^(hi|hey|hello|yo|sup|wassup|greetings)[\s!.]*$",
        r"^good (morning|afternoon|evening|day)[\s!.]*$",
        r"^how are you[\s?!.]*$",
        r"^what'?s up[\s?!.]*$",
    )
)
_WEATHER = re.compile(r"weather (?:in|for|at)? ?([\w\s]+)")
_TIME = re.compile(r"what time is it")
_DATE = re.compile(r"what'?s? (?:the )?(?:date|today'?s? date)")
_CURRENT_EVENTS = re.compile(r"^who (?:is|are) (?:the )?(?:president|prime minister)(?:\s|$)")
_MATH = re.compile(
    r"^(?:what is |calculate |compute )?(\d+\.?\d*)\s*([+\-*/])\s*(\d+\.?\d*)[\s?]*$"
)
_ACKNOWLEDGEMENTS = frozenset(
    {
        "ok", "cool", "nice", "thanks", "thank you", "got it", "sure",
        "yeah", "yep", "nope", "no", "yes", "alright",
    }
)


class PreRouter:
    """Classifies an utterance as answerable instantly or needing the full pipeline.

    Anything that looks like it needs reasoning is always routed, even if it
    also contains a greeting or arithmetic. Unmatched input is routed too.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = datetime.now,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()

    def classify(self, utterance: str) -> PreRouteResult:
        query = utterance.lower().strip()

        if any(pattern.search(query) for pattern in _COMPLEX_PATTERNS):
            return PreRouteResult(should_route=True, reason="complex_query")

        for handler in (
            self._greeting,
            self._external_data,
            self._math,
            self._acknowledgement,
        ):
            result = handler(query)
            if result is not None:
                logger.debug("Pre-routed %r as %s", utterance, result.reason)
                return result

        return PreRouteResult(should_route=True)

    def _greeting(self, query: str) -> PreRouteResult | None:
        if not any(pattern.match(query) for pattern in _GREETING_PATTERNS):
            return None
        return PreRouteResult(
            should_route=False,
            response=self._rng.choice(GREETING_RESPONSES),
            reason="greeting",
        )

    def _external_data(self, query: str) -> PreRouteResult | None:
        weather = _WEATHER.search(query)
        if weather:
            location = weather.group(1).strip() or "your location"
            return PreRouteResult(
                should_route=False,
                response=(
                    "I don't have real-time weather access, but you can check current "
                    f"weather in {location} at weather.com. Want help with something "
                    "from your knowledge base instead?"
                ),
                reason="external_data:weather",
            )

        now = self._clock()
        if _TIME.search(query):
            return PreRouteResult(
                should_route=False,
                response=f"Current time: {now.strftime('%I:%M:%S %p').lstrip('0')}",
                reason="external_data:time",
            )
        if _DATE.search(query):
            return PreRouteResult(
                should_route=False,
                response=f"Today is {now.strftime('%A, %B')} {now.day}, {now.year}",
                reason="external_data:date",
            )
        if _CURRENT_EVENTS.search(query):
            return PreRouteResult(
                should_route=False,
                response=(
                    "I don't have real-time political information. My knowledge was last "
                    "updated in early 2025. Would you like me to search the web for "
                    "current information, or help with your saved content?"
                ),
                reason="external_data:current_events",
            )
        return None

    def _math(self, query: str) -> PreRouteResult | None:
        match = _MATH.match(query)
        if not match:
            return None
        left_text, op, right_text = match.groups()
        left, right = float(left_text), float(right_text)
        if op == "+":
            result = left + right
        elif op == "-":
            result = left - right
        elif op == "*":
            result = left * right
        else:
            result = left / right if right != 0 else math.nan
        return PreRouteResult(
            should_route=False,
            response=f"{left_text} {op} {right_text} = {_format_number(result)}",
            reason="math",
        )

    def _acknowledgement(self, query: str) -> PreRouteResult | None:
        stripped = query.rstrip("!.")
        if len(stripped.split()) <= 2 and stripped in _ACKNOWLEDGEMENTS:
            return PreRouteResult(
                should_route=False,
                response=ACKNOWLEDGEMENT_RESPONSE,
                reason="acknowledgement",
            )
        return None


def _format_number(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == int(value):
        return str(int(value))
    return repr(round(value, 10))
