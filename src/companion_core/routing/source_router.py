"""Chooses between local knowledge, web search, both, or neither."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from companion_core.config import RoutingConfig
from companion_core.retrieval.engine import RetrievalEngine
from companion_core.types import RouteDecision

logger = logging.getLogger(__name__)

_NO_SEARCH = tuple(
    re.compile(rf"^{phrase}$", re.IGNORECASE)
    for phrase in (
        "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
        "how are you", "how's it going", "what's up", "thanks", "thank you",
        "bye", "goodbye", "see you", "nice to meet you", "pleasure",
        "you're welcome", "no problem", "sure", "okay", "ok", "yes", "no",
        "maybe", "i don't know", "i'm not sure", "that's interesting",
        "that's cool", "that's great", "awesome", "amazing", "wow", r"really\?",
        "tell me about yourself", "what can you do", "what are your capabilities",
        "help me", "can you help",
    )
)
_WEB_REQUIRED = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"weather", r"news", r"current", r"latest", r"today", r"now", r"recent",
        r"stock price", r"what is happening", r"what's happening", r"breaking",
        r"update", r"live", r"real-time", r"search for", r"search the web",
        r"google", r"look up", r"research.*web", r"web.*research",
        r"can you research", r"research.*on the web", r"bleeding edge",
        r"cutting edge", r"latest developments", r"current trends",
    )
)
_LOCAL_PREFERRED = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"what did i save", r"my notes", r"my documents", r"in my library",
        r"from my files", r"what have i", r"summarize my", r"my saved",
        r"my uploaded", r"my content",
    )
)
_BIOGRAPHICAL = re.compile(r"biography|about|who is|personal|background|profile", re.IGNORECASE)


class SourceRouter:
    """Produces one `RouteDecision` per turn.

    Rules are applied in fixed precedence: conversational no-ops, the web
    toggle, current-information patterns, personal-knowledge patterns, then a
    retrieval probe whose best score decides between local, hybrid and web.
    """

    def __init__(
        self,
        engine: RetrievalEngine,
        *,
        config: RoutingConfig | None = None,
        web_enabled: Callable[[], bool] | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or RoutingConfig()
        self._web_enabled = web_enabled or (lambda: self.config.web_search_enabled)

    async def route(self, utterance: str) -> RouteDecision:
        decision = await self._decide(utterance.strip())
        logger.debug(
            "Route %r -> local=%s web=%s (%s)",
            utterance, decision.use_local, decision.use_web, decision.reason,
        )
        return decision

    async def _decide(self, query: str) -> RouteDecision:
        if any(pattern.match(query) for pattern in _NO_SEARCH):
            return RouteDecision(False, False, "Simple conversation - no search needed")

        if not self._web_enabled():
            return RouteDecision(True, False, "Web search disabled")

        if any(pattern.search(query) for pattern in _WEB_REQUIRED):
            return RouteDecision(False, True, "Requires current information")

        if any(pattern.search(query) for pattern in _LOCAL_PREFERRED):
            return RouteDecision(True, False, "Personal knowledge query")

        threshold = (
            self.config.biographical_threshold
            if _BIOGRAPHICAL.search(query)
            else self.config.local_threshold
        )
        try:
            results = await self.engine.search(query, self.config.probe_top_k)
        except Exception:
            logger.warning("Local search probe failed", exc_info=True)
            return RouteDecision(False, True, "Local search failed")

        if results and results[0].score > threshold:
            return RouteDecision(True, False, "Found in local knowledge")
        if results:
            return RouteDecision(True, True, "Hybrid search - some local results found")
        return RouteDecision(False, True, "No local results")
