"""Wikipedia-backed web search with an in-memory result cache."""

from __future__ import annotations

import html
import logging
import re
import time
from collections.abc import Callable
from urllib.parse import quote

import httpx

from companion_core.types import WebResult

logger = logging.getLogger(__name__)

_API_URL = "https://en.wikipedia.org/w/api.php"
_PAGE_URL = "https://en.wikipedia.org/wiki/"
_TAG = re.compile(r"<[^>]+>")
_BLOCK = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.DOTALL | re.IGNORECASE)
CACHE_TTL_SECONDS = 3600.0
CACHE_MAX_ENTRIES = 256
MAX_CONTENT_CHARS = 5000


class WikipediaSearchProvider:
    """Searches Wikipedia and fetches readable page text.

    Results are cached per `(query, n)` for an hour, keeping at most
    `max_cache_entries` of them. `fetch_content` never raises; failures yield
    an empty string.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 10.0,
        max_cache_entries: int = CACHE_MAX_ENTRIES,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=timeout, headers={"User-Agent": "companion-core/0.1"}
        )
        self._clock = clock
        self._max_cache_entries = max_cache_entries
        self._cache: dict[tuple[str, int], tuple[float, list[WebResult]]] = {}

    async def search(self, query: str, n: int = 5) -> list[WebResult]:
        key = (query.strip().lower(), n)
        cached = self._cache.get(key)
        if cached is not None:
            if self._clock() - cached[0] < CACHE_TTL_SECONDS:
                return list(cached[1])
            del self._cache[key]

        response = await self._client.get(
            _API_URL,
            params={
                "action": "query",
                "list": "search",
                "srsearch": query,
                "srlimit": n,
                "format": "json",
            },
        )
        response.raise_for_status()
        hits = response.json().get("query", {}).get("search", [])
        results = [
            WebResult(
                title=hit["title"],
                url=_PAGE_URL + quote(hit["title"].replace(" ", "_")),
                description=_strip_html(hit.get("snippet", "")),
            )
            for hit in hits[:n]
        ]
        self._remember(key, results)
        logger.debug("Web search %r: %d results", query, len(results))
        return list(results)

    async def fetch_content(self, url: str) -> str:
        try:
            response = await self._client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.info("Fetching %s failed: %s", url, exc)
            return ""
        return _strip_html(_BLOCK.sub(" ", response.text))[:MAX_CONTENT_CHARS]

    def _remember(self, key: tuple[str, int], results: list[WebResult]) -> None:
        now = self._clock()
        expired = [
            cached_key
            for cached_key, (stored_at, _) in self._cache.items()
            if now - stored_at >= CACHE_TTL_SECONDS
        ]
        for stale in expired:
            del self._cache[stale]
        self._cache[key] = (now, results)
        while len(self._cache) > self._max_cache_entries:
            del self._cache[next(iter(self._cache))]

    def clear_cache(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        await self._client.aclose()


def _strip_html(text: str) -> str:
    return " ".join(html.unescape(_TAG.sub(" ", text)).split())
