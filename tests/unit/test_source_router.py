import pytest

from companion_core.config import RoutingConfig
from companion_core.routing.source_router import SourceRouter
from companion_core.types import Chunk, SearchResult


class _ProbeEngine:
    def __init__(self, scores: list[float] | None = None, error: Exception | None = None) -> None:
        self.scores = scores or []
        self.error = error
        self.calls: list[tuple[str, int | None]] = []

    async def search(self, query: str, k: int | None = None, min_score: float | None = None):
        self.calls.append((query, k))
        if self.error is not None:
            raise self.error
        return [
            SearchResult(
                chunk=Chunk(id=f"c{i}", document_id="d", document_title="t", index=i, text="x"),
                score=score,
                score_percent=round(score * 100),
            )
            for i, score in enumerate(self.scores)
        ]


@pytest.mark.asyncio
@pytest.mark.parametrize("utterance", ["hello", "Thanks", "yes", "what can you do", "really?"])
@pytest.mark.parametrize("web_enabled", [True, False])
async def test_conversational_noops_never_search(utterance: str, web_enabled: bool) -> None:
    engine = _ProbeEngine([0.9])
    router = SourceRouter(engine, web_enabled=lambda: web_enabled)

    decision = await router.route(utterance)

    assert (decision.use_local, decision.use_web) == (False, False)
    assert engine.calls == []


@pytest.mark.asyncio
async def test_web_toggle_off_forces_local_only() -> None:
    router = SourceRouter(_ProbeEngine(), config=RoutingConfig(web_search_enabled=False))

    decision = await router.route("latest news about rust")

    assert (decision.use_local, decision.use_web) == (True, False)
    assert decision.reason == "Web search disabled"


@pytest.mark.asyncio
async def test_current_information_goes_to_web() -> None:
    router = SourceRouter(_ProbeEngine([0.9]))

    decision = await router.route("what's the weather in Austin")

    assert (decision.use_local, decision.use_web) == (False, True)


@pytest.mark.asyncio
async def test_personal_knowledge_goes_local_without_probe() -> None:
    engine = _ProbeEngine()
    router = SourceRouter(engine)

    decision = await router.route("what did i save about sourdough")

    assert (decision.use_local, decision.use_web) == (True, False)
    assert engine.calls == []


@pytest.mark.asyncio
async def test_probe_outcomes() -> None:
    confident = await SourceRouter(_ProbeEngine([0.4, 0.1])).route("sourdough starter ratios")
    weak = await SourceRouter(_ProbeEngine([0.2])).route("sourdough starter ratios")
    empty = await SourceRouter(_ProbeEngine([])).route("sourdough starter ratios")
    broken = await SourceRouter(_ProbeEngine(error=RuntimeError("db down"))).route(
        "sourdough starter ratios"
    )

    assert (confident.use_local, confident.use_web) == (True, False)
    assert (weak.use_local, weak.use_web) == (True, True)
    assert (empty.use_local, empty.use_web) == (False, True)
    assert (broken.use_local, broken.use_web) == (False, True)
    assert broken.reason == "Local search failed"


@pytest.mark.asyncio
async def test_biographical_queries_use_lower_threshold() -> None:
    engine = _ProbeEngine([0.2])
    router = SourceRouter(engine)

    decision = await router.route("who is Ada Lovelace")

    assert (decision.use_local, decision.use_web) == (True, False)
    assert engine.calls == [("who is Ada Lovelace", 5)]
