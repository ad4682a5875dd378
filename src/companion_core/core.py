"""Wiring of all core components behind one object."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from companion_core.agent.gateway import RateLimiter, ToolGateway
from companion_core.agent.orchestrator import CompletionOrchestrator
from companion_core.agent.registry import ToolRegistry
from companion_core.agent.tools import register_builtin_tools
from companion_core.config import CoreConfig
from companion_core.ingest.chunker import TextChunker
from companion_core.ingest.embedder import Embedder, HashingEmbedder
from companion_core.ingest.pipeline import IngestPipeline
from companion_core.obs.audit import AuditLog
from companion_core.obs.tracing import TraceStore
from companion_core.providers.base import CompletionProvider, WebSearchProvider
from companion_core.resilience.breaker import CircuitBreakerRegistry
from companion_core.resilience.executor import ResilientExecutor
from companion_core.retrieval.engine import RetrievalEngine
from companion_core.routing.pre_router import PreRouter
from companion_core.routing.source_router import SourceRouter
from companion_core.storage import InMemoryStorage, Storage


@dataclass(slots=True)
class AssistantCore:
    config: CoreConfig
    storage: Storage
    engine: RetrievalEngine
    pipeline: IngestPipeline
    registry: ToolRegistry
    gateway: ToolGateway
    executor: ResilientExecutor
    source_router: SourceRouter
    orchestrator: CompletionOrchestrator
    trace_store: TraceStore


def build_core(
    *,
    config: CoreConfig | None = None,
    storage: Storage | None = None,
    embedder: Embedder | None = None,
    providers: Sequence[CompletionProvider] = (),
    web_search: WebSearchProvider | None = None,
    breakers: CircuitBreakerRegistry | None = None,
    rate_limiter: RateLimiter | None = None,
    pre_router: PreRouter | None = None,
    web_enabled: Callable[[], bool] | None = None,
) -> AssistantCore:
    """Assemble a ready-to-use core; every collaborator can be replaced."""

    cfg = config or CoreConfig()
    store = storage or InMemoryStorage()
    chunker = TextChunker(cfg.chunking)
    executor = ResilientExecutor(breakers or CircuitBreakerRegistry(cfg.breaker), cfg.retry)
    engine = RetrievalEngine(
        store,
        embedder or HashingEmbedder(),
        chunker=chunker,
        config=cfg.retrieval,
        executor=executor,
    )
    pipeline = IngestPipeline(chunker, engine.embedder, store, executor=executor)

    registry = ToolRegistry()
    register_builtin_tools(registry, storage=store, engine=engine, pipeline=pipeline)
    limiter = rate_limiter or RateLimiter(cfg.rate_limit)
    gateway = ToolGateway(
        registry, rate_limiter=limiter, audit_log=AuditLog(cfg.rate_limit.audit_capacity)
    )
    source_router = SourceRouter(engine, config=cfg.routing, web_enabled=web_enabled)
    trace_store = TraceStore()

    orchestrator = CompletionOrchestrator(
        storage=store,
        engine=engine,
        source_router=source_router,
        gateway=gateway,
        executor=executor,
        providers=providers,
        pre_router=pre_router,
        web_search=web_search,
        trace_store=trace_store,
        config=cfg.orchestrator,
    )
    return AssistantCore(
        config=cfg,
        storage=store,
        engine=engine,
        pipeline=pipeline,
        registry=registry,
        gateway=gateway,
        executor=executor,
        source_router=source_router,
        orchestrator=orchestrator,
        trace_store=trace_store,
    )
