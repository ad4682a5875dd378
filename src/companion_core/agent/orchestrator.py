"""Per-turn state machine from utterance to persisted assistant message."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

from companion_core.agent.arguments import ParseOutcome, parse_tool_arguments
from companion_core.agent.fallback import PersonaFallback
from companion_core.agent.gateway import ToolGateway
from companion_core.agent.prompting import (
    PromptBuilder,
    format_local_context,
    format_web_context,
    looks_generic,
)
from companion_core.config import OrchestratorConfig
from companion_core.errors import CompanionError
from companion_core.obs.tracing import ExecutionTrace, Timer, TraceStore
from companion_core.providers.base import (
    CompletionProvider,
    StreamDelta,
    ToolCallAccumulator,
    WebSearchProvider,
)
from companion_core.resilience.executor import ResilientExecutor
from companion_core.retrieval.engine import RetrievalEngine
from companion_core.routing.pre_router import PreRouter
from companion_core.routing.source_router import SourceRouter
from companion_core.storage import Storage
from companion_core.types import (
    ChatMessage,
    ExecutionStep,
    HistoryMessage,
    RouteDecision,
    SearchResult,
    ToolCall,
    TurnState,
    WebResult,
)

logger = logging.getLogger(__name__)

PROVIDER_OPERATION = "agent_execution"
WEB_SEARCH_OPERATION = "web_search"
WEB_FETCH_OPERATION = "web_fetch"
NO_PROVIDER_MESSAGE = (
    "No AI service configured. Add an API key for a completion provider in "
    "Settings, or start a local model server, then try again."
)


@dataclass(slots=True)
class TurnCallbacks:
    on_update: Callable[[str], None] | None = None
    on_step: Callable[[ExecutionStep], None] | None = None
    on_rollback: Callable[[], None] | None = None


@dataclass(slots=True)
class ToolInvocation:
    call_id: str
    name: str
    outcome: ParseOutcome
    arguments: dict[str, Any]
    result: dict[str, Any]


@dataclass(slots=True)
class TurnResult:
    content: str
    state: TurnState
    message: ChatMessage
    sources: list[str] = field(default_factory=list)
    route: RouteDecision | None = None
    pre_routed: bool = False
    used_fallback: bool = False
    provider: str | None = None
    retrieval_calls: int = 0
    provider_calls: int = 0
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    steps: list[ExecutionStep] = field(default_factory=list)
    trace_id: str | None = None


@dataclass(slots=True)
class _Turn:
    conversation_id: str
    utterance: str
    history: Sequence[HistoryMessage]
    callbacks: TurnCallbacks
    trace: ExecutionTrace
    state: TurnState = TurnState.ROUTING
    buffer: str = ""
    route: RouteDecision | None = None
    local_results: list[SearchResult] = field(default_factory=list)
    web_results: list[WebResult] = field(default_factory=list)
    retrieval_calls: int = 0
    provider_calls: int = 0
    provider: str | None = None
    tool_invocations: list[ToolInvocation] = field(default_factory=list)

    def enter(self, state: TurnState, description: str, **metadata: Any) -> None:
        self.state = state
        self.trace.add(state.value, description, **metadata)

    def publish(self, text: str) -> None:
        self.buffer = text
        if self.callbacks.on_update is not None:
            self.callbacks.on_update(text)


@dataclass(slots=True)
class _RoundOutput:
    content: str
    tool_calls: list[ToolCall]


class CompletionOrchestrator:
    """Runs one user turn through routing, retrieval, prompting and streaming.

    States: ROUTING -> RETRIEVING -> PROMPTING -> STREAMING <-> TOOL_EXECUTING
    -> DONE | FAILED. Provider failures and timeouts end in DONE with either
    the partial streamed text or a persona fallback; only unexpected errors
    outside provider I/O reach FAILED, after `on_rollback` has run.
    """

    def __init__(
        self,
        *,
        storage: Storage,
        engine: RetrievalEngine,
        source_router: SourceRouter,
        gateway: ToolGateway,
        executor: ResilientExecutor,
        providers: Sequence[CompletionProvider],
        pre_router: PreRouter | None = None,
        web_search: WebSearchProvider | None = None,
        prompt_builder: PromptBuilder | None = None,
        fallback: PersonaFallback | None = None,
        trace_store: TraceStore | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self.storage = storage
        self.engine = engine
        self.source_router = source_router
        self.gateway = gateway
        self.executor = executor
        self.providers = list(providers)
        self.pre_router = pre_router or PreRouter()
        self.web_search = web_search
        self.prompt_builder = prompt_builder or PromptBuilder(
            self.config.persona_name, self.config.history_window
        )
        self.fallback = fallback or PersonaFallback(self.config.persona_name)
        self.trace_store = trace_store

    async def run_turn(
        self,
        conversation_id: str,
        utterance: str,
        history: Sequence[HistoryMessage] = (),
        callbacks: TurnCallbacks | None = None,
    ) -> TurnResult:
        hooks = callbacks or TurnCallbacks()
        turn = _Turn(
            conversation_id=conversation_id,
            utterance=utterance,
            history=tuple(history),
            callbacks=hooks,
            trace=ExecutionTrace(hooks.on_step),
        )
        try:
            with Timer() as timer:
                result = await self._run(turn)
        except Exception as exc:
            turn.enter(TurnState.FAILED, f"Turn failed: {type(exc).__name__}")
            logger.exception("Turn failed for conversation %s", conversation_id)
            if hooks.on_rollback is not None:
                hooks.on_rollback()
            raise

        if self.trace_store is not None:
            record = self.trace_store.create_record(
                conversation_id=conversation_id,
                final_state=result.state.value,
                route_reason=result.route.reason if result.route else None,
                used_fallback=result.used_fallback,
                provider_calls=result.provider_calls,
                retrieval_calls=result.retrieval_calls,
                tool_calls=len(result.tool_invocations),
                question=utterance,
                answer=result.content,
                latency_ms=timer.elapsed_ms,
                steps=result.steps,
            )
            result.trace_id = record.trace_id
        return result

    async def _run(self, turn: _Turn) -> TurnResult:
        turn.enter(TurnState.ROUTING, "Classifying message")
        self.gateway.reset_rate_limits(turn.conversation_id)
        self.storage.append_message(
            ChatMessage(conversation_id=turn.conversation_id, role="user", content=turn.utterance)
        )

        if self.config.pre_routing_enabled:
            pre = self.pre_router.classify(turn.utterance)
            if not pre.should_route and pre.response is not None:
                turn.publish(pre.response)
                return self._finish(turn, pre.response, pre_routed=True)

        turn.enter(TurnState.RETRIEVING, "Choosing sources")
        turn.route = await self.source_router.route(turn.utterance)
        turn.trace.add(
            "route",
            turn.route.reason,
            use_local=turn.route.use_local,
            use_web=turn.route.use_web,
        )
        local_context = await self._local_context(turn) if turn.route.use_local else ""
        web_context = await self._web_context(turn) if turn.route.use_web else ""

        turn.enter(TurnState.PROMPTING, "Assembling prompt")
        messages = self.prompt_builder.build(
            turn.utterance,
            turn.history,
            local_context=local_context,
            web_context=web_context,
        )

        provider = await self._select_provider()
        if provider is None:
            turn.publish(NO_PROVIDER_MESSAGE)
            return self._finish(turn, NO_PROVIDER_MESSAGE)
        turn.provider = provider.name

        used_fallback = False
        try:
            content = await asyncio.wait_for(
                self._complete(turn, provider, messages),
                timeout=self.config.timeout_seconds,
            )
        except (asyncio.TimeoutError, CompanionError) as exc:
            logger.warning("Provider %s failed: %s", provider.name, exc)
            turn.trace.add("provider_error", str(exc), error_type=type(exc).__name__)
            if turn.buffer.strip():
                content = turn.buffer
            else:
                content = self.fallback.respond(turn.utterance, turn.history)
                turn.trace.add("fallback", self.fallback.rule_for(turn.utterance))
                used_fallback = True
                turn.publish(content)

        if local_context and not used_fallback and looks_generic(content):
            logger.warning("Generic reply despite local context; context may have been ignored")
        return self._finish(turn, content, used_fallback=used_fallback)

    async def _local_context(self, turn: _Turn) -> str:
        turn.retrieval_calls += 1
        try:
            turn.local_results = await self.engine.search(turn.utterance)
        except Exception:
            logger.warning("Local retrieval failed, continuing without it", exc_info=True)
            return ""
        turn.trace.add("local_search", f"{len(turn.local_results)} local results")
        return format_local_context(turn.local_results)

    async def _web_context(self, turn: _Turn) -> str:
        if self.web_search is None or self.config.web_results == 0:
            return ""
        web_search = self.web_search
        turn.retrieval_calls += 1
        try:
            turn.web_results = await self.executor.run(
                lambda: web_search.search(turn.utterance, self.config.web_results),
                WEB_SEARCH_OPERATION,
            )
        except Exception:
            logger.warning("Web search failed, continuing without it", exc_info=True)
            return ""

        entries: list[tuple[WebResult, str]] = []
        for position, result in enumerate(turn.web_results):
            body = result.description
            if position < self.config.web_full_content:
                try:
                    fetched = await self.executor.run(
                        lambda url=result.url: web_search.fetch_content(url),
                        WEB_FETCH_OPERATION,
                    )
                except Exception:
                    logger.info("Fetching %s failed", result.url, exc_info=True)
                    fetched = ""
                body = fetched[: self.config.web_content_chars] or result.description
            entries.append((result, body))
        turn.trace.add("web_search", f"{len(entries)} web results")
        return format_web_context(entries)

    async def _select_provider(self) -> CompletionProvider | None:
        preferred = self.config.preferred_provider
        ordered = sorted(self.providers, key=lambda provider: provider.name != preferred)
        for provider in ordered:
            try:
                if await provider.is_available():
                    return provider
            except Exception:
                logger.warning("Availability check for %s failed", provider.name, exc_info=True)
        return None

    async def _complete(
        self,
        turn: _Turn,
        provider: CompletionProvider,
        messages: list[BaseMessage],
    ) -> str:
        tools = self.gateway.registry.tool_definitions()
        rounds = 0
        while True:
            turn.enter(TurnState.STREAMING, f"Streaming from {provider.name}", round=rounds)
            committed = turn.buffer
            output = await self.executor.run(
                lambda: self._stream_round(turn, provider, messages, tools, committed),
                PROVIDER_OPERATION,
            )
            calls = [call for call in output.tool_calls if call.name]
            if not calls:
                return turn.buffer
            if rounds >= self.config.max_tool_rounds:
                logger.warning("Tool round limit reached, ignoring %d calls", len(calls))
                return turn.buffer

            rounds += 1
            turn.enter(TurnState.TOOL_EXECUTING, f"Executing {len(calls)} tool call(s)")
            await self._execute_tools(turn, calls, output.content, messages)

    async def _stream_round(
        self,
        turn: _Turn,
        provider: CompletionProvider,
        messages: list[BaseMessage],
        tools: list[dict[str, Any]],
        committed: str,
    ) -> _RoundOutput:
        if turn.buffer != committed:
            # Retried attempt: drop what the failed attempt streamed.
            turn.publish(committed)
        turn.provider_calls += 1

        accumulator = ToolCallAccumulator()
        parts: list[str] = []
        delta: StreamDelta
        async for delta in provider.stream_complete(messages, tools):
            if delta.content:
                parts.append(delta.content)
                turn.publish(turn.buffer + delta.content)
            if delta.tool_call is not None:
                accumulator.add(delta.tool_call)
        return _RoundOutput(content="".join(parts), tool_calls=accumulator.calls())

    async def _execute_tools(
        self,
        turn: _Turn,
        calls: list[ToolCall],
        content: str,
        messages: list[BaseMessage],
    ) -> None:
        registry = self.gateway.registry
        parsed_calls = [
            (call, parse_tool_arguments(call.arguments_json, registry.default_arguments(call.name)))
            for call in calls
        ]
        messages.append(
            AIMessage(
                content=content,
                tool_calls=[
                    {"name": call.name, "args": parsed.arguments, "id": call.id}
                    for call, parsed in parsed_calls
                ],
            )
        )
        for call, parsed in parsed_calls:
            result = await self.gateway.execute(
                call.name, parsed.arguments, conversation_id=turn.conversation_id
            )
            turn.tool_invocations.append(
                ToolInvocation(
                    call_id=call.id,
                    name=call.name,
                    outcome=parsed.outcome,
                    arguments=parsed.arguments,
                    result=result,
                )
            )
            turn.trace.add(
                "tool_call",
                call.name,
                outcome=parsed.outcome.value,
                success=bool(result.get("success")),
            )
            messages.append(
                ToolMessage(
                    content=json.dumps(result, default=str),
                    tool_call_id=call.id,
                    name=call.name,
                )
            )

    def _finish(
        self,
        turn: _Turn,
        content: str,
        *,
        pre_routed: bool = False,
        used_fallback: bool = False,
    ) -> TurnResult:
        sources = _unique(
            [hit.chunk.document_id for hit in turn.local_results]
            + [result.url for result in turn.web_results]
        )
        message = ChatMessage(
            conversation_id=turn.conversation_id,
            role="assistant",
            content=content,
            sources=sources,
        )
        self.storage.append_message(message)
        if not turn.history:
            self.storage.update_conversation_meta(
                turn.conversation_id, {"title": _title_from(turn.utterance)}
            )
        turn.enter(TurnState.DONE, "Turn complete", fallback=used_fallback)
        return TurnResult(
            content=content,
            state=TurnState.DONE,
            message=message,
            sources=sources,
            route=turn.route,
            pre_routed=pre_routed,
            used_fallback=used_fallback,
            provider=turn.provider,
            retrieval_calls=turn.retrieval_calls,
            provider_calls=turn.provider_calls,
            tool_invocations=list(turn.tool_invocations),
            steps=list(turn.trace.steps),
        )


def _unique(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _title_from(utterance: str) -> str:
    title = " ".join(utterance.split())
    return title if len(title) <= 60 else title[:57] + "..."
