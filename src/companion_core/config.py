"""Configuration models for the assistant core."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ChunkingConfig(BaseModel):
    """Configures character-window chunking with sentence-aware cuts."""

    max_chunk_size: int = Field(default=500, ge=20)
    overlap: int = Field(default=50, ge=0)
    split_by_sentence: bool = True

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap >= self.max_chunk_size:
            raise ValueError("overlap must be less than max_chunk_size")
        return self


class RetrievalConfig(BaseModel):
    """Configures semantic search, expansion and relevance boosting."""

    top_k: int = Field(default=5, ge=1)
    min_score: float = Field(default=0.03, ge=0.0)
    lexical_min_score: float = Field(default=0.05, ge=0.0, le=1.0)
    max_expansions: int = Field(default=3, ge=0)
    title_boost: float = Field(default=0.15, ge=0.0)
    content_boost: float = Field(default=0.10, ge=0.0)
    entity_boost: float = Field(default=0.25, ge=0.0)
    max_boost: float = Field(default=0.30, ge=0.0)


class RoutingConfig(BaseModel):
    """Configures source routing between local knowledge and web search."""

    web_search_enabled: bool = True
    probe_top_k: int = Field(default=5, ge=1)
    local_threshold: float = Field(default=0.25, ge=0.0)
    biographical_threshold: float = Field(default=0.15, ge=0.0)


class RateLimitConfig(BaseModel):
    """Per-turn limits for side-effecting tool calls."""

    max_operations_per_turn: int = Field(default=10, ge=1)
    max_destructive_ops_per_turn: int = Field(default=3, ge=0)
    cooldown_ms: int = Field(default=1000, ge=0)
    scope: Literal["conversation", "global"] = "conversation"
    audit_capacity: int = Field(default=1000, ge=1)
    max_tracked_keys: int = Field(default=1000, ge=1)


class RetryConfig(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=10000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    recovery_timeout_ms: int = Field(default=30000, ge=0)


class OrchestratorConfig(BaseModel):
    """Configures one completion turn."""

    timeout_seconds: float = Field(default=60.0, gt=0.0)
    max_tool_rounds: int = Field(default=5, ge=0)
    history_window: int = Field(default=6, ge=0)
    web_results: int = Field(default=5, ge=0)
    web_full_content: int = Field(default=2, ge=0)
    web_content_chars: int = Field(default=1000, ge=1)
    preferred_provider: str | None = None
    pre_routing_enabled: bool = True
    persona_name: str = "Companion"


class CoreConfig(BaseModel):
    """Bundle of all tunables, convenient for wiring an application shell."""

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
