"""Configuration models for chunking, optimization and the context manager."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

CompressionLevel = Literal["low", "medium", "high"]
BoundaryDetection = Literal["semantic", "structural", "size"]

DEFAULT_PRIORITY_FIELDS: list[str] = [
    "business_rules",
    "data_structures",
    "api_endpoints",
    "workflow_steps",
]


class ChunkingStrategy(BaseModel):
    """Configures one chunking run.

    `max_chunk_size` caps the elements per fragment. Without `max_tokens` it
    is also the token budget of a lone element: a single-element fragment
    above it is flagged `exceeds_budget`. `max_tokens` adds a hard token
    budget: groups are packed so multi-element fragments stay within it and
    any fragment above it is flagged.
    """

    name: str = "semantic"
    max_chunk_size: int = Field(default=2000, ge=1)
    preserve_relationships: bool = True
    priority_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_FIELDS))
    overlap_size: int = Field(default=0, ge=0)
    boundary_detection: BoundaryDetection = "semantic"
    max_tokens: int | None = Field(default=None, ge=1)


class StreamingOptions(BaseModel):
    """Options for lazily streamed fragments."""

    chunk_size: int = Field(default=2000, ge=1)
    overlap: int = Field(default=0, ge=0)
    preserve_relationships: bool = True
    priority_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_FIELDS))
    max_tokens: int | None = Field(default=None, ge=1)


class OptimizationOptions(BaseModel):
    """Budget and compression settings for one optimization call."""

    max_tokens: int = Field(default=4000, ge=1)
    target_model: str = "gpt-4"
    compression_level: CompressionLevel = "medium"
    priority_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_FIELDS))
    priority_threshold: int = Field(default=2, ge=1)


class MergeOptions(BaseModel):
    preserve_relationships: bool = True
    max_tokens: int | None = Field(default=None, ge=1)
    priority_order: list[str] | None = None
    deduplicate: bool = True


class ContextOptions(BaseModel):
    """Per-call overrides of `ContextManagerConfig`; unset fields inherit."""

    max_tokens: int | None = Field(default=None, ge=1)
    compression_level: CompressionLevel | None = None
    priority_fields: list[str] | None = None
    target_model: str | None = None
    enable_caching: bool | None = None


class ContextManagerConfig(BaseModel):
    """Defaults owned by one `ContextManager` instance."""

    max_tokens: int = Field(default=4000, ge=1)
    compression_level: CompressionLevel = "medium"
    priority_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_FIELDS))
    target_model: str = "gpt-4"
    enable_caching: bool = True
    cache_max_entries: int = Field(default=128, ge=1)
    chunk_size: int = Field(default=2000, ge=1)

    @classmethod
    def from_env(cls) -> "ContextManagerConfig":
        """Build a config from `SPEC_CONTEXT_*` environment variables."""
        values: dict[str, object] = {}
        if max_tokens := os.getenv("SPEC_CONTEXT_MAX_TOKENS"):
            values["max_tokens"] = int(max_tokens)
        if level := os.getenv("SPEC_CONTEXT_COMPRESSION_LEVEL"):
            values["compression_level"] = level
        if model := os.getenv("SPEC_CONTEXT_TARGET_MODEL"):
            values["target_model"] = model
        if fields := os.getenv("SPEC_CONTEXT_PRIORITY_FIELDS"):
            values["priority_fields"] = [f.strip() for f in fields.split(",") if f.strip()]
        if caching := os.getenv("SPEC_CONTEXT_ENABLE_CACHING"):
            values["enable_caching"] = caching.lower() not in {"0", "false", "no"}
        if entries := os.getenv("SPEC_CONTEXT_CACHE_MAX_ENTRIES"):
            values["cache_max_entries"] = int(entries)
        return cls.model_validate(values)


class QualityWeights(BaseModel):
    """Weights of the fragment cohesion heuristic.

    The score is not a proof of optimality; it only ranks groupings so that
    dependency-complete, reasonably sized fragments score higher.
    """

    base: float = Field(default=0.5, ge=0.0, le=1.0)
    internal_dependencies_bonus: float = Field(default=0.3, ge=0.0, le=1.0)
    balanced_size_bonus: float = Field(default=0.2, ge=0.0, le=1.0)
    balanced_ranges: dict[str, tuple[int, int]] = Field(
        default_factory=lambda: {
            "business_rules": (3, 8),
            "data_structures": (2, 10),
            "api_endpoints": (2, 10),
            "workflow_steps": (2, 6),
            "mixed": (2, 10),
        }
    )
    low_quality_threshold: float = Field(default=0.7, ge=0.0, le=1.0)


class AdaptiveThresholds(BaseModel):
    """Element counts above which `adaptive` picks a single-kind strategy."""

    workflow_steps: int = Field(default=10, ge=0)
    data_structures: int = Field(default=15, ge=0)
    api_endpoints: int = Field(default=20, ge=0)
    business_rules: int = Field(default=10, ge=0)


class AnalysisThresholds(BaseModel):
    min_quality: float = Field(default=0.8, ge=0.0, le=1.0)
    min_relationship_preservation: float = Field(default=0.8, ge=0.0, le=1.0)
    min_token_efficiency: float = Field(default=0.1, ge=0.0, le=1.0)
    max_budget_usage: float = Field(default=0.9, ge=0.0, le=1.0)
