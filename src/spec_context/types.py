"""Shared value types produced by the chunker, optimizer and manager."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from spec_context.document import SpecificationDocument

RelationshipKind = Literal["dependency", "reference", "composition"]


@dataclass(slots=True, frozen=True)
class RelationshipEdge:
    """A typed, weighted link between two document elements."""

    source_id: str
    target_id: str
    kind: RelationshipKind
    strength: float


@dataclass(slots=True, frozen=True)
class FragmentMetadata:
    index: int
    total: int
    source_document_id: str
    fragment_type: str
    created_at: str
    dependencies: list[str]
    quality_score: float
    exceeds_budget: bool = False
    optimized: bool = False
    original_tokens: int | None = None
    compression_ratio: float | None = None


@dataclass(slots=True, frozen=True)
class FragmentBoundaries:
    first_element_id: str
    last_element_id: str
    overlap_with: list[str] = field(default_factory=list)
    overlap_element_ids: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ContextFragment:
    """A token-estimated, relationship-tagged slice of a document."""

    id: str
    content: SpecificationDocument
    token_count: int
    relationships: list[str]
    priority: float
    metadata: FragmentMetadata
    boundaries: FragmentBoundaries

    def element_ids(self) -> list[str]:
        return self.content.element_ids()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content.to_payload(),
            "token_count": self.token_count,
            "relationships": list(self.relationships),
            "priority": self.priority,
            "metadata": asdict(self.metadata),
            "boundaries": asdict(self.boundaries),
        }


@dataclass(slots=True, frozen=True)
class OptimizationRecord:
    applied: bool
    original_tokens: int
    final_tokens: int
    techniques_used: list[str] = field(default_factory=list)
    removed_groups: list[str] = field(default_factory=list)
    preserved_groups: list[str] = field(default_factory=list)
    exceeds_budget: bool = False
    reason: str | None = None
    semantic_preservation: float | None = None
    processing_time_ms: float = 0.0


@dataclass(slots=True, frozen=True)
class ContextPerformance:
    optimization_ms: float = 0.0
    merge_ms: float = 0.0
    total_ms: float = 0.0


@dataclass(slots=True, frozen=True)
class ContextMetrics:
    token_count: int
    original_tokens: int
    compression_ratio: float
    quality_score: float
    relationship_count: int


@dataclass(slots=True, frozen=True)
class ProcessingContext:
    """Aggregate returned for a whole-document request."""

    id: str
    document: SpecificationDocument
    relationships: dict[str, list[str]] = field(default_factory=dict)
    dependencies: frozenset[str] = frozenset()
    metadata: dict[str, Any] = field(default_factory=dict)
    performance: ContextPerformance = field(default_factory=ContextPerformance)
    optimization: OptimizationRecord | None = None
    metrics: ContextMetrics | None = None
    source_document: SpecificationDocument | None = None
    from_cache: bool = False

    @property
    def original_document(self) -> SpecificationDocument:
        return self.source_document or self.document

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document": self.document.to_payload(),
            "relationships": {key: list(value) for key, value in self.relationships.items()},
            "dependencies": sorted(self.dependencies),
            "metadata": dict(self.metadata),
            "performance": asdict(self.performance),
            "optimization": asdict(self.optimization) if self.optimization else None,
            "metrics": asdict(self.metrics) if self.metrics else None,
            "from_cache": self.from_cache,
        }


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    code: str
    message: str
    severity: Literal["error", "warning"]
    fragment_id: str | None = None
    element_id: str | None = None


@dataclass(slots=True, frozen=True)
class ValidationResult:
    valid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]


@dataclass(slots=True, frozen=True)
class CompressionResult:
    content: SpecificationDocument
    original_size: int
    compressed_size: int
    preserved_elements: list[str]
    removed_elements: list[str]
    quality_score: float
    strategy: str


@dataclass(slots=True, frozen=True)
class OptimizationMetrics:
    original_tokens: int
    optimized_tokens: int
    compression_ratio: float
    semantic_preservation: float
    processing_time_ms: float
    techniques: list[str]


@dataclass(slots=True, frozen=True)
class ContextAnalysis:
    quality_score: float
    token_efficiency: float
    budget_usage: float
    relationship_preservation: float
    suggestions: list[str]


@dataclass(slots=True, frozen=True)
class CacheStats:
    entry_count: int
    approximate_memory_bytes: int
    hits: int
    misses: int
    max_entries: int
