"""Context manager: the facade tying chunking, optimization and caching together."""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from spec_context.chunking.chunker import SemanticChunker
from spec_context.chunking.stream import FragmentCursor
from spec_context.config import (
    AnalysisThresholds,
    ChunkingStrategy,
    ContextManagerConfig,
    ContextOptions,
    MergeOptions,
    OptimizationOptions,
    StreamingOptions,
)
from spec_context.document import (
    ELEMENT_KINDS,
    DocumentMetadata,
    SpecificationDocument,
)
from spec_context.errors import StructuralError
from spec_context.manager.cache import ContextCache
from spec_context.obs.timing import Timer, utc_timestamp
from spec_context.optimize.optimizer import ContextOptimizer
from spec_context.types import (
    CacheStats,
    ContextAnalysis,
    ContextFragment,
    ContextMetrics,
    ContextPerformance,
    ProcessingContext,
    RelationshipEdge,
)

logger = logging.getLogger(__name__)


def _new_context_id() -> str:
    return f"ctx_{uuid.uuid4().hex[:16]}"


class ContextManager:
    """Builds, caches, merges, streams and analyses processing contexts.

    One instance owns one cache. The chunker and optimizer keep no mutable
    state, so a manager may be shared between threads.
    """

    def __init__(
        self,
        config: ContextManagerConfig | None = None,
        *,
        chunker: SemanticChunker | None = None,
        optimizer: ContextOptimizer | None = None,
        analysis_thresholds: AnalysisThresholds | None = None,
    ) -> None:
        self.config = config or ContextManagerConfig()
        self.optimizer = optimizer or ContextOptimizer()
        self.chunker = chunker or SemanticChunker(estimator=self.optimizer.estimator)
        self.analysis_thresholds = analysis_thresholds or AnalysisThresholds()
        self._cache = ContextCache(self.config.cache_max_entries)

    def create_context(
        self,
        document: SpecificationDocument,
        options: ContextOptions | None = None,
    ) -> ProcessingContext:
        optimization, caching = self._resolve(options)
        key = self._cache_key(document, optimization) if caching else None
        if key is not None:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Context cache hit for %s", document.document_id)
                return replace(cached, from_cache=True)

        with Timer() as total:
            context = ProcessingContext(
                id=_new_context_id(),
                document=document,
                metadata={
                    "created_at": utc_timestamp(),
                    "token_budget": optimization.max_tokens,
                    "target_model": optimization.target_model,
                    "compression_level": optimization.compression_level,
                    "priority_fields": list(optimization.priority_fields),
                },
            )
            with Timer() as optimize_timer:
                context = self.optimizer.optimize_context(context, optimization)
            context = self._with_graph(context)

        context = replace(
            context,
            performance=ContextPerformance(
                optimization_ms=optimize_timer.elapsed_ms,
                total_ms=total.elapsed_ms,
            ),
        )
        if key is not None:
            self._cache.put(key, context)
        logger.info(
            "Created context %s for %s (%d tokens, budget %d)",
            context.id,
            document.document_id,
            context.metrics.token_count if context.metrics else 0,
            optimization.max_tokens,
        )
        return context

    def chunk_document(
        self,
        document: SpecificationDocument,
        chunk_size: int | None = None,
    ) -> list[ContextFragment]:
        strategy = ChunkingStrategy(
            name="semantic",
            max_chunk_size=chunk_size or self.config.chunk_size,
            priority_fields=list(self.config.priority_fields),
        )
        with Timer() as timer:
            try:
                fragments = self.chunker.by_strategy(document, strategy)
            except StructuralError as exc:
                exc.elapsed_ms = timer.lap_ms()
                logger.error(
                    "Chunking %s failed after %.1f ms: %s",
                    document.document_id,
                    exc.elapsed_ms,
                    exc,
                )
                raise
        logger.info(
            "Chunked %s into %d fragments in %.1f ms",
            document.document_id,
            len(fragments),
            timer.elapsed_ms,
        )
        return fragments

    def optimize_context(self, context: ProcessingContext, target_tokens: int) -> ProcessingContext:
        options = OptimizationOptions(
            max_tokens=target_tokens,
            target_model=context.metadata.get("target_model", self.config.target_model),
            compression_level=context.metadata.get(
                "compression_level", self.config.compression_level
            ),
            priority_fields=list(
                context.metadata.get("priority_fields", self.config.priority_fields)
            ),
        )
        optimized = self.optimizer.optimize_context(context, options)
        optimized = replace(
            optimized, metadata={**optimized.metadata, "token_budget": target_tokens}
        )
        return self._with_graph(optimized)

    def merge_contexts(
        self,
        contexts: Sequence[ProcessingContext],
        options: MergeOptions | None = None,
    ) -> ProcessingContext:
        if not contexts:
            raise ValueError("Cannot merge an empty list of contexts")
        if len(contexts) == 1:
            return contexts[0]

        options = options or MergeOptions()
        max_tokens = options.max_tokens or self.config.max_tokens
        priority_order = list(options.priority_order or self.config.priority_fields)
        documents = [context.document for context in contexts]

        with Timer() as total:
            with Timer() as merge_timer:
                merged = SpecificationDocument(
                    metadata=_merge_metadata([d.metadata for d in documents]),
                    ai_context=_merge_mappings([d.ai_context for d in documents]),
                    governance=_merge_mappings([d.governance for d in documents]),
                    **{
                        kind: _merge_elements(documents, kind, options.deduplicate)
                        for kind in ELEMENT_KINDS
                    },
                )
            context = ProcessingContext(
                id=_new_context_id(),
                document=merged,
                metadata={
                    "created_at": utc_timestamp(),
                    "token_budget": max_tokens,
                    "target_model": self.config.target_model,
                    "compression_level": self.config.compression_level,
                    "priority_fields": priority_order,
                    "merged_from": [c.id for c in contexts],
                },
            )
            with Timer() as optimize_timer:
                context = self.optimizer.optimize_context(
                    context,
                    OptimizationOptions(
                        max_tokens=max_tokens,
                        target_model=self.config.target_model,
                        compression_level=self.config.compression_level,
                        priority_fields=priority_order,
                    ),
                )
            context = self._with_graph(
                context, preserve_relationships=options.preserve_relationships
            )

        logger.info("Merged %d contexts into %s", len(contexts), context.id)
        return replace(
            context,
            performance=ContextPerformance(
                optimization_ms=optimize_timer.elapsed_ms,
                merge_ms=merge_timer.elapsed_ms,
                total_ms=total.elapsed_ms,
            ),
        )

    def stream_context(
        self,
        document: SpecificationDocument,
        options: StreamingOptions | None = None,
    ) -> FragmentCursor:
        """Fresh lazy cursor per call; fragments above `max_tokens` are optimized on pull."""
        options = options or StreamingOptions(
            chunk_size=self.config.chunk_size,
            priority_fields=list(self.config.priority_fields),
        )
        if options.max_tokens is None:
            return self.chunker.for_streaming(document, options)

        fragment_options = OptimizationOptions(
            max_tokens=options.max_tokens,
            target_model=self.config.target_model,
            compression_level=self.config.compression_level,
            priority_fields=list(options.priority_fields),
        )

        def shrink_oversized(fragment: ContextFragment) -> ContextFragment:
            if fragment.token_count <= fragment_options.max_tokens:
                return fragment
            return self.optimizer.optimize_fragment(fragment, fragment_options)

        return self.chunker.for_streaming(document, options, transform=shrink_oversized)

    def analyze_context(self, context: ProcessingContext) -> ContextAnalysis:
        limits = self.analysis_thresholds
        metrics = context.metrics or self._metrics(context)
        budget = context.metadata.get("token_budget", self.config.max_tokens)

        quality = self.optimizer.assess_semantic_preservation(
            context.original_document, context.document
        )
        usage = metrics.token_count / budget if budget else 0.0
        efficiency = (
            max(0.0, 1.0 - metrics.token_count / metrics.original_tokens)
            if metrics.original_tokens
            else 0.0
        )
        preservation = _relationship_preservation(
            self._edges(context.original_document), self._edges(context.document)
        )

        suggestions: list[str] = []
        if quality < limits.min_quality:
            suggestions.append(
                "Key elements were removed during optimization; try a different chunking "
                "strategy or a lighter compression level"
            )
        if preservation < limits.min_relationship_preservation:
            suggestions.append("Some relationships were lost; review the chunking strategy")
        optimized = context.optimization is not None and context.optimization.applied
        if optimized and efficiency < limits.min_token_efficiency:
            suggestions.append("Low compression achieved; content may already be optimized")
        if usage > 1.0:
            suggestions.append("Context exceeds its token budget; chunk the document instead")
        elif usage > limits.max_budget_usage:
            suggestions.append(
                "Context is near its token limit; consider chunking or further optimization"
            )

        return ContextAnalysis(
            quality_score=quality,
            token_efficiency=round(efficiency, 4),
            budget_usage=round(usage, 4),
            relationship_preservation=preservation,
            suggestions=suggestions,
        )

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Context cache cleared")

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    # Internals

    def _resolve(self, options: ContextOptions | None) -> tuple[OptimizationOptions, bool]:
        config = self.config
        options = options or ContextOptions()
        resolved = OptimizationOptions(
            max_tokens=options.max_tokens or config.max_tokens,
            target_model=options.target_model or config.target_model,
            compression_level=options.compression_level or config.compression_level,
            priority_fields=list(options.priority_fields or config.priority_fields),
        )
        caching = config.enable_caching if options.enable_caching is None else options.enable_caching
        return resolved, caching

    @staticmethod
    def _cache_key(document: SpecificationDocument, options: OptimizationOptions) -> str:
        payload = {"document": document.to_payload(), "options": options.model_dump(mode="json")}
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()

    def _edges(self, document: SpecificationDocument) -> list[RelationshipEdge]:
        extractor = self.chunker.extractor
        return [
            edge
            for kind in ELEMENT_KINDS
            for edge in extractor.extract(kind, document.elements(kind))
        ]

    def _with_graph(
        self, context: ProcessingContext, *, preserve_relationships: bool = True
    ) -> ProcessingContext:
        """Recompute the relationship map, dependency set and metrics.

        With `preserve_relationships` off the relationship map is left empty.
        """
        edges = self._edges(context.document)
        known = context.document.contained_ids()
        relationships: dict[str, list[str]] = {}
        for edge in edges:
            if not preserve_relationships or edge.target_id not in known:
                continue
            targets = relationships.setdefault(edge.source_id, [])
            if edge.target_id not in targets:
                targets.append(edge.target_id)
        dependencies = frozenset(edge.target_id for edge in edges if edge.kind == "dependency")
        context = replace(context, relationships=relationships, dependencies=dependencies)
        return replace(context, metrics=self._metrics(context))

    def _metrics(self, context: ProcessingContext) -> ContextMetrics:
        model = context.metadata.get("target_model")
        record = context.optimization
        tokens = self.optimizer.estimate_tokens(context.document, model)
        original = record.original_tokens if record else tokens
        return ContextMetrics(
            token_count=tokens,
            original_tokens=original,
            compression_ratio=min(1.0, tokens / original) if original else 1.0,
            quality_score=(
                record.semantic_preservation
                if record and record.semantic_preservation is not None
                else 1.0
            ),
            relationship_count=sum(len(targets) for targets in context.relationships.values()),
        )


def _relationship_preservation(
    before: Sequence[RelationshipEdge], after: Sequence[RelationshipEdge]
) -> float:
    original = {(e.source_id, e.target_id, e.kind) for e in before}
    if not original:
        return 1.0
    kept = {(e.source_id, e.target_id, e.kind) for e in after}
    return len(original & kept) / len(original)


def _merge_elements(documents: Sequence[SpecificationDocument], kind: str, deduplicate: bool) -> list[Any]:
    merged: list[Any] = []
    seen: set[str] = set()
    for document in documents:
        for element in document.elements(kind):  # type: ignore[arg-type]
            if deduplicate:
                if element.id in seen:
                    continue
                seen.add(element.id)
            merged.append(element)
    return merged


def _merge_metadata(items: Sequence[DocumentMetadata]) -> DocumentMetadata:
    tags: list[str] = []
    for metadata in items:
        tags.extend(tag for tag in metadata.tags or [] if tag not in tags)
    return DocumentMetadata(
        version=items[0].version,
        id="merged_" + "_".join(metadata.id for metadata in items),
        title=f"Merged context ({len(items)} documents)",
        description=next((m.description for m in items if m.description), None),
        author=next((m.author for m in items if m.author), None),
        created=utc_timestamp(),
        tags=tags or None,
    )


def _merge_mappings(mappings: Sequence[dict[str, Any] | None]) -> dict[str, Any] | None:
    """Deep-merge: lists concatenate without repeats, nested mappings recurse, first scalar wins."""
    present = [mapping for mapping in mappings if mapping]
    if not present:
        return None
    merged: dict[str, Any] = {}
    for mapping in present:
        for key, value in mapping.items():
            if key not in merged:
                merged[key] = list(value) if isinstance(value, list) else value
                continue
            current = merged[key]
            if isinstance(current, list) and isinstance(value, list):
                current.extend(item for item in value if item not in current)
            elif isinstance(current, dict) and isinstance(value, dict):
                merged[key] = _merge_mappings([current, value])
    return merged
