"""Token-budget optimization of documents, contexts and fragments."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from spec_context.config import DEFAULT_PRIORITY_FIELDS, CompressionLevel, OptimizationOptions
from spec_context.document import ELEMENT_KINDS, SpecificationDocument
from spec_context.obs.timing import Timer
from spec_context.optimize.profiles import ModelProfileRegistry, TokenEstimator
from spec_context.optimize.steps import (
    FORMATTERS,
    AggressiveCompressionStep,
    BalancedCompressionStep,
    FieldPrioritizationStep,
    MinimalCompressionStep,
    OptimizationStep,
    RedundancyRemovalStep,
    SemanticCompressionStep,
    StructuralOptimizationStep,
    present_groups,
)
from spec_context.types import (
    CompressionResult,
    ContextFragment,
    OptimizationMetrics,
    OptimizationRecord,
    ProcessingContext,
)

logger = logging.getLogger(__name__)

_PIPELINES: dict[str, tuple[str, ...]] = {
    "low": ("minimal_compression",),
    "medium": (
        "minimal_compression",
        "balanced_compression",
        "redundancy_removal",
        "structural_optimization",
    ),
    "high": (
        "minimal_compression",
        "balanced_compression",
        "redundancy_removal",
        "structural_optimization",
        "aggressive_compression",
        "semantic_compression",
        "field_prioritization",
    ),
}

# Steps that may drop whole elements; fragments skip them so chunk coverage holds.
_ELEMENT_DROPPING_STEPS = frozenset({"aggressive_compression"})


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class ContextOptimizer:
    """Runs compression pipelines until a document fits its token budget."""

    def __init__(
        self,
        *,
        registry: ModelProfileRegistry | None = None,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self.registry = registry or ModelProfileRegistry()
        self.estimator = estimator or TokenEstimator(self.registry)
        self._steps: dict[str, OptimizationStep] = {
            step.name: step
            for step in (
                MinimalCompressionStep(),
                BalancedCompressionStep(),
                RedundancyRemovalStep(),
                StructuralOptimizationStep(),
                AggressiveCompressionStep(),
                SemanticCompressionStep(),
                FieldPrioritizationStep(),
            )
        }

    def estimate_tokens(self, content: Any, model: str | None = None) -> int:
        return self.estimator.estimate(content, model)

    def pipeline(
        self,
        level: CompressionLevel,
        model: str | None = None,
        *,
        keep_elements: bool = False,
    ) -> list[OptimizationStep]:
        names = list(_PIPELINES[level])
        if level == "medium" and "semantic_compression" in self.registry.lookup(model).supported_techniques:
            names.append("semantic_compression")
        if keep_elements:
            names = [name for name in names if name not in _ELEMENT_DROPPING_STEPS]
        return [self._steps[name] for name in names]

    def optimize_document(
        self,
        document: SpecificationDocument,
        options: OptimizationOptions,
        *,
        keep_elements: bool = False,
    ) -> tuple[SpecificationDocument, OptimizationRecord]:
        """Apply the pipeline for `options.compression_level`, stopping once within budget.

        Each step only removes content, so the estimate never grows. When the
        pipeline runs out of steps above budget the record is flagged with
        `exceeds_budget`; nothing is truncated and nothing raises.
        """
        with Timer() as timer:
            model = options.target_model
            original_tokens = self.estimate_tokens(document, model)
            if original_tokens <= options.max_tokens:
                return document, OptimizationRecord(
                    applied=False,
                    original_tokens=original_tokens,
                    final_tokens=original_tokens,
                    preserved_groups=present_groups(document),
                    reason="within_budget",
                    semantic_preservation=1.0,
                    processing_time_ms=timer.lap_ms(),
                )

            current = document
            tokens = original_tokens
            techniques: list[str] = []
            removed: list[str] = []
            preserved = present_groups(document)
            for step in self.pipeline(options.compression_level, model, keep_elements=keep_elements):
                result = step.apply(current, options)
                current = result.document
                techniques.append(step.name)
                removed.extend(group for group in result.removed if group not in removed)
                preserved = result.preserved
                tokens = self.estimate_tokens(current, model)
                logger.debug("%s -> %d tokens", step.name, tokens)
                if tokens <= options.max_tokens:
                    break

        exceeds_budget = tokens > options.max_tokens
        if exceeds_budget:
            logger.warning(
                "Document %s still estimates %d tokens after %s; budget is %d",
                document.document_id,
                tokens,
                ", ".join(techniques),
                options.max_tokens,
            )
        else:
            logger.info(
                "Compressed %s from %d to %d tokens", document.document_id, original_tokens, tokens
            )
        return current, OptimizationRecord(
            applied=True,
            original_tokens=original_tokens,
            final_tokens=tokens,
            techniques_used=techniques,
            removed_groups=removed,
            preserved_groups=preserved,
            exceeds_budget=exceeds_budget,
            reason="budget_exceeded" if exceeds_budget else "compressed",
            semantic_preservation=self.assess_semantic_preservation(document, current),
            processing_time_ms=timer.elapsed_ms,
        )

    def optimize_context(
        self, context: ProcessingContext, options: OptimizationOptions
    ) -> ProcessingContext:
        document, record = self.optimize_document(context.document, options)
        if not record.applied:
            return replace(context, optimization=record)
        return replace(
            context,
            document=document,
            source_document=context.original_document,
            optimization=record,
        )

    def optimize_fragment(
        self, fragment: ContextFragment, options: OptimizationOptions
    ) -> ContextFragment:
        """Compress one fragment in place of its content; id and own kinds are kept."""
        own_kinds = [kind for kind in ELEMENT_KINDS if fragment.content.count(kind)]
        fields = list(options.priority_fields) + [k for k in own_kinds if k not in options.priority_fields]
        document, record = self.optimize_document(
            fragment.content,
            options.model_copy(update={"priority_fields": fields}),
            keep_elements=True,
        )
        ratio = (
            _clamp(record.final_tokens / record.original_tokens) if record.original_tokens else 1.0
        )
        return replace(
            fragment,
            content=document,
            token_count=record.final_tokens,
            metadata=replace(
                fragment.metadata,
                optimized=record.applied,
                original_tokens=record.original_tokens,
                compression_ratio=ratio,
                exceeds_budget=record.exceeds_budget,
            ),
        )

    def compress_content(
        self,
        content: SpecificationDocument,
        target_ratio: float,
        priority_fields: list[str] | None = None,
    ) -> CompressionResult:
        """Single compression strategy picked by how hard `target_ratio` asks to compress."""
        if target_ratio > 0.5:
            step = self._steps["semantic_compression"]
        elif target_ratio > 0.3:
            step = self._steps["redundancy_removal"]
        else:
            step = self._steps["field_prioritization"]

        options = OptimizationOptions(
            priority_fields=list(priority_fields or DEFAULT_PRIORITY_FIELDS)
        )
        result = step.apply(content, options)
        before = present_groups(content)
        quality = _clamp(len(result.preserved) / len(before)) if before else 1.0
        return CompressionResult(
            content=result.document,
            original_size=self.estimate_tokens(content),
            compressed_size=self.estimate_tokens(result.document),
            preserved_elements=result.preserved,
            removed_elements=result.removed,
            quality_score=quality,
            strategy=step.name,
        )

    def optimize_for_model(self, context: ProcessingContext, model_name: str) -> ProcessingContext:
        profile = self.registry.get(model_name)
        formatter = FORMATTERS[profile.preferred_density]
        return replace(
            context,
            document=formatter.format(context.document),
            source_document=context.original_document,
            metadata={**context.metadata, "target_model": model_name},
        )

    def measure_optimization(
        self, before: ProcessingContext, after: ProcessingContext
    ) -> OptimizationMetrics:
        model = after.metadata.get("target_model")
        original_tokens = self.estimate_tokens(before.document, model)
        optimized_tokens = self.estimate_tokens(after.document, model)
        record = after.optimization
        return OptimizationMetrics(
            original_tokens=original_tokens,
            optimized_tokens=optimized_tokens,
            compression_ratio=_clamp(optimized_tokens / original_tokens) if original_tokens else 1.0,
            semantic_preservation=self.assess_semantic_preservation(before.document, after.document),
            processing_time_ms=record.processing_time_ms if record else 0.0,
            techniques=list(record.techniques_used) if record else [],
        )

    @staticmethod
    def assess_semantic_preservation(
        original: SpecificationDocument, optimized: SpecificationDocument
    ) -> float:
        score = 0.5
        if optimized.count("business_rules") >= original.count("business_rules") * 0.8:
            score += 0.2
        if optimized.count("data_structures") >= original.count("data_structures") * 0.9:
            score += 0.2
        if optimized.count("api_endpoints") >= original.count("api_endpoints") * 0.85:
            score += 0.1
        return _clamp(score)

    @staticmethod
    def select_priority_fields(document: SpecificationDocument, use_case: str) -> list[str]:
        if use_case == "code_generation":
            fields = ["data_structures", "api_endpoints", "business_rules"]
            if document.count("workflow_steps"):
                fields.append("workflow_steps")
            return fields
        if use_case == "documentation":
            return ["business_rules", "data_structures", "api_endpoints", "governance", "workflow_steps"]
        if use_case == "validation":
            return ["business_rules", "governance", "data_structures", "api_endpoints"]
        if use_case == "analysis":
            fields = ["business_rules", "data_structures"]
            if document.governance:
                fields.append("governance")
            if document.ai_context:
                fields.append("ai_context")
            return fields + ["api_endpoints", "workflow_steps"]
        return ["business_rules", "data_structures", "api_endpoints", "governance"]
