"""Compression steps and model formatters applied by the optimizer.

Each step is a pure transformation of a `SpecificationDocument`. Steps never
touch element ids, conditions, actions or dependencies, so the relationship
graph of whatever survives a step is unchanged.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from spec_context.config import OptimizationOptions
from spec_context.document import (
    ELEMENT_KINDS,
    ApiEndpoint,
    BusinessRule,
    DataStructure,
    SpecificationDocument,
    normalize_kind,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StepResult:
    document: SpecificationDocument
    removed: list[str]
    preserved: list[str]


class OptimizationStep(ABC):
    """One stage of a compression pipeline."""

    name: str

    @abstractmethod
    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        raise NotImplementedError


def present_groups(document: SpecificationDocument) -> list[str]:
    """Top-level groups that carry content."""
    groups = [kind for kind in ELEMENT_KINDS if document.count(kind)]
    if document.ai_context:
        groups.append("ai_context")
    if document.governance:
        groups.append("governance")
    return groups


def _without(model: BaseModel, names: Iterable[str]) -> Any:
    """Copy of `model` with the named optional attributes cleared."""
    fields = type(model).model_fields
    update = {
        name: None
        for name in names
        if name in fields and getattr(model, name) is not None
    }
    return model.model_copy(update=update) if update else model


def _map_elements(document: SpecificationDocument, names: Iterable[str]) -> dict[str, list[Any]]:
    names = tuple(names)
    return {
        kind: [_without(element, names) for element in document.elements(kind)]
        for kind in ELEMENT_KINDS
    }


def _touched(document: SpecificationDocument, names: Iterable[str]) -> list[str]:
    names = tuple(names)
    return [
        f"{kind}.{name}"
        for kind in ELEMENT_KINDS
        for name in names
        if any(getattr(element, name, None) is not None for element in document.elements(kind))
    ]


def _is_blank(value: Any) -> bool:
    return value == "" or value == [] or value == {}


def _normalized(model: BaseModel) -> Any:
    """Clear blank optional values; required defaults such as `condition=""` stay."""
    fields = type(model).model_fields
    update = {
        name: None
        for name, info in fields.items()
        if info.default is None and _is_blank(getattr(model, name))
    }
    return model.model_copy(update=update) if update else model


class MinimalCompressionStep(OptimizationStep):
    name = "minimal_compression"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        removed = _touched(document, ("tags",))
        if document.metadata.tags is not None:
            removed.insert(0, "metadata.tags")
        optimized = document.model_copy(
            update={
                "metadata": _without(document.metadata, ("tags",)),
                **_map_elements(document, ("tags",)),
            }
        )
        return StepResult(optimized, removed, present_groups(optimized))


class BalancedCompressionStep(OptimizationStep):
    name = "balanced_compression"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        names = ("examples", "metadata")
        removed = _touched(document, names)
        optimized = document.model_copy(update=_map_elements(document, names))
        return StepResult(optimized, removed, present_groups(optimized))


class RedundancyRemovalStep(OptimizationStep):
    """Drops repeated elements, descriptions that restate the name and repeated hints."""

    name = "redundancy_removal"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        removed: list[str] = []
        update: dict[str, Any] = {}
        for kind in ELEMENT_KINDS:
            seen: set[str] = set()
            kept = []
            duplicates = 0
            echoed = 0
            for element in document.elements(kind):
                if element.id in seen:
                    duplicates += 1
                    continue
                seen.add(element.id)
                description = element.description
                if description is not None and description.strip().lower() == element.name.strip().lower():
                    element = _without(element, ("description",))
                    echoed += 1
                kept.append(element)
            if duplicates:
                removed.append(f"{kind}.duplicates")
            if echoed:
                removed.append(f"{kind}.redundant_descriptions")
            update[kind] = kept

        if document.ai_context:
            hints, changed = _dedupe_mapping(document.ai_context)
            if changed:
                update["ai_context"] = hints
                removed.append("ai_context.duplicate_hints")

        optimized = document.model_copy(update=update)
        return StepResult(optimized, removed, present_groups(optimized))


class StructuralOptimizationStep(OptimizationStep):
    name = "structural_optimization"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        optimized = normalize_structure(document)
        removed = ["empty_values"] if optimized != document else []
        return StepResult(optimized, removed, present_groups(optimized))


class AggressiveCompressionStep(OptimizationStep):
    """Drops rules less important than `priority_threshold` and the document description."""

    name = "aggressive_compression"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        removed: list[str] = []
        rules = [
            rule for rule in document.business_rules if rule.priority <= options.priority_threshold
        ]
        if len(rules) != len(document.business_rules):
            removed.append("low_priority_business_rules")
            logger.debug(
                "Dropped %d rules above priority %d",
                len(document.business_rules) - len(rules),
                options.priority_threshold,
            )
        if document.metadata.description is not None:
            removed.append("metadata.description")
        optimized = document.model_copy(
            update={
                "business_rules": rules,
                "metadata": _without(document.metadata, ("description",)),
            }
        )
        return StepResult(optimized, removed, present_groups(optimized))


class SemanticCompressionStep(OptimizationStep):
    """Removes nested prose while keeping every element and its semantics."""

    name = "semantic_compression"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        removed: list[str] = []

        rules = [_compress_rule(rule) for rule in document.business_rules]
        structures = [_compress_structure(structure) for structure in document.data_structures]
        endpoints = [_compress_endpoint(endpoint) for endpoint in document.api_endpoints]
        if rules != document.business_rules:
            removed.append("business_rules.exception_reasons")
        if structures != document.data_structures:
            removed.append("data_structures.field_descriptions")
        if endpoints != document.api_endpoints:
            removed.append("api_endpoints.nested_descriptions")

        update: dict[str, Any] = {
            "business_rules": rules,
            "data_structures": structures,
            "api_endpoints": endpoints,
        }
        governance = document.governance
        if governance:
            trimmed = {
                key: value
                for key, value in governance.items()
                if key not in ("auditTrail", "audit_trail")
            }
            if len(trimmed) != len(governance):
                update["governance"] = trimmed or None
                removed.append("governance.audit_trail")

        optimized = document.model_copy(update=update)
        return StepResult(optimized, removed, present_groups(optimized))


class FieldPrioritizationStep(OptimizationStep):
    """Keeps only the groups named in `priority_fields`."""

    name = "field_prioritization"

    def apply(self, document: SpecificationDocument, options: OptimizationOptions) -> StepResult:
        keep = priority_groups(options.priority_fields)
        removed: list[str] = []
        update: dict[str, Any] = {}
        for kind in ELEMENT_KINDS:
            if kind not in keep and document.count(kind):
                update[kind] = []
                removed.append(kind)
        for group in ("ai_context", "governance"):
            if group not in keep and getattr(document, group):
                update[group] = None
                removed.append(group)
        optimized = document.model_copy(update=update)
        return StepResult(optimized, removed, present_groups(optimized))


def priority_groups(priority_fields: Iterable[str]) -> set[str]:
    """Normalise configured field names (`aiContext`, `businessRules`, ...) to groups."""
    groups: set[str] = set()
    for name in priority_fields:
        kind = normalize_kind(name)
        if kind is not None:
            groups.add(kind)
        elif name in ("ai_context", "aiContext"):
            groups.add("ai_context")
        elif name == "governance":
            groups.add("governance")
    return groups


def normalize_structure(document: SpecificationDocument) -> SpecificationDocument:
    update: dict[str, Any] = {
        kind: [_normalized(element) for element in document.elements(kind)]
        for kind in ELEMENT_KINDS
    }
    update["metadata"] = _normalized(document.metadata)
    if document.ai_context == {}:
        update["ai_context"] = None
    if document.governance == {}:
        update["governance"] = None
    return document.model_copy(update=update)


def strip_descriptions(document: SpecificationDocument) -> SpecificationDocument:
    update: dict[str, Any] = _map_elements(document, ("description",))
    update["data_structures"] = [
        _compress_structure(structure) for structure in update["data_structures"]
    ]
    update["api_endpoints"] = [_compress_endpoint(endpoint) for endpoint in update["api_endpoints"]]
    update["metadata"] = _without(document.metadata, ("description",))
    return document.model_copy(update=update)


def _compress_rule(rule: BusinessRule) -> BusinessRule:
    if not rule.exceptions:
        return rule
    exceptions = [_without(exception, ("reason",)) for exception in rule.exceptions]
    return rule.model_copy(update={"exceptions": exceptions})


def _compress_structure(structure: DataStructure) -> DataStructure:
    if not structure.fields:
        return structure
    fields = [_without(data_field, ("description",)) for data_field in structure.fields]
    return structure.model_copy(update={"fields": fields})


def _compress_endpoint(endpoint: ApiEndpoint) -> ApiEndpoint:
    update: dict[str, Any] = {}
    if endpoint.parameters:
        update["parameters"] = [_without(p, ("description",)) for p in endpoint.parameters]
    if endpoint.responses:
        update["responses"] = [_without(r, ("description",)) for r in endpoint.responses]
    return endpoint.model_copy(update=update) if update else endpoint


def _dedupe_mapping(mapping: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    changed = False
    result: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, list):
            unique = _dedupe_list(value)
            changed = changed or len(unique) != len(value)
            result[key] = unique
        else:
            result[key] = value
    return result, changed


def _dedupe_list(values: list[Any]) -> list[Any]:
    seen: set[str] = set()
    unique: list[Any] = []
    for value in values:
        marker = json.dumps(value, sort_keys=True, default=str)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(value)
    return unique


class ModelFormatter(ABC):
    @abstractmethod
    def format(self, document: SpecificationDocument) -> SpecificationDocument:
        raise NotImplementedError


class VerboseFormatter(ModelFormatter):
    def format(self, document: SpecificationDocument) -> SpecificationDocument:
        return document


class CompactFormatter(ModelFormatter):
    def format(self, document: SpecificationDocument) -> SpecificationDocument:
        return strip_descriptions(document)


class StructuredFormatter(ModelFormatter):
    def format(self, document: SpecificationDocument) -> SpecificationDocument:
        return normalize_structure(document)


FORMATTERS: dict[str, ModelFormatter] = {
    "verbose": VerboseFormatter(),
    "compact": CompactFormatter(),
    "structured": StructuredFormatter(),
}
