"""Relationship extraction and graph helpers for one element kind at a time."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from spec_context.document import (
    ApiEndpoint,
    BusinessRule,
    DataStructure,
    Element,
    ElementKind,
    WorkflowStep,
)
from spec_context.types import RelationshipEdge, RelationshipKind

logger = logging.getLogger(__name__)

RULE_REFERENCE_STRENGTH = 0.8
RULE_EXCEPTION_STRENGTH = 0.6
STRUCTURE_REFERENCE_STRENGTH = 0.9
STRUCTURE_COMPOSITION_STRENGTH = 0.7
ENDPOINT_DOMAIN_STRENGTH = 0.5
WORKFLOW_DEPENDENCY_STRENGTH = 1.0


def _id_pattern(element_id: str) -> re.Pattern[str]:
    # An id only matches as a whole token: `rule-1` must not match `rule-10`.
    return re.compile(rf"(?<![\w-]){re.escape(element_id)}(?![\w-])")


def endpoint_domain(path: str) -> str:
    """First non-empty path segment, or `root` for `/`."""
    segments = [segment for segment in path.split("/") if segment]
    return segments[0] if segments else "root"


class RelationshipExtractor:
    """Derives typed edges between elements of a single kind.

    Every method is a pure function of its input list and runs in O(n²) over
    that list, which stays small because callers scope extraction to one kind.
    """

    def extract(self, kind: ElementKind, elements: Sequence[Element]) -> list[RelationshipEdge]:
        if kind == "business_rules":
            return self.business_rule_edges(elements)  # type: ignore[arg-type]
        if kind == "data_structures":
            return self.data_structure_edges(elements)  # type: ignore[arg-type]
        if kind == "api_endpoints":
            return self.api_endpoint_edges(elements)  # type: ignore[arg-type]
        return self.workflow_edges(elements)  # type: ignore[arg-type]

    def business_rule_edges(self, rules: Sequence[BusinessRule]) -> list[RelationshipEdge]:
        patterns = {rule.id: _id_pattern(rule.id) for rule in rules}
        edges = _EdgeList()
        for rule in rules:
            text = f"{rule.condition}\n{rule.action}"
            for other in rules:
                if other.id == rule.id:
                    continue
                if patterns[other.id].search(text):
                    edges.add(rule.id, other.id, "dependency", RULE_REFERENCE_STRENGTH)
            for exception in rule.exceptions or []:
                edges.add(rule.id, exception.id, "dependency", RULE_EXCEPTION_STRENGTH)
        return edges.items

    def data_structure_edges(self, structures: Sequence[DataStructure]) -> list[RelationshipEdge]:
        by_name: dict[str, str] = {}
        for structure in structures:
            by_name.setdefault(structure.name.lower(), structure.id)

        edges = _EdgeList()
        for structure in structures:
            for data_field in structure.fields or []:
                if data_field.type == "reference" and data_field.reference_to:
                    if data_field.reference_to != structure.id:
                        edges.add(
                            structure.id,
                            data_field.reference_to,
                            "reference",
                            STRUCTURE_REFERENCE_STRENGTH,
                        )
                    continue
                target = by_name.get(data_field.type.lower())
                if target is not None and target != structure.id:
                    edges.add(structure.id, target, "composition", STRUCTURE_COMPOSITION_STRENGTH)
        return edges.items

    def api_endpoint_edges(self, endpoints: Sequence[ApiEndpoint]) -> list[RelationshipEdge]:
        edges = _EdgeList()
        domains = [endpoint_domain(endpoint.path) for endpoint in endpoints]
        for i, endpoint in enumerate(endpoints):
            for j, other in enumerate(endpoints):
                if i != j and domains[i] == domains[j]:
                    edges.add(endpoint.id, other.id, "reference", ENDPOINT_DOMAIN_STRENGTH)
        return edges.items

    def workflow_edges(self, steps: Sequence[WorkflowStep]) -> list[RelationshipEdge]:
        edges = _EdgeList()
        for step in steps:
            for dependency in step.dependencies or []:
                edges.add(step.id, dependency, "dependency", WORKFLOW_DEPENDENCY_STRENGTH)
        return edges.items


class _EdgeList:
    """Ordered edge collection that drops duplicate (source, target, kind)."""

    def __init__(self) -> None:
        self.items: list[RelationshipEdge] = []
        self._seen: set[tuple[str, str, str]] = set()

    def add(self, source: str, target: str, kind: RelationshipKind, strength: float) -> None:
        key = (source, target, kind)
        if key in self._seen:
            return
        self._seen.add(key)
        self.items.append(RelationshipEdge(source, target, kind, strength))


def build_adjacency(edges: Iterable[RelationshipEdge]) -> dict[str, list[RelationshipEdge]]:
    """Map each source id to its outgoing edges."""
    graph: dict[str, list[RelationshipEdge]] = {}
    for edge in edges:
        graph.setdefault(edge.source_id, []).append(edge)
    return graph


def undirected_neighbours(
    edges: Iterable[RelationshipEdge],
    *,
    kinds: set[str] | None = None,
) -> dict[str, list[str]]:
    """Neighbour lists ignoring edge direction, in first-seen order."""
    neighbours: dict[str, list[str]] = {}
    for edge in edges:
        if kinds is not None and edge.kind not in kinds:
            continue
        for a, b in ((edge.source_id, edge.target_id), (edge.target_id, edge.source_id)):
            bucket = neighbours.setdefault(a, [])
            if b not in bucket:
                bucket.append(b)
    return neighbours


def find_cycle(graph: dict[str, list[str]], nodes: Sequence[str]) -> list[str] | None:
    """Return the members of one directed cycle, or None.

    Iterative depth-first search; a node still on the recursion stack that is
    reached again closes a cycle. Targets outside `nodes` are ignored.
    """
    known = set(nodes)
    finished: set[str] = set()
    for root in nodes:
        if root in finished:
            continue
        path = [root]
        on_path = {root}
        stack = [iter(graph.get(root, ()))]
        while stack:
            advanced = False
            for child in stack[-1]:
                if child not in known or child in finished:
                    continue
                if child in on_path:
                    cycle = path[path.index(child):]
                    logger.debug("Cycle detected: %s", cycle)
                    return cycle
                path.append(child)
                on_path.add(child)
                stack.append(iter(graph.get(child, ())))
                advanced = True
                break
            if not advanced:
                stack.pop()
                node = path.pop()
                on_path.discard(node)
                finished.add(node)
    return None
