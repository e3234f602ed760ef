"""Relationship-preserving chunking of specification documents.

Chunking runs in two phases:

1. Planning. Per element kind, relationship edges are extracted and elements
   are grouped (dependency clusters, composition hierarchies, endpoint
   domains, workflow sequences). Groups are packed or sliced so each plan
   respects the element cap and, when configured, the hard token budget.
   Planning is graph work only.

2. Building. Each plan becomes a `ContextFragment`: its partial document is
   assembled, tokens are estimated, outside references and declared
   dependencies are collected and the group is scored.

List-returning strategies run both phases eagerly. `for_streaming` plans up
front and builds one fragment per pull.
"""

from __future__ import annotations

import heapq
import logging
import math
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from spec_context.chunking.quality import ChunkQualityAssessor
from spec_context.chunking.relationships import (
    RelationshipExtractor,
    build_adjacency,
    endpoint_domain,
    find_cycle,
    undirected_neighbours,
)
from spec_context.chunking.stream import FragmentCursor
from spec_context.config import (
    AdaptiveThresholds,
    ChunkingStrategy,
    StreamingOptions,
)
from spec_context.document import (
    ELEMENT_KINDS,
    BusinessRule,
    DocumentMetadata,
    Element,
    ElementKind,
    SpecificationDocument,
    normalize_kind,
)
from spec_context.errors import UnknownStrategyError, WorkflowCycleError
from spec_context.obs.timing import utc_timestamp
from spec_context.optimize.profiles import TokenEstimator, serialize_content
from spec_context.types import (
    ContextFragment,
    FragmentBoundaries,
    FragmentMetadata,
    RelationshipEdge,
    ValidationIssue,
    ValidationResult,
)

logger = logging.getLogger(__name__)

_ID_PREFIXES = {
    "business_rules": "br",
    "data_structures": "ds",
    "api_endpoints": "api",
    "workflow_steps": "wf",
    "mixed": "mx",
}

_TITLES = {
    "business_rules": "Business rules",
    "data_structures": "Data structures",
    "api_endpoints": "API endpoints",
    "workflow_steps": "Workflow steps",
    "mixed": "Related elements",
}

# Edge kinds that count as declared dependencies of a fragment's elements.
_DEPENDENCY_EDGE_KINDS: dict[str, frozenset[str]] = {
    "business_rules": frozenset({"dependency"}),
    "data_structures": frozenset({"reference", "composition"}),
    "api_endpoints": frozenset(),
    "workflow_steps": frozenset({"dependency"}),
}

Member = tuple[ElementKind, Element]


@dataclass(slots=True)
class FragmentPlan:
    """Graph-level description of one fragment before its content is built."""

    members: list[Member]
    edges: list[RelationshipEdge]
    domain: str | None = None
    _contained: set[str] | None = field(default=None, repr=False)

    def __len__(self) -> int:
        return len(self.members)

    @property
    def fragment_type(self) -> str:
        return _fragment_type(self.members)

    @property
    def element_ids(self) -> list[str]:
        return [element.id for _, element in self.members]

    def contained_ids(self) -> set[str]:
        if self._contained is None:
            self._contained = _contained_ids(self.members)
        return self._contained

    def references(self, known_ids: set[str]) -> list[str]:
        """Ids outside this plan that its elements point at."""
        contained = self.contained_ids()
        return _unique(
            edge.target_id
            for edge in self.edges
            if edge.target_id not in contained and edge.target_id in known_ids
        )

    def dependencies(self) -> list[str]:
        kind_of = {element.id: kind for kind, element in self.members}
        return _unique(
            edge.target_id
            for edge in self.edges
            if edge.kind in _DEPENDENCY_EDGE_KINDS[kind_of.get(edge.source_id, "api_endpoints")]
        )


class _SizeBudget:
    """Element cap plus an optional conservative token budget."""

    def __init__(
        self,
        chunker: "SemanticChunker",
        document: SpecificationDocument,
        max_elements: int,
        max_tokens: int | None,
    ) -> None:
        self.chunker = chunker
        self.document = document
        self.max_elements = max_elements
        self.max_tokens = max_tokens
        self._element_chars: dict[int, int] = {}
        self._envelopes: dict[tuple[str, str | None], int] = {}

    def fits(self, members: Sequence[Member], domain: str | None = None) -> bool:
        if len(members) > self.max_elements:
            return False
        if self.max_tokens is None or len(members) <= 1:
            return True
        return self.tokens(members, domain) <= self.max_tokens

    def tokens(self, members: Sequence[Member], domain: str | None = None) -> int:
        chars = self._envelope(_fragment_type(members), domain)
        chars += sum(self._chars(element) + 1 for _, element in members)
        return math.ceil(chars / self.chunker.estimator.registry.lookup(None).token_ratio)

    def _chars(self, element: Element) -> int:
        key = id(element)
        if key not in self._element_chars:
            self._element_chars[key] = len(serialize_content(element))
        return self._element_chars[key]

    def _envelope(self, kind: str, domain: str | None) -> int:
        key = (kind, domain)
        if key not in self._envelopes:
            metadata = self.chunker.synthetic_metadata(self.document, kind, 99999, 99999, domain)
            empty = SpecificationDocument(metadata=metadata)
            self._envelopes[key] = len(serialize_content(empty))
        return self._envelopes[key]


class SemanticChunker:
    """Splits a specification document into relationship-aware fragments."""

    def __init__(
        self,
        *,
        extractor: RelationshipExtractor | None = None,
        assessor: ChunkQualityAssessor | None = None,
        estimator: TokenEstimator | None = None,
        thresholds: AdaptiveThresholds | None = None,
    ) -> None:
        self.extractor = extractor or RelationshipExtractor()
        self.assessor = assessor or ChunkQualityAssessor()
        self.estimator = estimator or TokenEstimator()
        self.thresholds = thresholds or AdaptiveThresholds()

    # Per-kind strategies

    def by_business_rules(
        self,
        document: SpecificationDocument,
        max_chunk_size: int = 2000,
        *,
        max_tokens: int | None = None,
    ) -> list[ContextFragment]:
        return self._run_kind(document, "business_rules", max_chunk_size, max_tokens)

    def by_data_structures(
        self,
        document: SpecificationDocument,
        max_chunk_size: int = 2000,
        *,
        max_tokens: int | None = None,
    ) -> list[ContextFragment]:
        return self._run_kind(document, "data_structures", max_chunk_size, max_tokens)

    def by_api_endpoints(
        self,
        document: SpecificationDocument,
        max_chunk_size: int = 2000,
        *,
        max_tokens: int | None = None,
    ) -> list[ContextFragment]:
        return self._run_kind(document, "api_endpoints", max_chunk_size, max_tokens)

    def by_workflow(
        self,
        document: SpecificationDocument,
        max_chunk_size: int = 2000,
        *,
        max_tokens: int | None = None,
    ) -> list[ContextFragment]:
        return self._run_kind(document, "workflow_steps", max_chunk_size, max_tokens)

    # Composite strategies

    def by_strategy(
        self, document: SpecificationDocument, strategy: ChunkingStrategy
    ) -> list[ContextFragment]:
        if strategy.name == "semantic":
            return self.semantic(document, strategy)
        if strategy.name == "adaptive":
            return self.adaptive(document, strategy)
        kind = normalize_kind(strategy.name)
        if kind is None:
            raise UnknownStrategyError(strategy.name)
        budget = _SizeBudget(self, document, strategy.max_chunk_size, strategy.max_tokens)
        plans = self._plan_kind(document, kind, budget, strategy.boundary_detection)
        return self._materialize(document, plans, strategy.max_chunk_size, strategy.max_tokens)

    def semantic(
        self, document: SpecificationDocument, strategy: ChunkingStrategy
    ) -> list[ContextFragment]:
        """Per-kind chunking in `priority_fields` order, merging related neighbours."""
        plans = self.plan(document, strategy)
        return self._materialize(document, plans, strategy.max_chunk_size, strategy.max_tokens)

    def adaptive(
        self, document: SpecificationDocument, strategy: ChunkingStrategy
    ) -> list[ContextFragment]:
        """Pick one per-kind strategy from element counts, else fall back to `semantic`."""
        limits = self.thresholds
        checks: list[tuple[ElementKind, int]] = [
            ("workflow_steps", limits.workflow_steps),
            ("data_structures", limits.data_structures),
            ("api_endpoints", limits.api_endpoints),
            ("business_rules", limits.business_rules),
        ]
        for kind, limit in checks:
            if document.count(kind) > limit:
                logger.info(
                    "Adaptive chunking selected %s for %s (%d > %d)",
                    kind,
                    document.document_id,
                    document.count(kind),
                    limit,
                )
                return self._run_kind(
                    document,
                    kind,
                    strategy.max_chunk_size,
                    strategy.max_tokens,
                    boundary=strategy.boundary_detection,
                )
        logger.info("Adaptive chunking fell back to semantic for %s", document.document_id)
        return self.semantic(document, strategy)

    def for_streaming(
        self,
        document: SpecificationDocument,
        options: StreamingOptions,
        *,
        transform: Callable[[ContextFragment], ContextFragment] | None = None,
    ) -> FragmentCursor:
        """Lazy cursor over the semantic plan with optional element overlap."""
        strategy = ChunkingStrategy(
            name="streaming",
            max_chunk_size=options.chunk_size,
            preserve_relationships=options.preserve_relationships,
            priority_fields=list(options.priority_fields),
            overlap_size=options.overlap,
            boundary_detection="semantic",
            max_tokens=options.max_tokens,
        )
        return FragmentCursor(self, document, strategy, transform=transform)

    # Validation

    def validate_relationships(self, fragments: Sequence[ContextFragment]) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        present: set[str] = set()
        for fragment in fragments:
            present |= fragment.content.contained_ids()

        for fragment in fragments:
            for reference in fragment.relationships:
                named_elsewhere = any(
                    other.id != fragment.id
                    and (
                        reference in other.relationships
                        or reference in other.metadata.dependencies
                    )
                    for other in fragments
                )
                if not named_elsewhere:
                    warnings.append(
                        ValidationIssue(
                            code="orphaned_reference",
                            message=(
                                f"Fragment {fragment.id} has an orphaned reference to "
                                f"{reference}: no other fragment names it"
                            ),
                            severity="warning",
                            fragment_id=fragment.id,
                            element_id=reference,
                        )
                    )
            for dependency in fragment.metadata.dependencies:
                if dependency not in present:
                    errors.append(
                        ValidationIssue(
                            code="missing_dependency",
                            message=(
                                f"Fragment {fragment.id} has a missing dependency "
                                f"{dependency}: not present in any fragment"
                            ),
                            severity="error",
                            fragment_id=fragment.id,
                            element_id=dependency,
                        )
                    )

        if fragments:
            mean_quality = sum(f.metadata.quality_score for f in fragments) / len(fragments)
            threshold = self.assessor.weights.low_quality_threshold
            if mean_quality < threshold:
                warnings.append(
                    ValidationIssue(
                        code="low_quality_fragments",
                        message=(
                            f"Average fragment quality score ({mean_quality:.2f}) is below "
                            f"the recommended threshold ({threshold:.2f})"
                        ),
                        severity="warning",
                    )
                )

        if errors or warnings:
            logger.warning(
                "Fragment validation found %d errors and %d warnings",
                len(errors),
                len(warnings),
            )
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # Planning and building, shared with FragmentCursor

    def plan(self, document: SpecificationDocument, strategy: ChunkingStrategy) -> list[FragmentPlan]:
        """Semantic plan: per-kind plans in priority order, related neighbours merged."""
        budget = _SizeBudget(self, document, strategy.max_chunk_size, strategy.max_tokens)
        plans: list[FragmentPlan] = []
        seen: set[str] = set()
        for name in strategy.priority_fields:
            kind = normalize_kind(name)
            if kind is None:
                logger.debug("Priority field %s is not an element kind; skipped", name)
                continue
            if kind in seen:
                continue
            seen.add(kind)
            plans.extend(self._plan_kind(document, kind, budget, strategy.boundary_detection))

        if strategy.preserve_relationships and len(plans) > 1:
            plans = self._merge_related(plans, budget, document.contained_ids())
        logger.debug("Planned %d fragments for %s", len(plans), document.document_id)
        return plans

    def build_fragment(
        self,
        document: SpecificationDocument,
        plan: FragmentPlan,
        index: int,
        total: int,
        *,
        max_chunk_size: int,
        max_tokens: int | None = None,
        overlap: Sequence[Member] = (),
        overlap_with: str | None = None,
        known_ids: set[str] | None = None,
    ) -> ContextFragment:
        members = [*overlap, *plan.members]
        fragment_type = _fragment_type(members)
        grouped: dict[str, list[Element]] = {kind: [] for kind in ELEMENT_KINDS}
        for kind, element in members:
            grouped[kind].append(element)

        content = SpecificationDocument(
            metadata=self.synthetic_metadata(document, fragment_type, index, total, plan.domain),
            **grouped,
        )
        token_count = self.estimator.estimate(content)

        known = known_ids if known_ids is not None else document.contained_ids()
        contained = plan.contained_ids() | _contained_ids(overlap)
        relationships = [ref for ref in plan.references(known) if ref not in contained]

        # Without max_tokens packing is count-only, so only a lone element is held to a budget.
        if max_tokens is not None:
            budget = max_tokens
            exceeds_budget = token_count > budget
        else:
            budget = max_chunk_size
            exceeds_budget = len(members) == 1 and token_count > budget
        if exceeds_budget and len(members) == 1:
            logger.warning(
                "Element %s alone estimates to %d tokens, above the %d token budget",
                members[0][1].id,
                token_count,
                budget,
            )

        fragment_id = f"{document.document_id}-{_ID_PREFIXES[fragment_type]}-{index:04d}"
        return ContextFragment(
            id=fragment_id,
            content=content,
            token_count=token_count,
            relationships=relationships,
            priority=self._priority(plan),
            metadata=FragmentMetadata(
                index=index,
                total=total,
                source_document_id=document.document_id,
                fragment_type=fragment_type,
                created_at=utc_timestamp(),
                dependencies=plan.dependencies(),
                quality_score=self.assessor.score(
                    plan.fragment_type, plan.contained_ids(), plan.edges, len(plan)
                ),
                exceeds_budget=exceeds_budget,
            ),
            boundaries=FragmentBoundaries(
                first_element_id=plan.element_ids[0] if plan.members else "",
                last_element_id=plan.element_ids[-1] if plan.members else "",
                overlap_with=[overlap_with] if overlap and overlap_with else [],
                overlap_element_ids=[element.id for _, element in overlap],
            ),
        )

    def overlap_members(self, plan: FragmentPlan, overlap_tokens: int) -> list[Member]:
        """Trailing members worth at least `overlap_tokens` tokens (never fewer than one)."""
        if overlap_tokens <= 0 or not plan.members:
            return []
        taken: list[Member] = []
        tokens = 0
        for member in reversed(plan.members):
            taken.append(member)
            tokens += self.estimator.estimate(member[1])
            if tokens >= overlap_tokens:
                break
        taken.reverse()
        return taken

    def synthetic_metadata(
        self,
        document: SpecificationDocument,
        fragment_type: str,
        index: int,
        total: int,
        domain: str | None = None,
    ) -> DocumentMetadata:
        title = f"{_TITLES[fragment_type]} fragment {index + 1} of {total}"
        info: dict[str, object] = {"index": index, "total": total, "type": fragment_type}
        if domain is not None:
            title = f"{title} ({domain})"
            info["domain"] = domain
        return DocumentMetadata(
            version=document.metadata.version,
            id=f"{document.document_id}_{fragment_type}_chunk_{index}",
            title=title,
            fragment_info=info,
        )

    # Internals

    def _run_kind(
        self,
        document: SpecificationDocument,
        kind: ElementKind,
        max_chunk_size: int,
        max_tokens: int | None,
        *,
        boundary: str = "size",
    ) -> list[ContextFragment]:
        budget = _SizeBudget(self, document, max_chunk_size, max_tokens)
        plans = self._plan_kind(document, kind, budget, boundary)
        return self._materialize(document, plans, max_chunk_size, max_tokens)

    def _materialize(
        self,
        document: SpecificationDocument,
        plans: list[FragmentPlan],
        max_chunk_size: int,
        max_tokens: int | None,
    ) -> list[ContextFragment]:
        known = document.contained_ids()
        return [
            self.build_fragment(
                document,
                plan,
                index,
                len(plans),
                max_chunk_size=max_chunk_size,
                max_tokens=max_tokens,
                known_ids=known,
            )
            for index, plan in enumerate(plans)
        ]

    def _plan_kind(
        self,
        document: SpecificationDocument,
        kind: ElementKind,
        budget: _SizeBudget,
        boundary: str,
    ) -> list[FragmentPlan]:
        elements = document.elements(kind)
        if not elements:
            return []
        if kind == "business_rules":
            return self._plan_business_rules(elements, budget)  # type: ignore[arg-type]
        if kind == "data_structures":
            return self._plan_data_structures(elements, budget, boundary)
        if kind == "api_endpoints":
            return self._plan_api_endpoints(elements, budget)
        return self._plan_workflow(elements, budget, boundary)

    def _plan_business_rules(
        self, rules: list[BusinessRule], budget: _SizeBudget
    ) -> list[FragmentPlan]:
        edges = self.extractor.business_rule_edges(rules)
        adjacency = build_adjacency(edges)
        neighbours = undirected_neighbours(edges)
        clusters = self._bfs_groups(rules, neighbours, budget.max_elements)
        position = {rule.id: i for i, rule in enumerate(rules)}
        ordered = [sorted(cluster, key=lambda rule: position[rule.id]) for cluster in clusters]
        groups = self._pack(
            [[("business_rules", rule) for rule in cluster] for cluster in ordered], budget
        )
        logger.debug("Business rules: %d clusters packed into %d plans", len(clusters), len(groups))
        return [self._make_plan(members, adjacency) for members in groups]

    def _plan_data_structures(
        self, structures: list[Element], budget: _SizeBudget, boundary: str
    ) -> list[FragmentPlan]:
        edges = self.extractor.data_structure_edges(structures)  # type: ignore[arg-type]
        adjacency = build_adjacency(edges)
        neighbours = undirected_neighbours(edges, kinds={"composition"})
        hierarchies = self._bfs_groups(structures, neighbours, None)

        pieces: list[list[Member]] = []
        for hierarchy in hierarchies:
            ids = [structure.id for structure in hierarchy]
            cuts = self.assessor.recommend_split_points(
                ids, edges, budget.max_elements, mode=boundary
            )
            for run in _slice(hierarchy, cuts):
                pieces.append([("data_structures", structure) for structure in run])
        groups = self._pack(pieces, budget)
        return [self._make_plan(members, adjacency) for members in groups]

    def _plan_api_endpoints(self, endpoints: list[Element], budget: _SizeBudget) -> list[FragmentPlan]:
        edges = self.extractor.api_endpoint_edges(endpoints)  # type: ignore[arg-type]
        adjacency = build_adjacency(edges)
        domains: dict[str, list[Element]] = {}
        for endpoint in endpoints:
            domains.setdefault(endpoint_domain(endpoint.path), []).append(endpoint)  # type: ignore[union-attr]

        plans: list[FragmentPlan] = []
        for domain, members in domains.items():
            cuts = list(range(budget.max_elements, len(members), budget.max_elements))
            for run in _slice(members, cuts):
                for piece in self._fit([("api_endpoints", e) for e in run], budget, domain):
                    plans.append(self._make_plan(piece, adjacency, domain=domain))
        return plans

    def _plan_workflow(
        self, steps: list[Element], budget: _SizeBudget, boundary: str
    ) -> list[FragmentPlan]:
        edges = self.extractor.workflow_edges(steps)  # type: ignore[arg-type]
        ids = [step.id for step in steps]
        known = set(ids)
        graph = {step.id: list(step.dependencies or []) for step in steps}  # type: ignore[union-attr]

        cycle = find_cycle(graph, ids)
        if cycle is not None:
            raise WorkflowCycleError(cycle)

        for step_id, dependencies in graph.items():
            for dependency in dependencies:
                if dependency not in known:
                    logger.warning("Workflow step %s depends on unknown step %s", step_id, dependency)

        adjacency = build_adjacency(edges)
        neighbours = undirected_neighbours(e for e in edges if e.target_id in known)
        components = self._bfs_groups(steps, neighbours, None)

        plans: list[FragmentPlan] = []
        for component in components:
            ordered = _execution_order(component, graph, {step_id: i for i, step_id in enumerate(ids)})
            cuts = self.assessor.recommend_split_points(
                [step.id for step in ordered], edges, budget.max_elements, mode=boundary
            )
            for run in _slice(ordered, cuts):
                for piece in self._fit([("workflow_steps", step) for step in run], budget):
                    plans.append(self._make_plan(piece, adjacency))
        return plans

    @staticmethod
    def _bfs_groups(
        elements: Sequence[Element],
        neighbours: dict[str, list[str]],
        max_size: int | None,
    ) -> list[list[Element]]:
        """Breadth-first groups seeded in document order, optionally capped."""
        by_id = {element.id: element for element in elements}
        visited: set[str] = set()
        groups: list[list[Element]] = []
        for element in elements:
            if element.id in visited:
                continue
            group: list[Element] = []
            queue = deque([element.id])
            while queue and (max_size is None or len(group) < max_size):
                current = queue.popleft()
                if current in visited:
                    continue
                visited.add(current)
                group.append(by_id[current])
                queue.extend(
                    n for n in neighbours.get(current, ()) if n in by_id and n not in visited
                )
            groups.append(group)
        return groups

    def _pack(self, groups: list[list[Member]], budget: _SizeBudget) -> list[list[Member]]:
        """Pack groups in order without splitting any group that fits on its own."""
        packed: list[list[Member]] = []
        current: list[Member] = []
        for group in groups:
            for piece in self._fit(group, budget):
                if current and budget.fits(current + piece):
                    current = current + piece
                    continue
                if current:
                    packed.append(current)
                current = list(piece)
        if current:
            packed.append(current)
        return packed

    @staticmethod
    def _fit(
        members: list[Member], budget: _SizeBudget, domain: str | None = None
    ) -> list[list[Member]]:
        """Split `members` greedily so each piece fits; single elements always pass."""
        if budget.fits(members, domain):
            return [members]
        pieces: list[list[Member]] = []
        current: list[Member] = []
        for member in members:
            if current and not budget.fits(current + [member], domain):
                pieces.append(current)
                current = []
            current.append(member)
        if current:
            pieces.append(current)
        return pieces

    def _merge_related(
        self,
        plans: list[FragmentPlan],
        budget: _SizeBudget,
        known_ids: set[str],
    ) -> list[FragmentPlan]:
        merged: list[FragmentPlan] = [plans[0]]
        for plan in plans[1:]:
            previous = merged[-1]
            candidate = previous.members + plan.members
            domain = previous.domain if previous.domain == plan.domain else None
            if _related(previous, plan, known_ids) and budget.fits(candidate, domain):
                merged[-1] = FragmentPlan(
                    members=candidate,
                    edges=previous.edges + plan.edges,
                    domain=domain,
                )
                continue
            merged.append(plan)
        if len(merged) != len(plans):
            logger.debug("Merged %d related plans", len(plans) - len(merged))
        return merged

    @staticmethod
    def _make_plan(
        members: list[Member],
        adjacency: dict[str, list[RelationshipEdge]],
        *,
        domain: str | None = None,
    ) -> FragmentPlan:
        edges = [edge for _, element in members for edge in adjacency.get(element.id, ())]
        return FragmentPlan(members=members, edges=edges, domain=domain)

    @staticmethod
    def _priority(plan: FragmentPlan) -> float:
        rules = [element for kind, element in plan.members if kind == "business_rules"]
        if rules and len(rules) == len(plan.members):
            return round(sum(rule.priority for rule in rules) / len(rules), 2)  # type: ignore[union-attr]
        return float(len(plan.members))


def _related(a: FragmentPlan, b: FragmentPlan, known_ids: set[str]) -> bool:
    refs_a = set(a.references(known_ids))
    refs_b = set(b.references(known_ids))
    return bool(refs_a & refs_b or refs_a & b.contained_ids() or refs_b & a.contained_ids())


def _execution_order(
    component: list[Element],
    graph: dict[str, list[str]],
    position: dict[str, int],
) -> list[Element]:
    """Topological order (dependencies first), ties broken by document order."""
    by_id = {step.id: step for step in component}
    indegree = {step_id: 0 for step_id in by_id}
    dependents: dict[str, list[str]] = {step_id: [] for step_id in by_id}
    for step_id in by_id:
        for dependency in graph.get(step_id, ()):
            if dependency in by_id:
                indegree[step_id] += 1
                dependents[dependency].append(step_id)

    ready = [(position[step_id], step_id) for step_id, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: list[Element] = []
    while ready:
        _, step_id = heapq.heappop(ready)
        ordered.append(by_id[step_id])
        for dependent in dependents[step_id]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(ready, (position[dependent], dependent))
    return ordered


def _slice(items: list, cuts: list[int]) -> list[list]:
    bounds = [0, *cuts, len(items)]
    return [items[start:end] for start, end in zip(bounds, bounds[1:]) if end > start]


def _fragment_type(members: Sequence[Member]) -> str:
    kinds = {kind for kind, _ in members}
    return next(iter(kinds)) if len(kinds) == 1 else "mixed"


def _contained_ids(members: Sequence[Member]) -> set[str]:
    ids: set[str] = set()
    for kind, element in members:
        ids.add(element.id)
        if kind == "business_rules":
            ids.update(exception.id for exception in element.exceptions or [])  # type: ignore[union-attr]
    return ids


def _unique(values) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered
