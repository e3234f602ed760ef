"""Cohesion scoring and boundary recommendation for candidate fragments."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from spec_context.config import QualityWeights
from spec_context.types import RelationshipEdge


class ChunkQualityAssessor:
    """Scores element groups and recommends where to split long sequences.

    Score definition (weights live in `QualityWeights`):
    - start from `base`;
    - add `internal_dependencies_bonus` when every edge leaving one of the
      group's elements lands inside the group;
    - add `balanced_size_bonus` when the element count lies in the kind's
      balanced range.

    This is a ranking heuristic. A high score says the grouping keeps its
    references together, not that the partition is optimal.
    """

    def __init__(self, weights: QualityWeights | None = None) -> None:
        self.weights = weights or QualityWeights()

    def score(
        self,
        kind: str,
        member_ids: set[str],
        edges: Iterable[RelationshipEdge],
        element_count: int,
    ) -> float:
        weights = self.weights
        score = weights.base
        if self.is_self_contained(member_ids, edges):
            score += weights.internal_dependencies_bonus
        if self.is_balanced(kind, element_count):
            score += weights.balanced_size_bonus
        return min(1.0, max(0.0, score))

    @staticmethod
    def is_self_contained(member_ids: set[str], edges: Iterable[RelationshipEdge]) -> bool:
        return all(
            edge.target_id in member_ids for edge in edges if edge.source_id in member_ids
        )

    def is_balanced(self, kind: str, element_count: int) -> bool:
        low, high = self.weights.balanced_ranges.get(kind, (2, 10))
        return low <= element_count <= high

    def recommend_split_points(
        self,
        ordered_ids: Sequence[str],
        edges: Iterable[RelationshipEdge],
        max_size: int,
        *,
        mode: str = "semantic",
    ) -> list[int]:
        """Cut positions that slice `ordered_ids` into runs of at most `max_size`.

        `size` mode cuts at fixed multiples. Other modes look at the last
        quarter of each window and cut where the fewest edges cross; ties keep
        the larger run.
        """

        total = len(ordered_ids)
        if total <= max_size:
            return []
        if mode == "size":
            return list(range(max_size, total, max_size))

        position = {element_id: i for i, element_id in enumerate(ordered_ids)}
        spans: list[tuple[int, int]] = []
        for edge in edges:
            a = position.get(edge.source_id)
            b = position.get(edge.target_id)
            if a is None or b is None or a == b:
                continue
            spans.append((min(a, b), max(a, b)))

        slack = max_size // 4
        cuts: list[int] = []
        start = 0
        while total - start > max_size:
            best_cut = start + max_size
            best_cost: int | None = None
            for cut in range(start + max_size, start + max_size - slack - 1, -1):
                if cut <= start:
                    break
                cost = sum(1 for low, high in spans if low < cut <= high)
                if best_cost is None or cost < best_cost:
                    best_cut, best_cost = cut, cost
            cuts.append(best_cut)
            start = best_cut
        return cuts
