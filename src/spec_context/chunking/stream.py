"""Pull-based fragment cursor used for streaming."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from spec_context.config import ChunkingStrategy
from spec_context.document import SpecificationDocument
from spec_context.types import ContextFragment

if TYPE_CHECKING:
    from spec_context.chunking.chunker import FragmentPlan, SemanticChunker

logger = logging.getLogger(__name__)

FragmentTransform = Callable[[ContextFragment], ContextFragment]


class FragmentCursor:
    """Forward-only cursor that builds one fragment per pull.

    The plan (graph work only) is computed on the first pull. Content, token
    estimates and quality scores are built for a fragment only when it is
    pulled, so a consumer that stops early never pays for the rest. When an
    overlap is configured, the trailing elements of fragment i are repeated at
    the start of fragment i+1.

    A cursor cannot be restarted; once exhausted it stays exhausted.
    """

    def __init__(
        self,
        chunker: "SemanticChunker",
        document: SpecificationDocument,
        strategy: ChunkingStrategy,
        *,
        transform: FragmentTransform | None = None,
    ) -> None:
        self._chunker = chunker
        self._document = document
        self._strategy = strategy
        self._transform = transform
        self._plans: list[FragmentPlan] | None = None
        self._known_ids: set[str] | None = None
        self._position = 0
        self._previous: tuple[FragmentPlan, str] | None = None
        self._closed = False

    @property
    def total(self) -> int | None:
        """Number of fragments, known once planning has run."""
        return None if self._plans is None else len(self._plans)

    @property
    def produced(self) -> int:
        return self._position

    @property
    def exhausted(self) -> bool:
        return self._closed

    def next_fragment(self) -> ContextFragment | None:
        """Build and return the next fragment, or None when the cursor is done."""
        if self._closed:
            return None
        if self._plans is None:
            try:
                self._plans = self._chunker.plan(self._document, self._strategy)
            except Exception:
                self._closed = True
                raise
            self._known_ids = self._document.contained_ids()
            logger.debug(
                "Streaming %d fragments for %s", len(self._plans), self._document.document_id
            )

        if self._position >= len(self._plans):
            self._closed = True
            return None

        plan = self._plans[self._position]
        overlap = []
        overlap_with = None
        if self._previous is not None and self._strategy.overlap_size > 0:
            previous_plan, overlap_with = self._previous
            overlap = self._chunker.overlap_members(previous_plan, self._strategy.overlap_size)

        fragment = self._chunker.build_fragment(
            self._document,
            plan,
            self._position,
            len(self._plans),
            max_chunk_size=self._strategy.max_chunk_size,
            max_tokens=self._strategy.max_tokens,
            overlap=overlap,
            overlap_with=overlap_with,
            known_ids=self._known_ids,
        )
        self._previous = (plan, fragment.id)
        self._position += 1
        if self._transform is not None:
            fragment = self._transform(fragment)
        return fragment

    def close(self) -> None:
        self._closed = True

    def __iter__(self) -> "FragmentCursor":
        return self

    def __next__(self) -> ContextFragment:
        fragment = self.next_fragment()
        if fragment is None:
            raise StopIteration
        return fragment
