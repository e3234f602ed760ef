import pytest

from spec_context.chunking.chunker import SemanticChunker
from spec_context.config import StreamingOptions
from spec_context.errors import WorkflowCycleError


class CountingChunker(SemanticChunker):
    def __init__(self) -> None:
        super().__init__()
        self.plans = 0
        self.builds = 0

    def plan(self, document, strategy):
        self.plans += 1
        return super().plan(document, strategy)

    def build_fragment(self, *args, **kwargs):
        self.builds += 1
        return super().build_fragment(*args, **kwargs)


def _structures_document(document, structure, count: int = 10):
    return document(structures=[structure(f"ds-{i}", name=f"Entity{i}") for i in range(1, count + 1)])


def test_streaming_overlap_repeats_trailing_element(document, structure) -> None:
    doc = _structures_document(document, structure)

    fragments = list(
        SemanticChunker().for_streaming(doc, StreamingOptions(chunk_size=3, overlap=1))
    )

    assert len(fragments) == 4
    assert fragments[0].element_ids() == ["ds-1", "ds-2", "ds-3"]
    assert fragments[1].element_ids() == ["ds-3", "ds-4", "ds-5", "ds-6"]
    assert fragments[1].boundaries.overlap_with == [fragments[0].id]
    assert fragments[1].boundaries.overlap_element_ids == ["ds-3"]
    assert fragments[1].boundaries.first_element_id == "ds-4"
    assert fragments[3].element_ids() == ["ds-9", "ds-10"]
    assert fragments[0].boundaries.overlap_with == []


def test_streaming_without_overlap_matches_semantic(document, structure) -> None:
    doc = _structures_document(document, structure)
    chunker = SemanticChunker()

    streamed = [f.element_ids() for f in chunker.for_streaming(doc, StreamingOptions(chunk_size=3))]

    assert streamed == [
        ["ds-1", "ds-2", "ds-3"],
        ["ds-4", "ds-5", "ds-6"],
        ["ds-7", "ds-8", "ds-9"],
        ["ds-10"],
    ]


def test_cursor_builds_only_what_is_pulled(document, structure) -> None:
    chunker = CountingChunker()
    cursor = chunker.for_streaming(
        _structures_document(document, structure), StreamingOptions(chunk_size=2)
    )

    assert chunker.plans == 0
    assert cursor.total is None

    first = cursor.next_fragment()

    assert first is not None
    assert chunker.plans == 1
    assert chunker.builds == 1
    assert cursor.total == 5

    cursor.close()

    assert cursor.next_fragment() is None
    assert chunker.builds == 1


def test_exhausted_cursor_stays_exhausted(document, structure) -> None:
    cursor = SemanticChunker().for_streaming(
        _structures_document(document, structure, count=2), StreamingOptions()
    )

    assert len(list(cursor)) == 1
    assert cursor.exhausted
    assert cursor.next_fragment() is None
    with pytest.raises(StopIteration):
        next(cursor)


def test_transform_runs_on_each_pulled_fragment(document, structure) -> None:
    seen: list[str] = []

    def record(fragment):
        seen.append(fragment.id)
        return fragment

    cursor = SemanticChunker().for_streaming(
        _structures_document(document, structure, count=4),
        StreamingOptions(chunk_size=2),
        transform=record,
    )
    produced = [fragment.id for fragment in cursor]

    assert seen == produced


def test_planning_errors_surface_on_first_pull(document, step) -> None:
    doc = document(steps=[step("a", depends_on=["b"]), step("b", depends_on=["a"])])
    cursor = SemanticChunker().for_streaming(doc, StreamingOptions())

    with pytest.raises(WorkflowCycleError):
        cursor.next_fragment()
    assert cursor.next_fragment() is None


def test_overlap_across_kinds_makes_a_mixed_fragment(document, rule, structure) -> None:
    doc = document(
        rules=[rule("rule-1"), rule("rule-2")],
        structures=[structure("ds-1", name="Invoice"), structure("ds-2", name="Receipt")],
    )
    options = StreamingOptions(
        chunk_size=2, overlap=1, priority_fields=["business_rules", "data_structures"]
    )

    fragments = list(SemanticChunker().for_streaming(doc, options))

    assert [f.metadata.fragment_type for f in fragments] == ["business_rules", "mixed"]
    assert fragments[1].id == "spec-1-mx-0001"
    assert fragments[1].boundaries.overlap_element_ids == ["rule-2"]
    assert fragments[1].element_ids() == ["rule-2", "ds-1", "ds-2"]
