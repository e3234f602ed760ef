import pytest

from spec_context.chunking.chunker import SemanticChunker
from spec_context.config import ChunkingStrategy
from spec_context.document import DataField


def test_clean_fragments_validate(commerce_document) -> None:
    chunker = SemanticChunker()
    fragments = chunker.semantic(commerce_document, ChunkingStrategy())

    result = chunker.validate_relationships(fragments)

    assert result.valid
    assert result.errors == []


def test_validation_is_deterministic(commerce_document) -> None:
    chunker = SemanticChunker()
    fragments = chunker.by_business_rules(commerce_document, max_chunk_size=1)

    assert chunker.validate_relationships(fragments) == chunker.validate_relationships(fragments)


def test_missing_dependency_is_an_error(document, step) -> None:
    chunker = SemanticChunker()
    doc = document(steps=[step("deploy", depends_on=["build"])])

    result = chunker.validate_relationships(chunker.by_workflow(doc))

    assert not result.valid
    assert [(e.code, e.element_id) for e in result.errors] == [("missing_dependency", "build")]
    assert "missing dependency" in result.errors[0].message


def test_reference_nobody_else_names_is_orphaned(document, structure) -> None:
    chunker = SemanticChunker()
    doc = document(
        structures=[
            structure("ds-a", fields=[DataField(name="b", type="reference", reference_to="ds-b")]),
            structure("ds-b"),
        ]
    )

    result = chunker.validate_relationships(chunker.by_data_structures(doc, max_chunk_size=1))

    assert result.valid
    orphans = [w for w in result.warnings if w.code == "orphaned_reference"]
    assert [(w.fragment_id, w.element_id) for w in orphans] == [("spec-1-ds-0000", "ds-b")]


def test_low_mean_quality_is_reported(document, rule) -> None:
    chunker = SemanticChunker()
    doc = document(rules=[rule("rule-1"), rule("rule-2", condition="rule-1 holds")])

    fragments = chunker.by_business_rules(doc, max_chunk_size=1)
    result = chunker.validate_relationships(fragments)

    assert [f.metadata.quality_score for f in fragments] == pytest.approx([0.8, 0.5])
    assert "low_quality_fragments" in [w.code for w in result.warnings]


def test_empty_fragment_list_is_valid() -> None:
    result = SemanticChunker().validate_relationships([])

    assert result.valid
    assert result.errors == []
    assert result.warnings == []
