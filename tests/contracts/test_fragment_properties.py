import pytest

from spec_context.chunking.chunker import SemanticChunker
from spec_context.config import ChunkingStrategy, OptimizationOptions
from spec_context.document import DataField
from spec_context.optimize.optimizer import ContextOptimizer

STRATEGIES = ["business_rules", "data_structures", "api_endpoints", "workflow_steps"]


@pytest.fixture()
def varied_document(document, rule, structure, endpoint, step):
    rules = [
        rule(f"rule-{i}", condition=f"rule-{i - 1} passed" if i % 3 else "always", priority=i % 5 + 1)
        for i in range(1, 15)
    ]
    structures = [
        structure(
            f"ds-{i}",
            name=f"Node{i}",
            fields=[DataField(name="child", type=f"Node{i + 1}")] if i % 4 else None,
            description="d" * (i * 40),
        )
        for i in range(1, 13)
    ]
    endpoints = [endpoint(f"ep-{i}", f"/{['users', 'orders', 'billing'][i % 3]}/{i}") for i in range(9)]
    steps = [step(f"wf-{i}", depends_on=[f"wf-{i - 1}"] if i % 5 else []) for i in range(1, 13)]
    return document(rules=rules, structures=structures, endpoints=endpoints, steps=steps)


@pytest.mark.parametrize("name", STRATEGIES)
@pytest.mark.parametrize("cap", [1, 3, 7])
def test_every_element_lands_in_exactly_one_fragment(varied_document, name, cap) -> None:
    fragments = SemanticChunker().by_strategy(
        varied_document, ChunkingStrategy(name=name, max_chunk_size=cap)
    )

    produced = [element_id for f in fragments for element_id in f.element_ids()]
    assert sorted(produced) == sorted(varied_document.element_ids(name))
    assert len(produced) == len(set(produced))
    assert all(len(f.element_ids()) <= cap for f in fragments)


@pytest.mark.parametrize("max_tokens", [80, 200, 600])
def test_fragments_over_budget_are_single_and_flagged(varied_document, max_tokens) -> None:
    fragments = SemanticChunker().semantic(
        varied_document, ChunkingStrategy(max_chunk_size=50, max_tokens=max_tokens)
    )

    for fragment in fragments:
        if fragment.token_count > max_tokens:
            assert fragment.metadata.exceeds_budget
            assert len(fragment.element_ids()) == 1
        else:
            assert not fragment.metadata.exceeds_budget


def test_relationships_only_name_document_elements(varied_document) -> None:
    known = varied_document.contained_ids()

    fragments = SemanticChunker().semantic(varied_document, ChunkingStrategy(max_chunk_size=2))

    for fragment in fragments:
        assert set(fragment.relationships) <= known
        assert not set(fragment.relationships) & set(fragment.element_ids())


def test_validation_is_idempotent(varied_document) -> None:
    chunker = SemanticChunker()
    fragments = chunker.semantic(varied_document, ChunkingStrategy(max_chunk_size=3))

    assert chunker.validate_relationships(fragments) == chunker.validate_relationships(fragments)


@pytest.mark.parametrize("level", ["low", "medium", "high"])
@pytest.mark.parametrize("budget", [1, 500, 5000])
def test_optimization_is_monotonic(varied_document, level, budget) -> None:
    optimizer = ContextOptimizer()

    _, record = optimizer.optimize_document(
        varied_document, OptimizationOptions(max_tokens=budget, compression_level=level)
    )

    assert record.final_tokens <= record.original_tokens
    if record.final_tokens > budget:
        assert record.exceeds_budget
