from spec_context.chunking.relationships import (
    RelationshipExtractor,
    build_adjacency,
    endpoint_domain,
    find_cycle,
    undirected_neighbours,
)
from spec_context.document import DataField


def test_rule_ids_match_as_whole_tokens_only(rule) -> None:
    rules = [
        rule("rule-1"),
        rule("rule-10"),
        rule("rule-2", condition="rule-10 is satisfied"),
        rule("rule-3", action="escalate unless rule-1 rejected"),
    ]

    edges = RelationshipExtractor().business_rule_edges(rules)
    pairs = {(edge.source_id, edge.target_id) for edge in edges}

    assert ("rule-2", "rule-10") in pairs
    assert ("rule-2", "rule-1") not in pairs
    assert ("rule-3", "rule-1") in pairs
    assert all(edge.strength == 0.8 for edge in edges)


def test_rule_exceptions_become_dependency_edges(rule) -> None:
    edges = RelationshipExtractor().business_rule_edges([rule("rule-1", exceptions=["exc-a", "exc-b"])])

    assert [(e.target_id, e.kind, e.strength) for e in edges] == [
        ("exc-a", "dependency", 0.6),
        ("exc-b", "dependency", 0.6),
    ]


def test_structure_reference_and_composition_edges(structure) -> None:
    structures = [
        structure(
            "ds-order",
            name="Order",
            fields=[
                DataField(name="customer", type="reference", reference_to="ds-customer"),
                DataField(name="lines", type="orderline"),
                DataField(name="parent", type="reference", reference_to="ds-order"),
            ],
        ),
        structure("ds-customer", name="Customer"),
        structure("ds-line", name="OrderLine"),
    ]

    edges = RelationshipExtractor().data_structure_edges(structures)

    assert [(e.source_id, e.target_id, e.kind, e.strength) for e in edges] == [
        ("ds-order", "ds-customer", "reference", 0.9),
        ("ds-order", "ds-line", "composition", 0.7),
    ]


def test_endpoints_sharing_a_domain_reference_each_other(endpoint) -> None:
    endpoints = [
        endpoint("ep-1", "/users"),
        endpoint("ep-2", "/users/{id}"),
        endpoint("ep-3", "/orders"),
    ]

    edges = RelationshipExtractor().api_endpoint_edges(endpoints)

    assert {(e.source_id, e.target_id) for e in edges} == {("ep-1", "ep-2"), ("ep-2", "ep-1")}
    assert endpoint_domain("/") == "root"
    assert endpoint_domain("/users/{id}/orders") == "users"


def test_workflow_edges_and_graph_helpers(step) -> None:
    steps = [step("a"), step("b", depends_on=["a"]), step("c", depends_on=["a", "b"])]

    edges = RelationshipExtractor().extract("workflow_steps", steps)
    adjacency = build_adjacency(edges)
    neighbours = undirected_neighbours(edges)

    assert [e.target_id for e in adjacency["c"]] == ["a", "b"]
    assert "a" not in adjacency
    assert neighbours["a"] == ["b", "c"]


def test_find_cycle_names_every_member() -> None:
    graph = {"A": ["C"], "B": ["A"], "C": ["B"], "D": ["A"]}

    cycle = find_cycle(graph, ["D", "A", "B", "C"])

    assert cycle is not None
    assert set(cycle) == {"A", "B", "C"}


def test_find_cycle_ignores_unknown_targets() -> None:
    graph = {"A": ["external"], "B": ["A"]}

    assert find_cycle(graph, ["A", "B"]) is None
