from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pytest

from spec_context.document import (
    ApiEndpoint,
    BusinessRule,
    DataField,
    DataStructure,
    DocumentMetadata,
    RuleException,
    SpecificationDocument,
    WorkflowStep,
)


def make_rule(
    rule_id: str,
    *,
    condition: str = "order.total > 0",
    action: str = "accept order",
    priority: int = 3,
    exceptions: Iterable[str] = (),
    **extra: Any,
) -> BusinessRule:
    return BusinessRule(
        id=rule_id,
        name=f"Rule {rule_id}",
        condition=condition,
        action=action,
        priority=priority,
        exceptions=[RuleException(id=e, condition="vip", action="skip") for e in exceptions] or None,
        **extra,
    )


def make_structure(
    structure_id: str,
    *,
    name: str | None = None,
    fields: Iterable[DataField] = (),
    **extra: Any,
) -> DataStructure:
    return DataStructure(
        id=structure_id,
        name=name or structure_id.replace("-", "_").title(),
        fields=list(fields or ()) or None,
        **extra,
    )


def make_endpoint(endpoint_id: str, path: str, method: str = "GET", **extra: Any) -> ApiEndpoint:
    return ApiEndpoint(id=endpoint_id, name=endpoint_id, path=path, method=method, **extra)


def make_step(step_id: str, *, depends_on: Iterable[str] = (), **extra: Any) -> WorkflowStep:
    return WorkflowStep(
        id=step_id,
        name=step_id,
        action=f"run {step_id}",
        dependencies=list(depends_on) or None,
        **extra,
    )


def make_document(
    *,
    doc_id: str = "spec-1",
    rules: Iterable[BusinessRule] = (),
    structures: Iterable[DataStructure] = (),
    endpoints: Iterable[ApiEndpoint] = (),
    steps: Iterable[WorkflowStep] = (),
    **extra: Any,
) -> SpecificationDocument:
    return SpecificationDocument(
        metadata=DocumentMetadata(id=doc_id, title=f"Specification {doc_id}"),
        business_rules=list(rules),
        data_structures=list(structures),
        api_endpoints=list(endpoints),
        workflow_steps=list(steps),
        **extra,
    )


@pytest.fixture()
def rule() -> Callable[..., BusinessRule]:
    return make_rule


@pytest.fixture()
def structure() -> Callable[..., DataStructure]:
    return make_structure


@pytest.fixture()
def endpoint() -> Callable[..., ApiEndpoint]:
    return make_endpoint


@pytest.fixture()
def step() -> Callable[..., WorkflowStep]:
    return make_step


@pytest.fixture()
def document() -> Callable[..., SpecificationDocument]:
    return make_document


@pytest.fixture()
def commerce_document() -> SpecificationDocument:
    """Small document touching every element kind."""
    return make_document(
        doc_id="commerce",
        rules=[
            make_rule("rule-1", condition="order.total > 100", priority=1),
            make_rule("rule-2", condition="rule-1 passed and customer.vip", priority=2),
            make_rule("rule-3", action="apply discount after rule-2", exceptions=["exc-1"]),
            make_rule("rule-4", priority=5),
        ],
        structures=[
            make_structure(
                "ds-order",
                name="Order",
                fields=[
                    DataField(name="id", type="string", required=True),
                    DataField(name="customer", type="reference", reference_to="ds-customer"),
                    DataField(name="address", type="Address"),
                ],
            ),
            make_structure("ds-customer", name="Customer"),
            make_structure("ds-address", name="Address"),
        ],
        endpoints=[
            make_endpoint("ep-list-orders", "/orders"),
            make_endpoint("ep-get-order", "/orders/{id}"),
            make_endpoint("ep-health", "/"),
        ],
        steps=[
            make_step("wf-validate"),
            make_step("wf-charge", depends_on=["wf-validate"]),
            make_step("wf-ship", depends_on=["wf-charge"]),
        ],
        ai_context={"hints": ["orders are immutable", "orders are immutable"]},
        governance={"owner": "commerce-team", "auditTrail": ["created"]},
    )
