"""Specification document models consumed by the context pipeline.

The document is produced and validated upstream; these models only give it a
typed, immutable shape. camelCase keys from the upstream JSON/YAML output are
accepted as aliases, and `to_payload` serialises back to that shape.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ElementKind = Literal["business_rules", "data_structures", "api_endpoints", "workflow_steps"]

ELEMENT_KINDS: tuple[ElementKind, ...] = (
    "business_rules",
    "data_structures",
    "api_endpoints",
    "workflow_steps",
)

_KIND_ALIASES: dict[str, ElementKind] = {
    "businessRules": "business_rules",
    "dataStructures": "data_structures",
    "apiEndpoints": "api_endpoints",
    "workflowSteps": "workflow_steps",
    "workflows": "workflow_steps",
}


def normalize_kind(name: str) -> ElementKind | None:
    """Map a configured kind name (snake or camel case) to an element kind."""
    if name in ELEMENT_KINDS:
        return name  # type: ignore[return-value]
    return _KIND_ALIASES.get(name)


class _SpecModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class DocumentMetadata(_SpecModel):
    version: str = "1.0.0"
    id: str
    title: str | None = None
    description: str | None = None
    author: str | None = None
    created: str | None = None
    last_modified: str | None = None
    tags: list[str] | None = None
    fragment_info: dict[str, Any] | None = None


class RuleException(_SpecModel):
    id: str
    condition: str = ""
    action: str = ""
    reason: str | None = None
    approved_by: str | None = None
    approval_date: str | None = None


class BusinessRule(_SpecModel):
    id: str
    name: str = ""
    description: str | None = None
    condition: str = ""
    action: str = ""
    priority: int = 3
    enabled: bool = True
    exceptions: list[RuleException] | None = None
    tags: list[str] | None = None
    examples: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None


class DataField(_SpecModel):
    name: str
    type: str = "string"
    required: bool = False
    description: str | None = None
    default_value: Any = None
    format: str | None = None
    enum_values: list[str] | None = None
    reference_to: str | None = None


class DataStructure(_SpecModel):
    id: str
    name: str
    type: str = "object"
    description: str | None = None
    fields: list[DataField] | None = None
    relationships: list[Any] | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None


class ApiParameter(_SpecModel):
    name: str
    location: str = Field(default="query", alias="in")
    type: str = "string"
    required: bool = False
    description: str | None = None


class ApiResponse(_SpecModel):
    status_code: int = 200
    description: str | None = None
    content_type: str | None = None
    schema_name: str | None = Field(default=None, alias="schema")
    examples: list[dict[str, Any]] | None = None


class ApiEndpoint(_SpecModel):
    id: str
    name: str = ""
    path: str
    method: str = "GET"
    description: str | None = None
    parameters: list[ApiParameter] | None = None
    request_body: dict[str, Any] | None = None
    responses: list[ApiResponse] | None = None
    authentication: list[dict[str, Any]] | None = None
    examples: list[dict[str, Any]] | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None


class WorkflowStep(_SpecModel):
    id: str
    name: str = ""
    type: str = "action"
    description: str | None = None
    condition: str | None = None
    action: str = ""
    timeout: int | None = None
    rollback_action: str | None = None
    dependencies: list[str] | None = None
    outputs: dict[str, str] | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None


Element = Union[BusinessRule, DataStructure, ApiEndpoint, WorkflowStep]


class SpecificationDocument(_SpecModel):
    """A named collection of rules, structures, endpoints and workflow steps."""

    metadata: DocumentMetadata
    business_rules: list[BusinessRule] = Field(default_factory=list)
    data_structures: list[DataStructure] = Field(default_factory=list)
    api_endpoints: list[ApiEndpoint] = Field(default_factory=list)
    workflow_steps: list[WorkflowStep] = Field(default_factory=list)
    ai_context: dict[str, Any] | None = None
    governance: dict[str, Any] | None = None

    @property
    def document_id(self) -> str:
        return self.metadata.id

    def elements(self, kind: ElementKind) -> list[Element]:
        return list(getattr(self, kind))

    def element_ids(self, kind: ElementKind | None = None) -> list[str]:
        kinds = ELEMENT_KINDS if kind is None else (kind,)
        return [element.id for k in kinds for element in getattr(self, k)]

    def contained_ids(self) -> set[str]:
        """All element ids plus ids nested inside elements (rule exceptions)."""
        ids = set(self.element_ids())
        for rule in self.business_rules:
            ids.update(exception.id for exception in rule.exceptions or [])
        return ids

    def count(self, kind: ElementKind) -> int:
        return len(getattr(self, kind))

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
