"""LangChain adapters: fragments as `Document` objects and the manager as tools."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from langchain_core.documents import Document
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from spec_context.config import ContextOptions
from spec_context.document import SpecificationDocument
from spec_context.manager.manager import ContextManager
from spec_context.types import ContextFragment


def fragment_to_document(fragment: ContextFragment) -> Document:
    """Serialized fragment content plus the fields an LLM client filters on."""
    content = json.dumps(fragment.content.to_payload(), ensure_ascii=False, separators=(",", ":"))
    return Document(
        page_content=content,
        metadata={
            "fragment_id": fragment.id,
            "source_document_id": fragment.metadata.source_document_id,
            "fragment_type": fragment.metadata.fragment_type,
            "index": fragment.metadata.index,
            "total": fragment.metadata.total,
            "token_count": fragment.token_count,
            "priority": fragment.priority,
            "quality_score": fragment.metadata.quality_score,
            "exceeds_budget": fragment.metadata.exceeds_budget,
            "relationships": list(fragment.relationships),
            "dependencies": list(fragment.metadata.dependencies),
            "element_ids": fragment.element_ids(),
        },
    )


def fragments_to_documents(fragments: Iterable[ContextFragment]) -> list[Document]:
    """Works on lists and on streaming cursors alike."""
    return [fragment_to_document(fragment) for fragment in fragments]


class ChunkToolInput(BaseModel):
    document: dict[str, Any]
    chunk_size: int = Field(default=2000, ge=1)


class ContextToolInput(BaseModel):
    document: dict[str, Any]
    max_tokens: int | None = Field(default=None, ge=1)


def build_context_tools(manager: ContextManager) -> list[StructuredTool]:
    """Expose chunking and context creation to LangChain agents.

    Tools:
    - `chunk_specification`: semantic fragments as JSON lines.
    - `create_specification_context`: optimized document within a token budget.
    """

    def _chunk(document: dict[str, Any], chunk_size: int = 2000) -> str:
        fragments = manager.chunk_document(
            SpecificationDocument.model_validate(document), chunk_size
        )
        return "\n".join(json.dumps(fragment.to_dict()) for fragment in fragments)

    def _create(document: dict[str, Any], max_tokens: int | None = None) -> str:
        context = manager.create_context(
            SpecificationDocument.model_validate(document),
            ContextOptions(max_tokens=max_tokens),
        )
        return json.dumps(context.to_dict())

    return [
        StructuredTool.from_function(
            func=_chunk,
            name="chunk_specification",
            description="Split a specification document into relationship-preserving fragments.",
            args_schema=ChunkToolInput,
        ),
        StructuredTool.from_function(
            func=_create,
            name="create_specification_context",
            description="Fit a specification document into a token budget for an LLM prompt.",
            args_schema=ContextToolInput,
        ),
    ]
