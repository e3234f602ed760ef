"""FastAPI entrypoint exposing contexts, fragments, model profiles and the cache."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from spec_context.config import (
    ChunkingStrategy,
    ContextManagerConfig,
    ContextOptions,
    StreamingOptions,
)
from spec_context.document import SpecificationDocument
from spec_context.errors import StructuralError, UnknownModelError
from spec_context.manager.manager import ContextManager
from spec_context.types import ContextFragment


class ContextRequest(BaseModel):
    document: SpecificationDocument
    options: ContextOptions | None = None


class FormatRequest(BaseModel):
    document: SpecificationDocument
    model: str = Field(min_length=1)


class FragmentsRequest(BaseModel):
    document: SpecificationDocument
    strategy: ChunkingStrategy = Field(default_factory=ChunkingStrategy)


class StreamRequest(BaseModel):
    document: SpecificationDocument
    options: StreamingOptions = Field(default_factory=StreamingOptions)


app = FastAPI(title="Spec Context Service", version="0.1.0")

_manager = ContextManager(ContextManagerConfig.from_env())


def _structural_error(exc: StructuralError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"message": str(exc), "element_ids": list(exc.element_ids)},
    )


def _chunk(document: SpecificationDocument, strategy: ChunkingStrategy) -> list[ContextFragment]:
    try:
        return _manager.chunker.by_strategy(document, strategy)
    except StructuralError as exc:
        raise _structural_error(exc) from exc


@app.get("/health")
def health() -> dict[str, Any]:
    stats = _manager.get_cache_stats()
    return {
        "status": "ok",
        "target_model": _manager.config.target_model,
        "max_tokens": _manager.config.max_tokens,
        "cached_contexts": stats.entry_count,
    }


@app.post("/contexts")
def create_context(request: ContextRequest) -> dict[str, Any]:
    context = _manager.create_context(request.document, request.options)
    return context.to_dict()


@app.post("/contexts/analyze")
def analyze_context(request: ContextRequest) -> dict[str, Any]:
    context = _manager.create_context(request.document, request.options)
    return {"context_id": context.id, **asdict(_manager.analyze_context(context))}


@app.post("/contexts/format")
def format_context(request: FormatRequest) -> dict[str, Any]:
    context = _manager.create_context(request.document)
    try:
        formatted = _manager.optimizer.optimize_for_model(context, request.model)
    except UnknownModelError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return formatted.to_dict()


@app.post("/fragments")
def create_fragments(request: FragmentsRequest) -> dict[str, Any]:
    fragments = _chunk(request.document, request.strategy)
    return {"items": [fragment.to_dict() for fragment in fragments]}


@app.post("/fragments/validate")
def validate_fragments(request: FragmentsRequest) -> dict[str, Any]:
    fragments = _chunk(request.document, request.strategy)
    result = _manager.chunker.validate_relationships(fragments)
    return {"fragment_count": len(fragments), **asdict(result)}


@app.post("/fragments/stream")
def stream_fragments(request: StreamRequest) -> StreamingResponse:
    cursor = _manager.stream_context(request.document, request.options)
    # Pull the first fragment here so structural errors surface as a status code.
    try:
        first = cursor.next_fragment()
    except StructuralError as exc:
        raise _structural_error(exc) from exc

    def lines() -> Iterator[str]:
        fragment = first
        while fragment is not None:
            yield json.dumps(fragment.to_dict(), separators=(",", ":")) + "\n"
            fragment = cursor.next_fragment()

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@app.get("/models")
def models() -> dict[str, Any]:
    registry = _manager.optimizer.registry
    return {
        "items": [
            {"key": name, **registry.get(name).model_dump()} for name in registry.names()
        ]
    }


@app.get("/cache")
def cache_stats() -> dict[str, Any]:
    return asdict(_manager.get_cache_stats())


@app.delete("/cache")
def clear_cache() -> dict[str, Any]:
    _manager.clear_cache()
    return asdict(_manager.get_cache_stats())
