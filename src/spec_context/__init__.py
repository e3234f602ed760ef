"""Context management for specification documents."""

from .config import ChunkingStrategy, ContextManagerConfig, OptimizationOptions, StreamingOptions
from .document import SpecificationDocument
from .manager.manager import ContextManager

__all__ = [
    "ChunkingStrategy",
    "ContextManager",
    "ContextManagerConfig",
    "OptimizationOptions",
    "SpecificationDocument",
    "StreamingOptions",
]
