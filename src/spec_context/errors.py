"""Exception types raised by the context pipeline."""

from __future__ import annotations

from collections.abc import Iterable


class StructuralError(ValueError):
    """A document or request shape that makes the current call impossible.

    Carries the element ids involved so callers can report a precise message.
    The manager may fill `elapsed_ms` before re-raising.
    """

    def __init__(self, message: str, element_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.element_ids: list[str] = list(element_ids)
        self.elapsed_ms: float | None = None


class WorkflowCycleError(StructuralError):
    """Workflow step dependencies form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        path = " -> ".join([*cycle, cycle[0]]) if cycle else ""
        super().__init__(f"Cyclic workflow dependency: {path}", cycle)
        self.cycle = list(cycle)


class UnknownStrategyError(StructuralError):
    """The requested chunking strategy name is not recognised."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown chunking strategy: {name}")
        self.strategy_name = name


class UnknownModelError(KeyError):
    """No model profile is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown model profile: {name}")
        self.model_name = name

    def __str__(self) -> str:
        return str(self.args[0])
