"""Model profiles and the character-ratio token estimator."""

from __future__ import annotations

import json
import math
from typing import Any, Literal

from pydantic import BaseModel, Field

from spec_context.errors import UnknownModelError

DEFAULT_TOKEN_RATIO = 4.0


class ModelProfile(BaseModel):
    """Static per-model budget and formatting preferences."""

    name: str
    max_tokens: int = Field(ge=1)
    token_ratio: float = Field(default=DEFAULT_TOKEN_RATIO, gt=0.0)
    preferred_density: Literal["verbose", "compact", "structured"] = "structured"
    supported_techniques: list[str] = Field(default_factory=list)


DEFAULT_PROFILE = ModelProfile(
    name="default",
    max_tokens=4000,
    token_ratio=DEFAULT_TOKEN_RATIO,
    preferred_density="structured",
    supported_techniques=["context_optimization"],
)


def builtin_profiles() -> dict[str, ModelProfile]:
    return {
        "gpt-4": ModelProfile(
            name="GPT-4",
            max_tokens=8192,
            token_ratio=4.0,
            preferred_density="structured",
            supported_techniques=[
                "context_optimization",
                "semantic_compression",
                "code_generation",
            ],
        ),
        "gpt-3.5-turbo": ModelProfile(
            name="GPT-3.5 Turbo",
            max_tokens=4096,
            token_ratio=4.0,
            preferred_density="compact",
            supported_techniques=["context_optimization", "basic_compression"],
        ),
        "claude-3": ModelProfile(
            name="Claude 3",
            max_tokens=100000,
            token_ratio=3.8,
            preferred_density="verbose",
            supported_techniques=[
                "context_optimization",
                "semantic_compression",
                "long_context",
            ],
        ),
        "gemini-pro": ModelProfile(
            name="Gemini Pro",
            max_tokens=32768,
            token_ratio=4.2,
            preferred_density="structured",
            supported_techniques=["context_optimization", "multimodal_context"],
        ),
    }


class ModelProfileRegistry:
    """Maps model keys (e.g. `gpt-4`) to profiles; unknown keys fall back on lookup."""

    def __init__(self, profiles: dict[str, ModelProfile] | None = None) -> None:
        self._profiles: dict[str, ModelProfile] = {}
        for key, profile in (profiles if profiles is not None else builtin_profiles()).items():
            self.register(profile, key=key)

    def register(
        self,
        profile: ModelProfile,
        *,
        key: str | None = None,
        replace: bool = False,
    ) -> None:
        name = key or profile.name
        if name in self._profiles and not replace:
            raise ValueError(f"Model profile already registered: {name}")
        self._profiles[name] = profile

    def get(self, key: str) -> ModelProfile:
        profile = self._profiles.get(key)
        if profile is None:
            raise UnknownModelError(key)
        return profile

    def lookup(self, key: str | None) -> ModelProfile:
        if key is None:
            return DEFAULT_PROFILE
        return self._profiles.get(key, DEFAULT_PROFILE)

    def names(self) -> list[str]:
        return list(self._profiles)


def serialize_content(content: Any) -> str:
    """Compact JSON used as the basis for token estimates."""
    if isinstance(content, str):
        return content
    if isinstance(content, BaseModel):
        payload: Any = content.model_dump(mode="json", by_alias=True, exclude_none=True)
    elif hasattr(content, "to_dict"):
        payload = content.to_dict()
    else:
        payload = content
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


class TokenEstimator:
    """Estimates tokens as `ceil(chars / token_ratio)`.

    The ratio is a policy default per model, not a vendor tokenizer. Results
    are rounded up so an estimate never promises more budget than exists.
    """

    def __init__(self, registry: ModelProfileRegistry | None = None) -> None:
        self.registry = registry or ModelProfileRegistry()

    def estimate(self, content: Any, model: str | None = None) -> int:
        ratio = self.registry.lookup(model).token_ratio
        return math.ceil(len(serialize_content(content)) / ratio)
