"""
LLM Module

Model providers behind a single invoke(prompt) contract, and the registry
that selects one from settings.
"""

from veritas.llm.providers import (
    ModelProvider,
    OpenAICompatibleProvider,
    GeminiProvider,
)
from veritas.llm.model_selector import (
    ProviderKind,
    ModelSpec,
    MODEL_REGISTRY,
    build_provider,
    get_provider_kind,
    resolve_model_spec,
)

__all__ = [
    "ModelProvider",
    "OpenAICompatibleProvider",
    "GeminiProvider",
    "ProviderKind",
    "ModelSpec",
    "MODEL_REGISTRY",
    "build_provider",
    "get_provider_kind",
    "resolve_model_spec",
]
