"""
Model Selector

Resolves the configured model into a provider instance. The registry is a
read-only mapping so the selection table cannot be mutated at runtime.

Registry keys:
- DEFAULT: Llama 3 through OpenRouter
- FAST: Gemini Flash Lite
- STANDARD: GPT-4o-mini through OpenRouter

Any other ``LLM_MODEL`` value is treated as a raw model name; the provider is
inferred from the name.

Usage:
    from veritas.llm.model_selector import build_provider

    provider = build_provider(settings)
    answer = await provider.invoke(prompt)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from veritas.config import Settings
from veritas.llm.providers import GeminiProvider, ModelProvider, OpenAICompatibleProvider

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """LLM backend family."""
    OPENROUTER = "openrouter"
    GOOGLE = "google"


@dataclass(frozen=True)
class ModelSpec:
    """A model name and the backend that serves it."""
    provider: ProviderKind
    model: str


MODEL_REGISTRY: Mapping[str, ModelSpec] = MappingProxyType({
    "DEFAULT": ModelSpec(ProviderKind.OPENROUTER, "meta-llama/llama-3-8b-instruct"),
    "FAST": ModelSpec(ProviderKind.GOOGLE, "gemini-2.0-flash-lite"),
    "STANDARD": ModelSpec(ProviderKind.OPENROUTER, "openai/gpt-4o-mini"),
})


def get_provider_kind(model: str) -> ProviderKind:
    """
    Infer the backend for a raw model name.

    Args:
        model: Model name

    Returns:
        ProviderKind enum
    """
    if "gemini" in model.lower():
        return ProviderKind.GOOGLE
    return ProviderKind.OPENROUTER


def resolve_model_spec(name: str) -> ModelSpec:
    """Registry entry for ``name``, or a spec inferred from the raw model name."""
    spec = MODEL_REGISTRY.get(name.upper())
    if spec is not None:
        return spec
    return ModelSpec(get_provider_kind(name), name)


def build_provider(settings: Settings) -> ModelProvider:
    """
    Build the provider for the configured model.

    A missing API key does not fail here; the provider reports it on the
    first invoke so the service can still start and serve cached answers.
    """
    spec = resolve_model_spec(settings.LLM_MODEL)
    logger.info(f"Using model {spec.model} via {spec.provider.value}")

    if spec.provider == ProviderKind.GOOGLE:
        return GeminiProvider(
            model=spec.model,
            api_key=settings.GOOGLE_API_KEY,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
        )

    return OpenAICompatibleProvider(
        model=spec.model,
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        default_headers={
            "HTTP-Referer": settings.OPENROUTER_REFERER,
            "X-Title": settings.OPENROUTER_TITLE,
        },
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
    )
