"""
Model Providers

Backends that turn a prompt into an answer. Every provider exposes the same
``invoke(prompt) -> str`` contract and reports any transport, status,
authentication or response-shape failure as ProviderError.

Providers:
- OpenAICompatibleProvider: OpenRouter (or any OpenAI-compatible endpoint)
- GeminiProvider: Google Gemini via google.generativeai
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import google.generativeai as genai
from openai import AsyncOpenAI, OpenAIError

from veritas.errors import ProviderError

logger = logging.getLogger(__name__)


class ModelProvider(Protocol):
    """Prompt in, answer text out."""

    async def invoke(self, prompt: str) -> str:
        ...


class OpenAICompatibleProvider:
    """
    Chat-completions provider for OpenAI-compatible APIs.

    Sends the prompt as a single user message and requires a non-empty
    ``choices[0].message.content`` in the reply.
    """

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        default_headers: Optional[Dict[str, str]] = None,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        client: Optional[Any] = None,
    ):
        """
        Initialize the provider.

        Args:
            model: Model name sent to the endpoint
            api_key: API key; an empty key fails at invoke time
            base_url: Endpoint base URL (OpenRouter by default in settings)
            default_headers: Extra headers such as HTTP-Referer and X-Title
            temperature: Sampling temperature
            max_tokens: Maximum answer tokens
            client: Pre-built AsyncOpenAI client (tests)
        """
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                default_headers=default_headers,
            )

    async def invoke(self, prompt: str) -> str:
        if self._client is None:
            raise ProviderError("OPENROUTER_API_KEY secret not found.")

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            logger.warning(f"OpenAI-compatible call failed for {self.model}: {e}")
            raise ProviderError(f"Model provider error: {e}", cause=e)

        return self._extract_answer(response)

    def _extract_answer(self, response: Any) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            raise ProviderError("Invalid provider response structure: no choices")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("Invalid provider response structure: empty message content")
        return content


class GeminiProvider:
    """Google Gemini provider. The SDK call is synchronous, so it runs in an executor."""

    def __init__(
        self,
        model: str,
        api_key: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        gemini_model: Optional[Any] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._gemini_model = gemini_model
        if self._gemini_model is None and api_key:
            genai.configure(api_key=api_key)
            self._gemini_model = genai.GenerativeModel(model)

    async def invoke(self, prompt: str) -> str:
        if self._gemini_model is None:
            raise ProviderError("GOOGLE_API_KEY secret not found.")

        generation_config = genai.GenerationConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self._gemini_model.generate_content(
                    prompt,
                    generation_config=generation_config
                )
            )
            # .text raises ValueError when the candidate was blocked
            text = response.text
        except Exception as e:
            logger.warning(f"Gemini call failed for {self.model}: {e}")
            raise ProviderError(f"Model provider error: {e}", cause=e)

        if not isinstance(text, str) or not text.strip():
            raise ProviderError("Invalid provider response structure: empty text")
        return text
