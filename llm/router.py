"""
LLM Router: the single point of contact between agent nodes and the
reasoning service.

Nodes NEVER call providers directly. This ensures:
  - Provider selection logic lives in one place
  - The system prompt and action schemas come from the prompt files
  - Transport failures are retried uniformly

Provider selection priority:
  1. Explicit provider passed to Router constructor (test injection)
  2. Environment variable: LLM_PROVIDER = openai | ollama | mock
  3. Auto-detection: OPENAI_API_KEY → Ollama health check → Mock fallback

OPENAI_REASONING_EFFORT sets the default reasoning_effort attached to every
request; generate() and stream() may override it per call.
"""

import asyncio
import logging
import os
from typing import Any, AsyncIterator

from .base import BaseLLMProvider, ChatRequest, ChatResponse, ReasoningServiceError
from .prompt_loader import get_system_prompt, get_tools

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3


def _resolve_provider() -> BaseLLMProvider:
    """Select provider based on environment signals."""
    env_provider = os.environ.get("LLM_PROVIDER", "").lower()

    if env_provider == "mock":
        from .providers.mock_provider import MockProvider
        return MockProvider()

    if env_provider == "openai":
        from .providers.openai_provider import OpenAIProvider
        return OpenAIProvider()

    if env_provider == "ollama":
        from .providers.ollama_provider import OllamaProvider
        return OllamaProvider()

    if os.environ.get("OPENAI_API_KEY"):
        from .providers.openai_provider import OpenAIProvider
        logger.info("Auto-selected OpenAI provider")
        return OpenAIProvider()

    # is_available_sync() uses httpx's sync client and never touches the
    # event loop, so it can run at router construction time.
    from .providers.ollama_provider import OllamaProvider
    provider = OllamaProvider()
    if provider.is_available_sync():
        logger.info("Auto-selected Ollama provider at %s", provider._base_url)
        return provider

    logger.warning(
        "No LLM provider available. Using Mock provider. "
        "Set LLM_PROVIDER=openai or LLM_PROVIDER=ollama to use real models."
    )
    from .providers.mock_provider import MockProvider
    return MockProvider()


class LLMRouter:
    """
    Stateless wrapper combining prompt loading and inference with retry.
    """

    def __init__(
        self,
        provider: BaseLLMProvider | None = None,
        retry_delay: float = 0.5,
        reasoning_effort: str | None = None,
    ) -> None:
        # Allow explicit injection for testing; otherwise auto-resolve
        self._provider = provider or _resolve_provider()
        self._retry_delay = retry_delay
        self._reasoning_effort = (
            reasoning_effort or os.environ.get("OPENAI_REASONING_EFFORT") or None
        )
        logger.info(
            "LLMRouter initialized with provider=%s model=%s",
            self._provider.provider_name,
            self._provider.model_name,
        )

    def _request(
        self,
        role: str,
        messages: list[dict[str, Any]],
        with_tools: bool,
        max_new_tokens: int,
        temperature: float,
        reasoning_effort: str | None,
    ) -> ChatRequest:
        return ChatRequest(
            system_prompt=get_system_prompt(role),
            messages=messages,
            tools=get_tools(role) if with_tools else [],
            max_new_tokens=max_new_tokens,
            temperature=temperature,
            reasoning_effort=reasoning_effort or self._reasoning_effort,
            metadata={"role": role},
        )

    async def generate(
        self,
        role: str,
        messages: list[dict[str, Any]],
        max_new_tokens: int = 4096,
        temperature: float = 0.2,
        reasoning_effort: str | None = None,
    ) -> ChatResponse:
        """
        Send the conversation plus the role's action schemas; return the
        complete assistant message.

        Retries up to _MAX_RETRIES times on ReasoningServiceError with a
        linear backoff, then re-raises the last error.
        """
        request = self._request(role, messages, True, max_new_tokens, temperature, reasoning_effort)
        last_error: ReasoningServiceError | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                response = await self._provider.chat(request)
                logger.debug(
                    "role=%s attempt=%d input_tokens=%d output_tokens=%d tool_calls=%d",
                    role,
                    attempt,
                    response.input_tokens,
                    response.output_tokens,
                    len(response.tool_calls),
                )
                return response
            except ReasoningServiceError as exc:
                last_error = exc
                logger.warning(
                    "role=%s attempt=%d/%d reasoning service error: %s",
                    role,
                    attempt + 1,
                    _MAX_RETRIES,
                    exc,
                )
                if attempt < _MAX_RETRIES - 1:
                    await asyncio.sleep(self._retry_delay * (attempt + 1))

        raise last_error or ReasoningServiceError(
            f"All {_MAX_RETRIES} retries exhausted for role={role}"
        )

    async def stream(
        self,
        role: str,
        messages: list[dict[str, Any]],
        max_new_tokens: int = 4096,
        temperature: float = 0.2,
        reasoning_effort: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream narration fragments. No tools are offered and nothing is retried."""
        request = self._request(role, messages, False, max_new_tokens, temperature, reasoning_effort)
        async for fragment in self._provider.stream(request):
            yield fragment

    @property
    def provider(self) -> BaseLLMProvider:
        return self._provider
