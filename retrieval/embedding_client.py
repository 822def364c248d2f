"""
Embedding client: the single point of contact with the embedding service.

Wraps a provider with a uniform retry policy: rate-limit signals and every
other service error are retried on the same exponential schedule
(500ms, 1s, 2s, 4s, 8s) before the last error is propagated.

Provider selection priority:
  1. Explicit provider passed to the constructor (test injection)
  2. Environment variable: EMBEDDING_PROVIDER = openai | ollama | mock
  3. Auto-detection: OPENAI_API_KEY → Ollama health check → Mock fallback
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable

import httpx

from .base import BaseEmbeddingProvider, EmbeddingServiceError, RateLimitedError

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
INITIAL_BACKOFF_SECONDS = 0.5


def _resolve_provider() -> BaseEmbeddingProvider:
    env_provider = os.environ.get("EMBEDDING_PROVIDER", "").lower()

    if env_provider == "mock":
        from .providers.mock_embeddings import MockEmbeddingProvider
        return MockEmbeddingProvider()

    if env_provider == "openai":
        from .providers.openai_embeddings import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider()

    if env_provider == "ollama":
        from .providers.ollama_embeddings import OllamaEmbeddingProvider
        return OllamaEmbeddingProvider()

    if os.environ.get("OPENAI_API_KEY"):
        from .providers.openai_embeddings import OpenAIEmbeddingProvider
        logger.info("Auto-selected OpenAI embedding provider")
        return OpenAIEmbeddingProvider()

    base_url = os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    try:
        if httpx.get(f"{base_url}/api/tags", timeout=5.0).status_code == 200:
            from .providers.ollama_embeddings import OllamaEmbeddingProvider
            logger.info("Auto-selected Ollama embedding provider at %s", base_url)
            return OllamaEmbeddingProvider(base_url=base_url)
    except httpx.HTTPError:
        pass

    logger.warning(
        "No embedding provider available. Using Mock provider. "
        "Set EMBEDDING_PROVIDER=openai or EMBEDDING_PROVIDER=ollama to use real embeddings."
    )
    from .providers.mock_embeddings import MockEmbeddingProvider
    return MockEmbeddingProvider()


class EmbeddingClient:
    """Retrying wrapper around one embedding provider."""

    def __init__(
        self,
        provider: BaseEmbeddingProvider | None = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider or _resolve_provider()
        self._max_retries = max_retries
        self._initial_backoff = initial_backoff
        self._sleep = sleep
        logger.info(
            "EmbeddingClient initialized with provider=%s model=%s",
            self._provider.provider_name,
            self._provider.model_name,
        )

    @property
    def provider(self) -> BaseEmbeddingProvider:
        return self._provider

    async def embed(self, text: str) -> list[float]:
        """
        Embed exactly one text unit, retrying on any service error.

        Raises:
            EmbeddingServiceError: the last error once retries are exhausted
        """
        retry_count = 0
        wait_time = self._initial_backoff

        while True:
            try:
                return await self._provider.embed(text)
            except RateLimitedError:
                if retry_count >= self._max_retries:
                    raise
                logger.warning(
                    "Rate limit hit. Retrying in %.1fs (attempt %d/%d)",
                    wait_time,
                    retry_count + 1,
                    self._max_retries,
                )
            except EmbeddingServiceError as exc:
                if retry_count >= self._max_retries:
                    raise
                logger.warning(
                    "Embedding error: %s. Retrying in %.1fs (attempt %d/%d)",
                    exc,
                    wait_time,
                    retry_count + 1,
                    self._max_retries,
                )

            await self._sleep(wait_time)
            retry_count += 1
            wait_time *= 2
