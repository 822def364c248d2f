"""
Ollama embeddings provider: local embeddings via the /api/embed endpoint.

Default model: nomic-embed-text. Override with OLLAMA_EMBEDDING_MODEL.
Environment variable OLLAMA_BASE_URL overrides the default host.
"""

import os

import httpx

from ..base import BaseEmbeddingProvider, EmbeddingServiceError, RateLimitedError

_DEFAULT_BASE_URL = "http://localhost:11434"
_DEFAULT_MODEL = "nomic-embed-text"
_TIMEOUT_SECONDS = float(os.environ.get("OLLAMA_TIMEOUT", "120"))


class OllamaEmbeddingProvider(BaseEmbeddingProvider):

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("OLLAMA_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self._base_url = base_url or os.environ.get("OLLAMA_BASE_URL", _DEFAULT_BASE_URL)
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, text: str) -> list[float]:
        payload = {"model": self._model, "input": text}

        timeout_config = httpx.Timeout(connect=10.0, read=_TIMEOUT_SECONDS, write=30.0, pool=10.0)
        async with httpx.AsyncClient(
            timeout=timeout_config, transport=self._transport
        ) as client:
            try:
                response = await client.post(f"{self._base_url}/api/embed", json=payload)
            except httpx.ConnectError as exc:
                raise EmbeddingServiceError(
                    f"Ollama not reachable at {self._base_url}. "
                    "Ensure `ollama serve` is running."
                ) from exc
            except httpx.HTTPError as exc:
                raise EmbeddingServiceError(f"Ollama embedding request failed: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError("Ollama rate limit hit", status_code=429)
        if response.is_error:
            raise EmbeddingServiceError(
                f"Ollama embedding error: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return list(response.json()["embeddings"][0])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingServiceError(f"Malformed Ollama embedding response: {exc}") from exc
