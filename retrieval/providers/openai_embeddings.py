"""
OpenAI embeddings provider: calls the /embeddings REST endpoint via httpx.

Works against any OpenAI-compatible server (set OPENAI_BASE_URL).
Default model: text-embedding-ada-002, overridden by OPENAI_EMBEDDING_MODEL.
"""

import logging
import os

import httpx

from ..base import BaseEmbeddingProvider, EmbeddingServiceError, RateLimitedError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "text-embedding-ada-002"
_TIMEOUT_SECONDS = float(os.environ.get("OPENAI_TIMEOUT", "60"))


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("OPENAI_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self._base_url = (
            base_url or os.environ.get("OPENAI_BASE_URL", _DEFAULT_BASE_URL)
        ).rstrip("/")
        # Injected in tests via httpx.MockTransport
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, text: str) -> list[float]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = {"input": text, "model": self._model}

        async with httpx.AsyncClient(
            timeout=_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    f"{self._base_url}/embeddings",
                    json=payload,
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                raise EmbeddingServiceError(
                    f"Embedding request to {self._base_url} failed: {exc}"
                ) from exc

        if response.status_code == 429:
            logger.warning("Embedding rate limit hit on model %s", self._model)
            raise RateLimitedError("Embedding rate limit hit", status_code=429)
        if response.is_error:
            raise EmbeddingServiceError(
                f"Error fetching embedding: HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return list(response.json()["data"][0]["embedding"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingServiceError(f"Malformed embedding response: {exc}") from exc
