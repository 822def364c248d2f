"""
Abstract base class for embedding providers.

A provider performs exactly one embedding request for one text unit.
Retry, chunking and averaging live above the provider, in the
EmbeddingClient and the aggregator.

Providers translate backend failures into the two error classes below so
callers never need to know about HTTP status codes.
"""

from abc import ABC, abstractmethod


class EmbeddingServiceError(Exception):
    """Embedding request failed (transport error, bad status, malformed body)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(EmbeddingServiceError):
    """The embedding service asked us to slow down (HTTP 429)."""


class BaseEmbeddingProvider(ABC):

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Identifier used in logs."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Active embedding model identifier."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """
        Return the embedding vector for a single text unit.

        Raises:
            RateLimitedError: the service signalled a rate limit
            EmbeddingServiceError: any other failure
        """
