"""
Mock embedding provider for deterministic unit testing.

Vectors are derived from a SHA-256 digest of the text, so identical text
always maps to the identical vector. Tests may register fixed vectors for
specific texts. Never makes network calls.
"""

import hashlib

from ..base import BaseEmbeddingProvider

_DEFAULT_DIMENSIONS = 16


class MockEmbeddingProvider(BaseEmbeddingProvider):

    def __init__(
        self,
        fixtures: dict[str, list[float]] | None = None,
        dimensions: int = _DEFAULT_DIMENSIONS,
    ) -> None:
        self._fixtures = dict(fixtures or {})
        self._dimensions = dimensions
        # Texts seen by embed(), in call order
        self.calls: list[str] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return f"mock-embed-{self._dimensions}"

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self._fixtures:
            return list(self._fixtures[text])
        return _hash_vector(text, self._dimensions)


def _hash_vector(text: str, dimensions: int) -> list[float]:
    values: list[float] = []
    counter = 0
    while len(values) < dimensions:
        digest = hashlib.sha256(f"{counter}:{text}".encode("utf-8")).digest()
        # Map each byte to [-1, 1]
        values.extend((b / 127.5) - 1.0 for b in digest)
        counter += 1
    return values[:dimensions]
