"""
Tests for the embedding client retry policy, the providers' error mapping
and document-level aggregation.
"""

import asyncio
import logging

import httpx
import pytest

from fakes import CharEncoding
from retrieval.aggregator import average_embeddings, embed_document
from retrieval.base import BaseEmbeddingProvider, EmbeddingServiceError, RateLimitedError
from retrieval.embedding_client import EmbeddingClient
from retrieval.providers.mock_embeddings import MockEmbeddingProvider
from retrieval.providers.ollama_embeddings import OllamaEmbeddingProvider
from retrieval.providers.openai_embeddings import OpenAIEmbeddingProvider


class FlakyProvider(BaseEmbeddingProvider):
    """Raises the given errors in order, then returns a fixed vector."""

    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    @property
    def provider_name(self):
        return "flaky"

    @property
    def model_name(self):
        return "flaky-v1"

    async def embed(self, text):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return [1.0, 2.0, 3.0]


def _client(provider):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return EmbeddingClient(provider=provider, sleep=fake_sleep), sleeps


@pytest.mark.asyncio
async def test_rate_limit_retried_with_exponential_backoff():
    provider = FlakyProvider([RateLimitedError("429"), RateLimitedError("429")])
    client, sleeps = _client(provider)
    assert await client.embed("text") == [1.0, 2.0, 3.0]
    assert sleeps == [0.5, 1.0]
    assert provider.calls == 3


@pytest.mark.asyncio
async def test_other_errors_use_same_schedule():
    provider = FlakyProvider([EmbeddingServiceError("boom", status_code=500)])
    client, sleeps = _client(provider)
    assert await client.embed("text") == [1.0, 2.0, 3.0]
    assert sleeps == [0.5]


@pytest.mark.asyncio
async def test_gives_up_after_five_retries():
    provider = FlakyProvider([RateLimitedError("429")] * 10)
    client, sleeps = _client(provider)
    with pytest.raises(RateLimitedError):
        await client.embed("text")
    assert sleeps == [0.5, 1.0, 2.0, 4.0, 8.0]
    assert provider.calls == 6


@pytest.mark.asyncio
async def test_non_rate_limit_error_propagates_after_ceiling():
    provider = FlakyProvider([EmbeddingServiceError("down")] * 10)
    client, sleeps = _client(provider)
    with pytest.raises(EmbeddingServiceError, match="down"):
        await client.embed("text")
    assert len(sleeps) == 5


def _openai(handler):
    return OpenAIEmbeddingProvider(
        model="text-embedding-ada-002",
        api_key="test",
        base_url="https://example.test/v1",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_openai_provider_parses_embedding():
    def handler(request):
        assert request.url.path == "/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer test"
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}]})

    assert await _openai(handler).embed("hello") == [0.1, 0.2]


@pytest.mark.asyncio
async def test_openai_provider_maps_429_to_rate_limited(caplog):
    provider = _openai(lambda request: httpx.Response(429, json={}))
    with caplog.at_level(logging.WARNING, logger="retrieval.providers.openai_embeddings"):
        with pytest.raises(RateLimitedError):
            await provider.embed("hello")
    assert "rate limit" in caplog.text


@pytest.mark.asyncio
async def test_openai_provider_maps_server_error():
    provider = _openai(lambda request: httpx.Response(503, json={}))
    with pytest.raises(EmbeddingServiceError) as info:
        await provider.embed("hello")
    assert not isinstance(info.value, RateLimitedError)
    assert info.value.status_code == 503


@pytest.mark.asyncio
async def test_openai_provider_rejects_malformed_body():
    provider = _openai(lambda request: httpx.Response(200, json={"data": []}))
    with pytest.raises(EmbeddingServiceError):
        await provider.embed("hello")


@pytest.mark.asyncio
async def test_ollama_provider_parses_embedding():
    def handler(request):
        assert request.url.path == "/api/embed"
        return httpx.Response(200, json={"embeddings": [[0.5, 0.5, 0.0]]})

    provider = OllamaEmbeddingProvider(
        base_url="http://ollama.test", transport=httpx.MockTransport(handler)
    )
    assert await provider.embed("hello") == [0.5, 0.5, 0.0]


def test_average_of_identical_vectors_is_unchanged():
    vector = [0.25, -1.0, 3.5]
    assert average_embeddings([vector] * 4) == pytest.approx(vector)


def test_average_is_element_wise_mean():
    assert average_embeddings([[1.0, 2.0], [3.0, 4.0]]) == pytest.approx([2.0, 3.0])


def test_average_of_nothing_is_empty():
    assert average_embeddings([]) == []


def test_average_rejects_ragged_input():
    with pytest.raises(ValueError):
        average_embeddings([[1.0, 2.0], [1.0]])


@pytest.mark.asyncio
async def test_single_chunk_document_embedded_directly():
    provider = MockEmbeddingProvider(fixtures={"short": [1.0, 0.0]})
    client = EmbeddingClient(provider=provider)
    vector = await embed_document("short", client, max_tokens=100, encoding=CharEncoding())
    assert vector == [1.0, 0.0]
    assert provider.calls == ["short"]


@pytest.mark.asyncio
async def test_multi_chunk_document_is_unweighted_average():
    provider = MockEmbeddingProvider(
        fixtures={"aaaa": [1.0, 0.0], "bbbb": [0.0, 1.0], "c": [1.0, 1.0]}
    )
    client = EmbeddingClient(provider=provider)
    vector = await embed_document("aaaabbbbc", client, max_tokens=4, encoding=CharEncoding())
    # The one-character tail counts as much as the full chunks
    assert vector == pytest.approx([2 / 3, 2 / 3])
    assert sorted(provider.calls) == ["aaaa", "bbbb", "c"]


@pytest.mark.asyncio
async def test_document_vector_length_matches_service_dimensions():
    client = EmbeddingClient(provider=MockEmbeddingProvider(dimensions=12))
    encoding = CharEncoding()
    for text in ["x", "y" * 10, "z" * 95]:
        vector = await embed_document(text, client, max_tokens=8, encoding=encoding)
        assert len(vector) == 12


@pytest.mark.asyncio
async def test_chunks_are_embedded_concurrently():
    in_flight = 0
    peak = 0

    class SlowProvider(MockEmbeddingProvider):
        async def embed(self, text):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await super().embed(text)

    client = EmbeddingClient(provider=SlowProvider())
    await embed_document("abcdefghijkl", client, max_tokens=4, encoding=CharEncoding())
    assert peak == 3
