"""
Tests for the in-memory similarity index.
"""

import asyncio

import pytest

from fakes import CharEncoding
from retrieval.base import EmbeddingServiceError
from retrieval.embedding_client import EmbeddingClient
from retrieval.index import (
    IndexedRecord,
    IndexNotBuiltError,
    SimilarityIndex,
    SourceDocument,
    cosine_similarity,
    rank_records,
)
from retrieval.providers.mock_embeddings import MockEmbeddingProvider


async def _no_sleep(seconds):
    return None


def _index(fixtures=None, provider=None):
    provider = provider or MockEmbeddingProvider(fixtures=fixtures)
    client = EmbeddingClient(provider=provider, sleep=_no_sleep)
    return SimilarityIndex(client=client, encoding=CharEncoding()), provider


FIVE_DOCS = {
    "a.py": ("alpha", [1.0, 0.0, 0.0]),
    "b.py": ("beta", [0.0, 1.0, 0.0]),
    "c.py": ("gamma", [0.9, 0.1, 0.0]),
    "d.py": ("delta", [0.0, 0.0, 1.0]),
    "e.py": ("epsilon", [-1.0, 0.0, 0.0]),
}


def _five_doc_index():
    fixtures = {content: vector for content, vector in FIVE_DOCS.values()}
    fixtures["parser crash"] = [0.9, 0.1, 0.0]
    index, provider = _index(fixtures)
    documents = [SourceDocument(name, content) for name, (content, _) in FIVE_DOCS.items()]
    return index, provider, documents


def test_cosine_of_vector_with_itself_is_one():
    assert cosine_similarity([0.3, -2.0, 5.0], [0.3, -2.0, 5.0]) == pytest.approx(1.0)


def test_cosine_is_symmetric():
    a, b = [1.0, 2.0, 3.0], [-0.5, 4.0, 0.25]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_with_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([1.0, 1.0], [0.0, 0.0]) == 0.0


def test_rank_keeps_insertion_order_on_ties():
    records = [
        IndexedRecord("first", "x", (1.0, 0.0)),
        IndexedRecord("second", "y", (2.0, 0.0)),
        IndexedRecord("third", "z", (0.0, 1.0)),
    ]
    results = rank_records([1.0, 0.0], records, top_k=3)
    assert [r.identifier for r in results] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_query_before_build_raises():
    index, _ = _index()
    assert not index.is_built
    with pytest.raises(IndexNotBuiltError):
        await index.query("anything")


@pytest.mark.asyncio
async def test_query_returns_most_similar_first():
    index, _, documents = _five_doc_index()
    assert await index.rebuild(documents) == 5

    results = await index.query("parser crash", top_k=3)
    assert [r.identifier for r in results] == ["c.py", "a.py", "b.py"]
    assert results[0].content == "gamma"
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_top_k_bounds_result_count():
    index, _, documents = _five_doc_index()
    await index.rebuild(documents)
    assert len(await index.query("parser crash", top_k=1)) == 1
    assert len(await index.query("parser crash", top_k=50)) == 5


@pytest.mark.asyncio
async def test_top_k_must_be_positive():
    index, _, documents = _five_doc_index()
    await index.rebuild(documents)
    with pytest.raises(ValueError):
        await index.query("parser crash", top_k=0)


@pytest.mark.asyncio
async def test_empty_rebuild_yields_empty_results():
    index, _ = _index()
    assert await index.rebuild([]) == 0
    assert index.is_built
    assert await index.query("anything") == []


@pytest.mark.asyncio
async def test_rebuild_replaces_previous_contents():
    index, _ = _index({"old": [1.0, 0.0], "new": [0.0, 1.0], "q": [0.0, 1.0]})
    await index.rebuild([SourceDocument("old.py", "old")])
    first = index.snapshot

    await index.rebuild([SourceDocument("new.py", "new")])
    assert index.snapshot.generation == first.generation + 1
    results = await index.query("q")
    assert [r.identifier for r in results] == ["new.py"]
    # The earlier snapshot object is untouched
    assert [r.identifier for r in first.records] == ["old.py"]


@pytest.mark.asyncio
async def test_records_follow_input_order_not_completion_order():
    class ReverseLatencyProvider(MockEmbeddingProvider):
        async def embed(self, text):
            await asyncio.sleep(0.03 if text == "slow" else 0.0)
            return await super().embed(text)

    index, _ = _index(provider=ReverseLatencyProvider())
    await index.rebuild([SourceDocument("1.py", "slow"), SourceDocument("2.py", "fast")])
    assert [r.identifier for r in index.snapshot.records] == ["1.py", "2.py"]


@pytest.mark.asyncio
async def test_failed_rebuild_keeps_previous_snapshot():
    class BrokenProvider(MockEmbeddingProvider):
        async def embed(self, text):
            if text == "broken":
                raise EmbeddingServiceError("service unavailable", status_code=503)
            return await super().embed(text)

    index, _ = _index(provider=BrokenProvider(fixtures={"good": [1.0, 0.0]}))
    await index.rebuild([SourceDocument("good.py", "good")])
    before = index.snapshot

    with pytest.raises(EmbeddingServiceError):
        await index.rebuild([SourceDocument("good.py", "good"), SourceDocument("bad.py", "broken")])

    assert index.snapshot is before
    assert len(index) == 1


@pytest.mark.asyncio
async def test_query_during_rebuild_sees_one_generation():
    gate = asyncio.Event()

    class GatedProvider(MockEmbeddingProvider):
        async def embed(self, text):
            if text.startswith("v2"):
                await gate.wait()
            return await super().embed(text)

    index, _ = _index(provider=GatedProvider())
    await index.rebuild([SourceDocument("x.py", "v1 x"), SourceDocument("y.py", "v1 y")])

    rebuild = asyncio.create_task(
        index.rebuild([SourceDocument("x.py", "v2 x"), SourceDocument("z.py", "v2 z")])
    )
    await asyncio.sleep(0)
    during = await index.query("q", top_k=5)
    assert {r.content for r in during} == {"v1 x", "v1 y"}

    gate.set()
    await rebuild
    after = await index.query("q", top_k=5)
    assert {r.content for r in after} == {"v2 x", "v2 z"}
