"""
In-memory similarity index over embedded source documents.

The index holds an immutable snapshot of records. rebuild() computes every
embedding first and only then swaps the snapshot reference in one
assignment, so a concurrent query always scans one complete generation:
either the previous one or the new one, never a mix.

Nothing is persisted; the index lives for one session.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .aggregator import embed_document
from .chunker import TokenEncoding
from .embedding_client import EmbeddingClient

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3


class IndexNotBuiltError(Exception):
    """Raised when querying before any successful rebuild."""


@dataclass(frozen=True)
class SourceDocument:
    identifier: str
    content: str


@dataclass(frozen=True)
class IndexedRecord:
    identifier: str
    content: str
    embedding: tuple[float, ...]


@dataclass(frozen=True)
class SearchResult:
    identifier: str
    content: str
    score: float

    def to_dict(self) -> dict:
        return {"identifier": self.identifier, "content": self.content, "score": self.score}


@dataclass(frozen=True)
class IndexSnapshot:
    """One generation of the index, produced by a single rebuild()."""
    generation: int
    records: tuple[IndexedRecord, ...]


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero magnitude."""
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def rank_records(
    query_embedding: Sequence[float],
    records: Sequence[IndexedRecord],
    top_k: int = DEFAULT_TOP_K,
) -> list[SearchResult]:
    """Score every record and return the top_k, highest first.

    sorted() is stable, so equal scores keep insertion order.
    """
    scored = [
        SearchResult(
            identifier=record.identifier,
            content=record.content,
            score=cosine_similarity(query_embedding, record.embedding),
        )
        for record in records
    ]
    scored = sorted(scored, key=lambda r: r.score, reverse=True)
    return scored[:top_k]


class SimilarityIndex:
    """
    Usage:
        index = SimilarityIndex(EmbeddingClient())
        await index.rebuild([SourceDocument("a.py", "...")])
        results = await index.query("fix the parser", top_k=3)
    """

    def __init__(
        self,
        client: EmbeddingClient | None = None,
        encoding: TokenEncoding | None = None,
    ) -> None:
        self._client = client or EmbeddingClient()
        self._encoding = encoding
        self._snapshot: IndexSnapshot | None = None

    @property
    def is_built(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> IndexSnapshot | None:
        return self._snapshot

    def __len__(self) -> int:
        snapshot = self._snapshot
        return len(snapshot.records) if snapshot else 0

    async def embed(self, text: str) -> list[float]:
        return await embed_document(text, self._client, encoding=self._encoding)

    async def rebuild(self, documents: Sequence[SourceDocument]) -> int:
        """
        Embed every document concurrently and replace the index contents.

        If any embedding fails the previous snapshot stays in place and the
        error propagates.
        """
        documents = list(documents)
        embeddings = await asyncio.gather(*(self.embed(doc.content) for doc in documents))

        records = tuple(
            IndexedRecord(
                identifier=doc.identifier,
                content=doc.content,
                embedding=tuple(embedding),
            )
            for doc, embedding in zip(documents, embeddings)
        )
        generation = self._snapshot.generation + 1 if self._snapshot else 1
        self._snapshot = IndexSnapshot(generation=generation, records=records)

        logger.info("Index built: generation=%d records=%d", generation, len(records))
        return len(records)

    async def query(self, text: str, top_k: int = DEFAULT_TOP_K) -> list[SearchResult]:
        """
        Return up to top_k records ranked by cosine similarity to text.

        Raises:
            IndexNotBuiltError: rebuild() has never completed
        """
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")

        snapshot = self._snapshot
        if snapshot is None:
            raise IndexNotBuiltError(
                "Embedding index not built yet. Please index the files first."
            )

        query_embedding = await self.embed(text)
        results = rank_records(query_embedding, snapshot.records, top_k)
        logger.info(
            "Query matched %d/%d records (generation=%d)",
            len(results),
            len(snapshot.records),
            snapshot.generation,
        )
        return results
