"""
Document-level embeddings.

A document longer than one chunk budget is chunked, every chunk is embedded
concurrently, and the chunk vectors are averaged element-wise. No length
weighting: a short trailing chunk counts as much as a full one.
"""

import asyncio
import logging
from typing import Sequence

import numpy as np

from .chunker import TokenEncoding, chunk
from .embedding_client import EmbeddingClient

logger = logging.getLogger(__name__)

MAX_TOKENS_PER_CHUNK = 2048


def average_embeddings(embeddings: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise arithmetic mean of equally sized vectors."""
    if not embeddings:
        return []
    matrix = np.asarray(embeddings, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError("All embeddings must have the same length")
    return matrix.mean(axis=0).tolist()


async def embed_document(
    text: str,
    client: EmbeddingClient,
    max_tokens: int = MAX_TOKENS_PER_CHUNK,
    encoding: TokenEncoding | None = None,
) -> list[float]:
    """Return one vector for text of any length."""
    chunks = chunk(text, max_tokens, encoding=encoding)

    if len(chunks) == 1:
        return await client.embed(chunks[0])

    logger.debug("Embedding %d chunks concurrently", len(chunks))
    embeddings = await asyncio.gather(*(client.embed(c) for c in chunks))
    return average_embeddings(embeddings)
