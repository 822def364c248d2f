"""
Token-bounded text chunker.

Oversized documents are split on token boundaries so each segment fits in a
single embedding request. Tokenization uses tiktoken's cl100k_base encoding,
the scheme used by the text-embedding-ada-002 family.

The encoding is loaded lazily and cached. Any object exposing
encode(str) -> list[int] and decode(list[int]) -> str can be injected,
which keeps unit tests independent of tiktoken's downloadable BPE files.
"""

import functools
import logging
from typing import Any, Protocol

import tiktoken

logger = logging.getLogger(__name__)

ENCODING_NAME = "cl100k_base"
# Reserved by the tokenizer; encode() refuses text containing it
END_OF_TEXT = "<|endoftext|>"


class TokenEncoding(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


@functools.lru_cache(maxsize=1)
def get_encoding() -> Any:
    """Return the shared tiktoken encoding (loaded once per process)."""
    return tiktoken.get_encoding(ENCODING_NAME)


def strip_special_tokens(text: str) -> str:
    """Remove literal end-of-text sentinels before encoding."""
    return text.replace(END_OF_TEXT, "")


def count_tokens(text: str, encoding: TokenEncoding | None = None) -> int:
    enc = encoding or get_encoding()
    return len(enc.encode(strip_special_tokens(text)))


def chunk(
    text: str,
    max_tokens: int,
    encoding: TokenEncoding | None = None,
) -> list[str]:
    """
    Split text into contiguous segments of at most max_tokens tokens.

    Text that already fits is returned unchanged as the only segment.
    Otherwise the token sequence is cut into windows of exactly max_tokens
    (the last window may be shorter) and each window is decoded back to text.
    """
    if max_tokens < 1:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")

    enc = encoding or get_encoding()
    text = strip_special_tokens(text)
    tokens = enc.encode(text)

    if len(tokens) <= max_tokens:
        return [text]

    segments = [
        enc.decode(tokens[start:start + max_tokens])
        for start in range(0, len(tokens), max_tokens)
    ]
    logger.debug(
        "Chunked %d tokens into %d segments (max_tokens=%d)",
        len(tokens),
        len(segments),
        max_tokens,
    )
    return segments
