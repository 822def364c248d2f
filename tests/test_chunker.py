"""
Tests for the token-bounded chunker.
"""

import pytest

from fakes import CharEncoding
from retrieval.chunker import END_OF_TEXT, chunk, count_tokens, strip_special_tokens


@pytest.fixture
def encoding():
    return CharEncoding()


@pytest.fixture
def tiktoken_encoding():
    # cl100k_base is downloaded on first use; skip when offline
    try:
        from retrieval.chunker import get_encoding
        return get_encoding()
    except Exception as exc:
        pytest.skip(f"tiktoken encoding unavailable: {exc}")


def test_short_text_is_single_unchanged_segment(encoding):
    text = "def f():\n    return 1\n"
    assert chunk(text, 100, encoding=encoding) == [text]


def test_text_exactly_at_budget_is_not_split(encoding):
    assert chunk("abcd", 4, encoding=encoding) == ["abcd"]


def test_long_text_split_into_full_windows(encoding):
    segments = chunk("abcdefghij", 4, encoding=encoding)
    assert segments == ["abcd", "efgh", "ij"]


def test_segments_reencode_to_original_tokens(encoding):
    text = "import os\n" * 37
    segments = chunk(text, 16, encoding=encoding)
    assert len(segments) > 1
    rejoined = [t for s in segments for t in encoding.encode(s)]
    assert rejoined == encoding.encode(text)
    assert all(len(encoding.encode(s)) == 16 for s in segments[:-1])
    assert 0 < len(encoding.encode(segments[-1])) <= 16


def test_end_of_text_sentinel_is_stripped(encoding):
    text = f"hello{END_OF_TEXT} world"
    assert chunk(text, 100, encoding=encoding) == ["hello world"]
    assert strip_special_tokens(END_OF_TEXT * 3) == ""


def test_count_tokens_ignores_sentinel(encoding):
    assert count_tokens(f"ab{END_OF_TEXT}c", encoding=encoding) == 3


def test_non_positive_budget_rejected(encoding):
    with pytest.raises(ValueError):
        chunk("abc", 0, encoding=encoding)


def test_tiktoken_chunks_concatenate_to_original(tiktoken_encoding):
    text = "def handler(event):\n    return event['body'].strip()\n" * 50
    segments = chunk(text, 64, encoding=tiktoken_encoding)
    assert len(segments) > 1
    assert "".join(segments) == text


def test_tiktoken_rejects_nothing_after_sentinel_strip(tiktoken_encoding):
    # encode() raises on the raw sentinel; chunk() must not
    segments = chunk(f"x = 1 {END_OF_TEXT} y = 2", 2048, encoding=tiktoken_encoding)
    assert segments == ["x = 1  y = 2"]
