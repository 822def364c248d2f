"""
Token-aware context builder.

Assembles the code context for the initial repair prompt: the caller's
current code followed by the retrieved excerpts, under a token budget.
Also trims sandbox output before it is fed back to the model.

Token counting is approximate (character-based) so prompt assembly never
depends on the tokenizer's downloadable vocabulary files.
The approximation: 1 token ≈ 4 characters (conservative for English code).
"""

from typing import Sequence

_CHARS_PER_TOKEN = 4  # conservative approximation
_DEFAULT_MAX_TOKENS = 12000  # leave headroom for system prompt + output
_TRUNCATION_NOTE = "\n...[TRUNCATED FOR CONTEXT BUDGET]"

EXCERPTS_HEADING = "Relevant Code Excerpts:"


def estimate_tokens(text: str) -> int:
    return max(1, len(text) // _CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Hard-truncate a string to approximately max_tokens tokens."""
    max_chars = max_tokens * _CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    # Append a note so the LLM knows content was cut
    return text[:max_chars] + _TRUNCATION_NOTE


def tail_to_tokens(text: str, max_tokens: int) -> str:
    """Keep the end of text, where tracebacks put the actual error."""
    max_chars = max_tokens * _CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return "[EARLIER OUTPUT TRUNCATED]...\n" + text[-max_chars:]


def build_code_context(
    current_code: str,
    excerpts: Sequence[str],
    max_context_tokens: int = _DEFAULT_MAX_TOKENS,
) -> str:
    """
    Return current_code plus excerpts, trimmed to the token budget.

    The caller's code is the most specific signal, so it may use up to half
    the budget. Excerpts share the rest in rank order; whatever no longer
    fits is dropped.
    """
    code = truncate_to_tokens(current_code.strip(), max_context_tokens // 2)
    if not excerpts:
        return code

    remaining = max_context_tokens - estimate_tokens(code)
    kept: list[str] = []
    for excerpt in excerpts:
        if remaining <= 0:
            break
        piece = truncate_to_tokens(excerpt, remaining)
        kept.append(piece)
        remaining -= estimate_tokens(piece)

    return f"{code}\n\n{EXCERPTS_HEADING}\n" + "\n\n".join(kept)
