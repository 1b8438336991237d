"""Token counting and word-boundary truncation for prompt budgets.

Uses tiktoken's cl100k_base encoding, the same family the OpenAI chat and
embedding models use.
"""

import re

import tiktoken

TRUNCATION_MARKER = "..."

_WORD_RE = re.compile(r"\S+")

# Use cl100k_base encoding (shared by the configured OpenAI models)
_encoder = tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str | None) -> int:
    """Count tokens in text using tiktoken."""
    if not text:
        return 0
    # User text may contain special-token literals; encode them as plain text
    return len(_encoder.encode(text, disallowed_special=()))


def truncate_to_tokens(text: str | None, max_tokens: int) -> str:
    """
    Truncate text to fit within a token budget.

    Keeps the longest run of whole words whose encoded length fits the
    budget and appends TRUNCATION_MARKER. Whitespace (including newlines)
    inside the kept prefix is preserved.

    Args:
        text: Text to truncate
        max_tokens: Token budget

    Returns:
        Original text if it fits, otherwise the truncated text with marker
    """
    if not text:
        return ""
    if count_tokens(text) <= max_tokens:
        return text

    word_ends = [m.end() for m in _WORD_RE.finditer(text)]

    # Prefix token counts grow with the word count; bisect on whole words
    lo, hi = 0, len(word_ends)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if count_tokens(text[: word_ends[mid - 1]]) <= max_tokens:
            lo = mid
        else:
            hi = mid - 1

    if lo == 0:
        return TRUNCATION_MARKER
    return text[: word_ends[lo - 1]] + TRUNCATION_MARKER
