"""
Near-duplicate elimination for retrieved chunks.

Two passes over the chunks sorted by descending similarity:
1. Section identity: keep the best chunk per (file_path, section)
2. Lexical overlap: drop chunks whose word-set Jaccard similarity with an
   already accepted chunk reaches the threshold
"""

from help_assistant.core.schemas_assistant import RetrievedChunk

DEFAULT_JACCARD_THRESHOLD = 0.8


def _word_set(text: str) -> set[str]:
    return set(text.lower().split())


def _set_similarity(words_a: set[str], words_b: set[str]) -> float:
    union = words_a | words_b
    if not union:
        return 1.0
    return len(words_a & words_b) / len(union)


def jaccard_similarity(a: str, b: str) -> float:
    """Word-set intersection over union, case-insensitive, whitespace tokenized."""
    return _set_similarity(_word_set(a), _word_set(b))


def deduplicate_chunks(
    chunks: list[RetrievedChunk],
    jaccard_threshold: float = DEFAULT_JACCARD_THRESHOLD,
) -> list[RetrievedChunk]:
    """
    Remove near-duplicate chunks, keeping the highest-similarity member.

    Args:
        chunks: Retrieved chunks in any order
        jaccard_threshold: Word-set similarity at or above which two chunks
            are duplicates

    Returns:
        Surviving chunks in descending similarity order
    """
    if not chunks:
        return []

    # Stable sort: equal similarities keep their input order
    ordered = sorted(chunks, key=lambda c: c.similarity, reverse=True)

    seen_sections: set[tuple[str, str]] = set()
    section_survivors: list[RetrievedChunk] = []
    for chunk in ordered:
        key = (chunk.file_path, chunk.section or "")
        if key in seen_sections:
            continue
        seen_sections.add(key)
        section_survivors.append(chunk)

    accepted: list[RetrievedChunk] = []
    accepted_words: list[set[str]] = []
    for chunk in section_survivors:
        words = _word_set(chunk.content)
        if not any(_set_similarity(words, kept) >= jaccard_threshold for kept in accepted_words):
            accepted.append(chunk)
            accepted_words.append(words)

    return accepted
