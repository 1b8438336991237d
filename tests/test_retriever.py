"""Tests for token-budgeted chunk retrieval."""

import pytest

from help_assistant.core.schemas_assistant import RetrievedChunk
from help_assistant.query.retriever import ChunkRetriever, apply_token_budget
from tests.fakes.fake_store import QUERY_VECTOR


@pytest.fixture
def retriever(fake_store, settings):
    return ChunkRetriever(fake_store, settings)


def _chunk(chunk_id: int, tokens: int, similarity: float = 0.8) -> RetrievedChunk:
    return RetrievedChunk(
        id=chunk_id,
        content=f"chunk {chunk_id}",
        module="appointments",
        file_path=f"doc-{chunk_id}.md",
        token_count=tokens,
        similarity=similarity,
    )


def test_apply_token_budget_stops_at_first_overflow():
    chunks = [_chunk(1, 1000), _chunk(2, 1500), _chunk(3, 800), _chunk(4, 100)]

    selected = apply_token_budget(chunks, 3000)

    # Chunk 3 would bring the total to 3300; chunk 4 would fit but is not considered
    assert [c.id for c in selected] == [1, 2]


def test_apply_token_budget_allows_exact_fit():
    selected = apply_token_budget([_chunk(1, 2000), _chunk(2, 1000)], 3000)
    assert [c.id for c in selected] == [1, 2]


def test_retrieve_orders_by_similarity_and_applies_threshold(retriever, fake_store):
    fake_store.add_chunk(1, "baja", "appointments", similarity=0.55)
    fake_store.add_chunk(2, "alta", "appointments", similarity=0.9)
    fake_store.add_chunk(3, "irrelevante", "appointments", similarity=0.2)

    chunks = retriever.retrieve(QUERY_VECTOR, ["appointments"])

    assert [c.id for c in chunks] == [2, 1]
    assert chunks[0].similarity == pytest.approx(0.9)
    assert all(0.0 <= c.similarity <= 1.0 for c in chunks)


def test_retrieve_passes_module_filter(retriever, fake_store, settings):
    fake_store.add_chunk(1, "citas", "appointments", similarity=0.8)
    fake_store.add_chunk(2, "blog", "blog", similarity=0.9)

    chunks = retriever.retrieve(QUERY_VECTOR, ["appointments"])

    assert [c.module for c in chunks] == ["appointments"]
    _, threshold, limit, module_filter = fake_store.calls_to("search_chunks")[0]
    assert threshold == settings.RETRIEVAL_SIMILARITY_THRESHOLD
    assert limit == settings.RETRIEVAL_TOP_K
    assert module_filter == ["appointments"]


def test_retrieve_empty_module_list_means_no_filter(retriever, fake_store):
    fake_store.add_chunk(1, "blog", "blog", similarity=0.9)

    chunks = retriever.retrieve(QUERY_VECTOR, [])

    assert len(chunks) == 1
    assert fake_store.calls_to("search_chunks")[0][3] is None


def test_retrieve_never_exceeds_context_budget(retriever, fake_store, settings):
    for i in range(1, 11):
        fake_store.add_chunk(i, f"chunk {i}", "appointments", similarity=0.9 - i * 0.01, token_count=700)

    chunks = retriever.retrieve(QUERY_VECTOR)

    assert sum(c.token_count for c in chunks) <= settings.MAX_CONTEXT_TOKENS
    assert len(chunks) == 4


def test_retrieve_with_fallback_drops_filter_when_empty(retriever, fake_store):
    fake_store.add_chunk(1, "citas", "appointments", similarity=0.8)

    chunks = retriever.retrieve_with_fallback(QUERY_VECTOR, ["blog"])

    assert [c.id for c in chunks] == [1]
    filters = [args[3] for args in fake_store.calls_to("search_chunks")]
    assert filters == [["blog"], None]


def test_retrieve_with_fallback_keeps_filtered_results(retriever, fake_store):
    fake_store.add_chunk(1, "blog", "blog", similarity=0.8)

    retriever.retrieve_with_fallback(QUERY_VECTOR, ["blog"])

    assert len(fake_store.calls_to("search_chunks")) == 1


def test_retrieve_propagates_search_errors(retriever, fake_store):
    fake_store.failing.add("search_chunks")

    with pytest.raises(RuntimeError):
        retriever.retrieve(QUERY_VECTOR, ["appointments"])
