"""Vector-similarity chunk retrieval under a context token budget."""

from help_assistant.core.config import Settings
from help_assistant.core.logging import get_logger
from help_assistant.core.schemas_assistant import RetrievedChunk
from help_assistant.db.assistant_store import AssistantStore

logger = get_logger(__name__)


def apply_token_budget(chunks: list[RetrievedChunk], max_tokens: int) -> list[RetrievedChunk]:
    """
    Greedily keep chunks in order until the next one would exceed the budget.

    Stops at the first chunk that does not fit; chunks are never split.
    """
    selected: list[RetrievedChunk] = []
    total = 0
    for chunk in chunks:
        if total + chunk.token_count > max_tokens:
            break
        selected.append(chunk)
        total += chunk.token_count
    return selected


class ChunkRetriever:
    """Searches stored documentation chunks for a query embedding."""

    def __init__(self, store: AssistantStore, settings: Settings):
        self._store = store
        self.top_k = settings.RETRIEVAL_TOP_K
        self.threshold = settings.RETRIEVAL_SIMILARITY_THRESHOLD
        self.max_context_tokens = settings.MAX_CONTEXT_TOKENS

    def retrieve(
        self,
        query_embedding: list[float],
        module_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        """
        Retrieve chunks above the similarity threshold.

        Args:
            query_embedding: Embedding of the current question
            module_ids: Restrict the search to these modules (None/empty = all)

        Returns:
            Chunks by descending similarity whose token counts sum to at most
            MAX_CONTEXT_TOKENS

        Raises:
            Exception: If the vector search fails
        """
        module_filter = list(module_ids) if module_ids else None
        rows = self._store.search_chunks(
            query_embedding, self.threshold, self.top_k, module_filter
        )

        candidates = [RetrievedChunk.from_row(row) for row in rows]
        chunks = apply_token_budget(candidates, self.max_context_tokens)

        logger.debug(
            f"Retrieved {len(chunks)}/{len(candidates)} chunks",
            extra={
                "extra_data": {
                    "module_filter": module_filter,
                    "tokens": sum(c.token_count for c in chunks),
                }
            },
        )
        return chunks

    def retrieve_unfiltered(self, query_embedding: list[float]) -> list[RetrievedChunk]:
        """Fallback search across every module."""
        return self.retrieve(query_embedding, None)

    def retrieve_with_fallback(
        self,
        query_embedding: list[float],
        module_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        """
        Module-filtered retrieval that drops the filter when nothing matched.

        The threshold is never relaxed; only the module filter is removed.
        """
        chunks = self.retrieve(query_embedding, module_ids)
        if not chunks and module_ids:
            logger.info(f"No chunks for modules {module_ids}, retrying without module filter")
            chunks = self.retrieve_unfiltered(query_embedding)
        return chunks
