"""Database operations for the assistant: vector search, answer cache, session memory.

The query pipeline only reads documentation chunks and module summaries; they
are written by the ingestion job. Cache and memory rows are written through
upserts keyed on their natural key so concurrent requests never lose updates.
"""

from typing import Any, Protocol

from supabase import Client

from help_assistant.core.logging import get_logger

logger = get_logger(__name__)

CHUNKS_TABLE = "llm_docs_chunks"
CACHE_TABLE = "llm_query_cache"
MEMORY_TABLE = "llm_conversation_memory"


class AssistantStore(Protocol):
    """Narrow storage interface used by the pipeline components."""

    def search_chunks(
        self,
        query_embedding: list[float],
        threshold: float,
        limit: int,
        module_filter: list[str] | None,
    ) -> list[dict[str, Any]]: ...

    def search_module_summaries(
        self, query_embedding: list[float], threshold: float, limit: int
    ) -> list[dict[str, Any]]: ...

    def get_cache_entry(self, query_hash: str) -> dict[str, Any] | None: ...

    def upsert_cache_entry(self, row: dict[str, Any]) -> None: ...

    def increment_cache_hits(self, query_hash: str) -> None: ...

    def delete_cache_entry(self, query_hash: str) -> None: ...

    def delete_cache_entries_for_module(self, module_id: str) -> int: ...

    def delete_all_cache_entries(self) -> int: ...

    def count_cache_entries(self) -> int: ...

    def count_chunks(self) -> int: ...

    def get_memory(self, session_id: str) -> dict[str, Any] | None: ...

    def upsert_memory(self, row: dict[str, Any]) -> None: ...

    def delete_memory(self, session_id: str) -> None: ...


class SupabaseAssistantStore:
    """AssistantStore backed by Supabase tables and pgvector RPC functions."""

    def __init__(self, client: Client):
        self._client = client

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_chunks(
        self,
        query_embedding: list[float],
        threshold: float,
        limit: int,
        module_filter: list[str] | None,
    ) -> list[dict[str, Any]]:
        """
        Cosine-similarity search over documentation chunks.

        Args:
            query_embedding: Query embedding vector
            threshold: Minimum similarity
            limit: Max rows
            module_filter: Restrict to these modules (None = all modules)

        Returns:
            Rows ordered by descending similarity

        Raises:
            Exception: If the RPC call fails
        """
        try:
            response = self._client.rpc(
                "search_llm_chunks",
                {
                    "query_embedding": query_embedding,
                    "match_threshold": threshold,
                    "match_count": limit,
                    "filter_modules": module_filter or None,
                },
            ).execute()
            return response.data or []

        except Exception as e:
            logger.error(f"Failed to search chunks: {e}")
            raise

    def search_module_summaries(
        self, query_embedding: list[float], threshold: float, limit: int
    ) -> list[dict[str, Any]]:
        """Similarity search against the per-module summary vectors."""
        try:
            response = self._client.rpc(
                "detect_llm_modules",
                {
                    "query_embedding": query_embedding,
                    "match_threshold": threshold,
                    "match_count": limit,
                },
            ).execute()
            return response.data or []

        except Exception as e:
            logger.error(f"Failed to search module summaries: {e}")
            raise

    def count_chunks(self) -> int:
        response = self._client.table(CHUNKS_TABLE).select("id", count="exact").limit(1).execute()
        return response.count or 0

    # ------------------------------------------------------------------
    # Query cache
    # ------------------------------------------------------------------

    def get_cache_entry(self, query_hash: str) -> dict[str, Any] | None:
        response = (
            self._client.table(CACHE_TABLE)
            .select("*")
            .eq("query_hash", query_hash)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def upsert_cache_entry(self, row: dict[str, Any]) -> None:
        self._client.table(CACHE_TABLE).upsert(row, on_conflict="query_hash").execute()

    def increment_cache_hits(self, query_hash: str) -> None:
        # Server-side increment so concurrent hits are all counted
        self._client.rpc("increment_llm_cache_hit", {"p_query_hash": query_hash}).execute()

    def delete_cache_entry(self, query_hash: str) -> None:
        self._client.table(CACHE_TABLE).delete().eq("query_hash", query_hash).execute()

    def delete_cache_entries_for_module(self, module_id: str) -> int:
        response = (
            self._client.table(CACHE_TABLE)
            .delete()
            .contains("modules_used", [module_id])
            .execute()
        )
        return len(response.data or [])

    def delete_all_cache_entries(self) -> int:
        response = self._client.table(CACHE_TABLE).delete().neq("query_hash", "").execute()
        return len(response.data or [])

    def count_cache_entries(self) -> int:
        response = (
            self._client.table(CACHE_TABLE).select("query_hash", count="exact").limit(1).execute()
        )
        return response.count or 0

    # ------------------------------------------------------------------
    # Conversation memory
    # ------------------------------------------------------------------

    def get_memory(self, session_id: str) -> dict[str, Any] | None:
        response = (
            self._client.table(MEMORY_TABLE)
            .select("*")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def upsert_memory(self, row: dict[str, Any]) -> None:
        self._client.table(MEMORY_TABLE).upsert(row, on_conflict="session_id").execute()

    def delete_memory(self, session_id: str) -> None:
        self._client.table(MEMORY_TABLE).delete().eq("session_id", session_id).execute()


SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE IF NOT EXISTS llm_docs_chunks (
    id BIGSERIAL PRIMARY KEY,
    content TEXT NOT NULL,
    module TEXT NOT NULL,
    submodule TEXT,
    section TEXT,
    doc_type TEXT NOT NULL,
    file_path TEXT NOT NULL,
    heading TEXT,
    token_count INT NOT NULL,
    chunk_index INT NOT NULL,
    embedding vector(1536) NOT NULL
);
CREATE INDEX IF NOT EXISTS llm_docs_chunks_embedding_idx
    ON llm_docs_chunks USING hnsw (embedding vector_cosine_ops);

CREATE TABLE IF NOT EXISTS llm_module_summaries (
    module_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    embedding vector(1536) NOT NULL
);

CREATE TABLE IF NOT EXISTS llm_query_cache (
    query_hash TEXT PRIMARY KEY,
    query_text TEXT NOT NULL,
    response TEXT NOT NULL,
    modules_used TEXT[] NOT NULL DEFAULT '{}',
    chunks_used BIGINT[] NOT NULL DEFAULT '{}',
    hit_count INT NOT NULL DEFAULT 0,
    expires_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS llm_conversation_memory (
    session_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    turns JSONB NOT NULL DEFAULT '[]'::jsonb,
    active_module TEXT,
    expires_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS llm_token_usage (
    id BIGSERIAL PRIMARY KEY,
    account_id TEXT NOT NULL,
    endpoint TEXT NOT NULL,
    model TEXT NOT NULL,
    provider TEXT NOT NULL,
    prompt_tokens INT NOT NULL,
    completion_tokens INT NOT NULL,
    total_tokens INT NOT NULL,
    estimated_cost_usd NUMERIC(12, 6) NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE OR REPLACE FUNCTION search_llm_chunks(
    query_embedding vector(1536),
    match_threshold FLOAT,
    match_count INT,
    filter_modules TEXT[] DEFAULT NULL
) RETURNS TABLE (
    id BIGINT, content TEXT, module TEXT, submodule TEXT, section TEXT, doc_type TEXT,
    file_path TEXT, heading TEXT, token_count INT, chunk_index INT, similarity FLOAT
) LANGUAGE sql STABLE AS $$
    SELECT c.id, c.content, c.module, c.submodule, c.section, c.doc_type,
           c.file_path, c.heading, c.token_count, c.chunk_index,
           1 - (c.embedding <=> query_embedding) AS similarity
    FROM llm_docs_chunks c
    WHERE (filter_modules IS NULL OR c.module = ANY(filter_modules))
      AND 1 - (c.embedding <=> query_embedding) >= match_threshold
    ORDER BY c.embedding <=> query_embedding
    LIMIT match_count;
$$;

CREATE OR REPLACE FUNCTION detect_llm_modules(
    query_embedding vector(1536),
    match_threshold FLOAT,
    match_count INT
) RETURNS TABLE (module_id TEXT, name TEXT, description TEXT, similarity FLOAT)
LANGUAGE sql STABLE AS $$
    SELECT m.module_id, m.name, m.description,
           1 - (m.embedding <=> query_embedding) AS similarity
    FROM llm_module_summaries m
    WHERE 1 - (m.embedding <=> query_embedding) >= match_threshold
    ORDER BY m.embedding <=> query_embedding
    LIMIT match_count;
$$;

CREATE OR REPLACE FUNCTION increment_llm_cache_hit(p_query_hash TEXT)
RETURNS VOID LANGUAGE sql AS $$
    UPDATE llm_query_cache SET hit_count = hit_count + 1 WHERE query_hash = p_query_hash;
$$;
"""
