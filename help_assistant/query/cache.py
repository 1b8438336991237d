"""Content-addressed cache of full answers with TTL expiry."""

import hashlib
import re
from datetime import datetime, timedelta, timezone

from help_assistant.core.config import Settings
from help_assistant.core.logging import get_logger
from help_assistant.core.schemas_assistant import CachedResponse
from help_assistant.db.assistant_store import AssistantStore
from help_assistant.query.memory import is_expired

logger = get_logger(__name__)

_STRIP_PUNCTUATION_RE = re.compile(r"[¿?¡!.,;:]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Lowercase, drop ¿?¡!.,;: and collapse/trim whitespace."""
    text = _STRIP_PUNCTUATION_RE.sub("", query.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def hash_query(query: str) -> str:
    """SHA-256 hex digest of the normalized query."""
    return hashlib.sha256(normalize_query(query).encode("utf-8")).hexdigest()


def build_cache_key(question: str, current_path: str | None = None) -> str:
    """Question prefixed with the UI path in brackets, so each screen caches independently."""
    if current_path:
        return f"[{current_path}] {question}"
    return question


class QueryCache:
    """Answer cache keyed by hash_query()."""

    def __init__(self, store: AssistantStore, settings: Settings):
        self._store = store
        self.ttl = timedelta(hours=settings.CACHE_TTL_HOURS)

    def check(self, query: str) -> CachedResponse | None:
        """
        Look up a cached answer.

        Expired entries are deleted and reported as a miss. A hit increments
        the stored hit count.
        """
        query_hash = hash_query(query)
        entry = self._store.get_cache_entry(query_hash)
        if not entry:
            return None

        if is_expired(entry.get("expires_at")):
            logger.debug(f"Cache entry {query_hash[:12]} expired, deleting")
            try:
                self._store.delete_cache_entry(query_hash)
            except Exception as e:
                logger.warning(f"Failed to delete expired cache entry: {e}")
            return None

        try:
            self._store.increment_cache_hits(query_hash)
        except Exception as e:
            logger.warning(f"Failed to increment cache hit count: {e}")

        return CachedResponse(
            response=entry["response"],
            modules_used=list(entry.get("modules_used") or []),
            chunks_used=[int(c) for c in entry.get("chunks_used") or []],
            hit_count=int(entry.get("hit_count") or 0) + 1,
        )

    def save(
        self,
        query: str,
        response: str,
        modules_used: list[str],
        chunk_ids: list[int],
    ) -> None:
        """
        Create or overwrite the entry for a query; resets hit count and expiry.

        Raises:
            Exception: If the store write fails
        """
        expires_at = datetime.now(timezone.utc) + self.ttl
        self._store.upsert_cache_entry(
            {
                "query_hash": hash_query(query),
                "query_text": query,
                "response": response,
                "modules_used": list(modules_used),
                "chunks_used": list(chunk_ids),
                "hit_count": 0,
                "expires_at": expires_at.isoformat(),
            }
        )

    def invalidate(self, module_id: str) -> int:
        """Delete every entry whose modules_used contains module_id."""
        count = self._store.delete_cache_entries_for_module(module_id)
        logger.info(f"Invalidated {count} cache entries for module {module_id}")
        return count

    def clear_all(self) -> int:
        count = self._store.delete_all_cache_entries()
        logger.info(f"Cleared {count} cache entries")
        return count
