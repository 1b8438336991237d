"""Per-session sliding window of recent conversation turns."""

from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil.parser import isoparse

from help_assistant.core.config import Settings
from help_assistant.core.logging import get_logger
from help_assistant.core.schemas_assistant import ConversationMemory, ConversationTurn
from help_assistant.db.assistant_store import AssistantStore

logger = get_logger(__name__)

MEMORY_HEADER = "Conversación reciente:"
ROLE_LABELS = {"user": "Usuario", "assistant": "Asistente"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(expires_at: str | datetime | None, now: datetime | None = None) -> bool:
    """True when a stored expiry timestamp is in the past. Missing expiry counts as expired."""
    if expires_at is None:
        return True
    if isinstance(expires_at, str):
        expires_at = isoparse(expires_at)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or _utcnow())


class ConversationMemoryStore:
    """Loads and updates conversation memory through the assistant store."""

    def __init__(self, store: AssistantStore, settings: Settings):
        self._store = store
        self.max_turns = settings.MEMORY_MAX_TURNS
        self.ttl = timedelta(hours=settings.MEMORY_TTL_HOURS)

    @property
    def window_size(self) -> int:
        """Turns kept: each exchange is a user turn plus an assistant turn."""
        return self.max_turns * 2

    def _parse_turns(self, raw_turns: list[dict[str, Any]] | None) -> list[ConversationTurn]:
        return [ConversationTurn.model_validate(t) for t in raw_turns or []]

    def load(self, session_id: str) -> ConversationMemory | None:
        """
        Fetch memory for a session.

        Expired records are deleted and reported as absent.

        Returns:
            Memory truncated to the most recent window, or None
        """
        record = self._store.get_memory(session_id)
        if not record:
            return None

        if is_expired(record.get("expires_at")):
            logger.debug(f"Memory for session {session_id} expired, deleting")
            try:
                self._store.delete_memory(session_id)
            except Exception as e:
                logger.warning(f"Failed to delete expired memory for {session_id}: {e}")
            return None

        turns = self._parse_turns(record.get("turns"))
        return ConversationMemory(
            session_id=record["session_id"],
            user_id=record["user_id"],
            turns=turns[-self.window_size :],
            active_module=record.get("active_module"),
        )

    def update(
        self,
        session_id: str,
        user_id: str,
        user_message: str,
        assistant_message: str,
        active_module: str | None = None,
    ) -> None:
        """
        Append one exchange, trim to the window, refresh expiry, upsert.

        Raises:
            Exception: If the store read or write fails
        """
        now = _utcnow()
        record = self._store.get_memory(session_id)
        existing: list[ConversationTurn] = []
        if record and not is_expired(record.get("expires_at"), now):
            existing = self._parse_turns(record.get("turns"))

        timestamp = now.isoformat()
        turns = existing + [
            ConversationTurn(role="user", content=user_message, timestamp=timestamp),
            ConversationTurn(role="assistant", content=assistant_message, timestamp=timestamp),
        ]
        turns = turns[-self.window_size :]

        self._store.upsert_memory(
            {
                "session_id": session_id,
                "user_id": user_id,
                "turns": [t.model_dump() for t in turns],
                "active_module": active_module,
                "expires_at": (now + self.ttl).isoformat(),
            }
        )

    def clear(self, session_id: str) -> None:
        """Delete a session's memory (no-op if absent)."""
        self._store.delete_memory(session_id)
        logger.info(f"Cleared conversation memory for session {session_id}")


def format_memory_for_prompt(memory: ConversationMemory | None) -> str:
    """
    Render turns as alternating Usuario/Asistente lines.

    Empty or missing memory renders to "" so the section is omitted entirely.
    """
    if memory is None or not memory.turns:
        return ""

    lines = [MEMORY_HEADER]
    for turn in memory.turns:
        lines.append(f"{ROLE_LABELS[turn.role]}: {turn.content}")
    return "\n".join(lines)
