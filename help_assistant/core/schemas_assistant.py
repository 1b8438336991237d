"""Pydantic schemas for the help assistant query pipeline."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DocType = Literal["overview", "howto", "capability", "limitation", "faq", "reference"]
ConfidenceLabel = Literal["high", "medium", "low", "none"]
DetectionSource = Literal["keyword", "embedding", "hybrid"]
TurnRole = Literal["user", "assistant"]
MessageRole = Literal["system", "user", "assistant"]


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Request / response
# =============================================================================


class UIContext(CamelModel):
    """Where the user is in the host application when asking."""

    current_path: str = Field(..., description='Current URL path, e.g. "/appointments"')


class AssistantQuery(CamelModel):
    """A single question submitted to the pipeline."""

    question: str
    session_id: str
    user_id: str
    ui_context: UIContext | None = None


class SourceReference(CamelModel):
    """Documentation file an answer was grounded on."""

    module: str
    submodule: str | None = None
    heading: str | None = None
    file_path: str


class AssistantResponse(CamelModel):
    """Answer returned to the caller."""

    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    confidence: ConfidenceLabel
    cached: bool
    modules_used: list[str] = Field(default_factory=list)


# =============================================================================
# Documentation chunks
# =============================================================================


class DocumentChunk(BaseModel):
    """An indexed documentation passage produced by ingestion."""

    content: str
    module: str
    submodule: str | None = None
    section: str | None = None
    doc_type: DocType = "reference"
    file_path: str
    heading: str | None = None
    token_count: int = 0
    chunk_index: int = 0
    embedding: list[float] | None = None


class RetrievedChunk(DocumentChunk):
    """A chunk scored against one query embedding."""

    id: int
    similarity: float

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RetrievedChunk":
        """Build from a search_llm_chunks result row."""
        similarity = float(row.get("similarity") or 0.0)
        return cls(
            id=int(row["id"]),
            content=row["content"],
            module=row["module"],
            submodule=row.get("submodule"),
            section=row.get("section"),
            doc_type=row.get("doc_type") or "reference",
            file_path=row["file_path"],
            heading=row.get("heading"),
            token_count=int(row.get("token_count") or 0),
            chunk_index=int(row.get("chunk_index") or 0),
            similarity=min(1.0, max(0.0, similarity)),
        )


# =============================================================================
# Modules
# =============================================================================


class SubmoduleDefinition(BaseModel):
    """Sub-feature of a module with its own keywords."""

    id: str
    name: str
    keywords: list[str] = Field(default_factory=list)


class ModuleDefinition(BaseModel):
    """Feature area of the host application."""

    id: str
    name: str
    description: str
    keywords: list[str] = Field(default_factory=list)
    submodules: list[SubmoduleDefinition] = Field(default_factory=list)
    file_paths: list[str] = Field(default_factory=list)

    @property
    def all_keywords(self) -> list[str]:
        """Module keywords followed by every submodule keyword."""
        keywords = list(self.keywords)
        for sub in self.submodules:
            keywords.extend(sub.keywords)
        return keywords


class DetectedModule(BaseModel):
    """Module implicated by a question."""

    module_id: str
    name: str
    confidence: float = Field(..., ge=0, le=1)
    source: DetectionSource


# =============================================================================
# Conversation memory
# =============================================================================


class ConversationTurn(BaseModel):
    """One message in a session."""

    role: TurnRole
    content: str
    timestamp: str


class ConversationMemory(BaseModel):
    """Recent turns for a session."""

    session_id: str
    user_id: str
    turns: list[ConversationTurn] = Field(default_factory=list)
    active_module: str | None = None


# =============================================================================
# Cache
# =============================================================================


class CachedResponse(BaseModel):
    """Answer served from the query cache."""

    response: str
    modules_used: list[str] = Field(default_factory=list)
    chunks_used: list[int] = Field(default_factory=list)
    hit_count: int = 0


# =============================================================================
# Model provider I/O
# =============================================================================


class PromptMessage(BaseModel):
    """A message sent to the generative model."""

    role: MessageRole
    content: str


class TokenUsage(BaseModel):
    """Token counters reported by a generative-model call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    """Text and usage returned by a chat provider."""

    text: str
    usage: TokenUsage | None = None
