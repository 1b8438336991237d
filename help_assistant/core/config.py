"""Configuration management for the help assistant engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Provider credentials
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Environment
    ASSISTANT_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")
    ASSISTANT_LOCALE: str = Field(default="español (México)", description="Answer language")

    # Provider selection
    LLM_PROVIDER: str = Field(default="openai", description="Chat provider: openai or anthropic")
    EMBEDDING_PROVIDER: str = Field(default="openai", description="Embedding provider: openai")

    # Generative model
    LLM_MODEL: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    ANTHROPIC_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Anthropic chat model"
    )
    LLM_TEMPERATURE: float = Field(default=0.1, description="Sampling temperature")
    LLM_MAX_TOKENS: int = Field(default=1024, description="Max completion tokens")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")
    EMBEDDING_BATCH_SIZE: int = Field(default=20, description="Texts per embedding request")

    # Retrieval
    RETRIEVAL_TOP_K: int = Field(default=10, description="Max candidate chunks per search")
    RETRIEVAL_SIMILARITY_THRESHOLD: float = Field(
        default=0.5, description="Minimum chunk similarity"
    )
    MODULE_DETECTION_THRESHOLD: float = Field(
        default=0.3, description="Minimum module-summary similarity"
    )
    MAX_CONTEXT_TOKENS: int = Field(
        default=3000, description="Token ceiling for the retrieved chunk set"
    )
    JACCARD_THRESHOLD: float = Field(
        default=0.8, description="Word-set overlap at which two chunks are duplicates"
    )

    # Module detection
    MODULE_KEYWORD_BOOST: float = Field(default=0.2, description="Additive keyword boost")
    MAX_MODULES_PER_QUERY: int = Field(default=3, description="Max detected modules")

    # Cache
    CACHE_TTL_HOURS: int = Field(default=24, description="Answer cache lifetime")

    # Conversation memory
    MEMORY_MAX_TURNS: int = Field(default=2, description="Exchanges kept per session")
    MEMORY_TTL_HOURS: int = Field(default=1, description="Session memory lifetime")

    # Validation and token budgets
    MAX_QUESTION_TOKENS: int = Field(default=200, description="Max tokens in a question")
    TOKEN_BUDGET_MEMORY: int = Field(default=300, description="Prompt budget for memory")
    TOKEN_BUDGET_CAPABILITIES: int = Field(
        default=700, description="Prompt budget for capability rules"
    )
    TOKEN_BUDGET_DOCS: int = Field(default=2500, description="Prompt budget for passages")
    TOKEN_BUDGET_QUESTION: int = Field(default=200, description="Prompt budget for the question")

    # Outbound call timeouts (seconds)
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=15.0, description="Embedding call timeout")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0, description="Chat completion timeout")
    STORE_TIMEOUT_SECONDS: float = Field(default=10.0, description="Database call timeout")

    # Rate limiting
    CHAT_RATE_LIMIT_PER_MINUTE: int = Field(default=10, description="Sustained chat rate")
    CHAT_RATE_LIMIT_BURST: int = Field(default=15, description="Chat burst size")

    # Admin endpoints
    ADMIN_API_KEY: str | None = Field(default=None, description="Key for admin endpoints")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
