"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from help_assistant.core.config import Settings, get_settings


def create_supabase_client(settings: Settings) -> Client:
    """
    Build a Supabase client with the configured request timeout.

    Raises:
        RuntimeError: If client initialization fails
    """
    try:
        options = ClientOptions(postgrest_client_timeout=settings.STORE_TIMEOUT_SECONDS)
        return create_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            options=options,
        )
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Process-wide Supabase client (cached singleton) for scripts."""
    return create_supabase_client(get_settings())
