"""Pytest configuration and fixtures."""

import os

import pytest

# Set before any help_assistant import reads settings
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("ASSISTANT_ENV", "test")

from help_assistant.core.config import Settings  # noqa: E402
from tests.fakes.fake_store import FakeChatProvider, FakeEmbeddingProvider, FakeStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ASSISTANT_ENV"] = "test"


@pytest.fixture
def settings() -> Settings:
    """Settings with the default tunables and test credentials."""
    return Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="test-key",
        OPENAI_API_KEY="test-openai-key",
        ASSISTANT_ENV="test",
        ADMIN_API_KEY="test-admin-key",
        EMBEDDING_DIM=3,
    )


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def chat_provider() -> FakeChatProvider:
    return FakeChatProvider()
