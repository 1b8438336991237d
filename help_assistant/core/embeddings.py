"""Embedding providers with dimension validation."""

import asyncio
from typing import Protocol

from openai import OpenAI

from help_assistant.core.config import Settings
from help_assistant.core.logging import get_logger

logger = get_logger(__name__)


class EmbeddingProvider(Protocol):
    """Turns text into vectors comparable with the stored chunk embeddings."""

    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: list[str], batch_size: int | None = None) -> list[list[float]]: ...


class OpenAIEmbeddingProvider:
    """OpenAI embeddings, shared by ingestion and the query pipeline."""

    name = "openai"

    def __init__(self, settings: Settings, client: OpenAI | None = None):
        self.model = settings.EMBEDDING_MODEL
        self.dimensions = settings.EMBEDDING_DIM
        self.default_batch_size = settings.EMBEDDING_BATCH_SIZE
        self._client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
        )

    def embed(self, text: str) -> list[float]:
        """
        Generate the embedding for a single text.

        Raises:
            ValueError: If the returned dimension doesn't match EMBEDDING_DIM
            Exception: If the OpenAI API call fails
        """
        return self._embed_request([text])[0]

    def embed_batch(self, texts: list[str], batch_size: int | None = None) -> list[list[float]]:
        """
        Generate embeddings for many texts, one request per batch.

        Args:
            texts: Texts to embed
            batch_size: Texts per request (defaults to EMBEDDING_BATCH_SIZE)

        Returns:
            Embedding vectors in input order
        """
        if not texts:
            return []

        size = batch_size or self.default_batch_size
        embeddings: list[list[float]] = []
        for start in range(0, len(texts), size):
            embeddings.extend(self._embed_request(texts[start : start + size]))
        return embeddings

    def _embed_request(self, texts: list[str]) -> list[list[float]]:
        try:
            response = self._client.embeddings.create(model=self.model, input=texts)

            embeddings = []
            for i, embedding_obj in enumerate(response.data):
                embedding = embedding_obj.embedding

                if len(embedding) != self.dimensions:
                    raise ValueError(
                        f"Embedding dimension mismatch for text {i}: "
                        f"expected {self.dimensions}, got {len(embedding)}"
                    )

                embeddings.append(embedding)

            logger.debug(
                f"Generated {len(embeddings)} embeddings using {self.model}",
                extra={"extra_data": {"model": self.model, "count": len(embeddings)}},
            )
            return embeddings

        except Exception as e:
            logger.error(f"Failed to generate embeddings: {e}")
            raise


async def embed_text_async(provider: EmbeddingProvider, text: str) -> list[float]:
    """Async wrapper around a blocking provider using the thread pool."""
    return await asyncio.to_thread(provider.embed, text)


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Create the configured embedding provider."""
    if settings.EMBEDDING_PROVIDER == "openai":
        return OpenAIEmbeddingProvider(settings)
    raise ValueError(
        f'Unknown EMBEDDING_PROVIDER: "{settings.EMBEDDING_PROVIDER}". Supported values: openai'
    )
