"""Voyage AI embedding service for generating vector embeddings."""

import logging
from typing import Any, Literal

import httpx

from cartpilot.core.config import settings
from cartpilot.core.exceptions import EmbeddingInputError, UpstreamError
from cartpilot.core.http_retry import post_with_retry

logger = logging.getLogger(__name__)

# Voyage accepts at most 128 inputs per request
MAX_BATCH_SIZE = 128
REQUEST_TIMEOUT_SECONDS = 30.0

InputType = Literal["document", "query"]


class EmbeddingService:
    """Service for generating embeddings using Voyage AI.

    ``document`` mode is used when indexing catalog and FAQ content and
    ``query`` mode when embedding a shopper's search text; Voyage scores the
    two differently.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.voyage_api_key
        self.model = model or settings.embedding_model
        self.api_url = api_url or settings.voyage_api_url
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        client: httpx.AsyncClient,
        inputs: str | list[str],
        input_type: InputType,
    ) -> list[dict[str, Any]]:
        response = await post_with_retry(
            client,
            self.api_url,
            service="Voyage AI",
            json={"model": self.model, "input": inputs, "input_type": input_type},
            headers=self.headers,
        )
        data: list[dict[str, Any]] = response.json().get("data", [])
        return data

    async def _embed_one(self, text: str, input_type: InputType) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingInputError("Text to embed cannot be empty")

        async with httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            data = await self._request(client, text, input_type)

        if not data:
            raise UpstreamError("Voyage AI", 200, "response contained no embeddings")
        embedding: list[float] = data[0]["embedding"]
        return embedding

    async def embed(self, text: str) -> list[float]:
        """Generate a document-mode embedding for indexing.

        Args:
            text: The text to embed

        Returns:
            List of floats representing the embedding vector
        """
        return await self._embed_one(text, "document")

    async def embed_query(self, text: str) -> list[float]:
        """Generate a query-mode embedding for semantic search.

        Args:
            text: The shopper's search text

        Returns:
            List of floats representing the embedding vector
        """
        return await self._embed_one(text, "query")

    async def embed_batch(
        self,
        texts: list[str],
        input_type: InputType = "document",
    ) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Inputs are sent in chunks of at most ``MAX_BATCH_SIZE``. Voyage tags
        each vector with its index inside the request, so results are placed
        by that index rather than by response order.

        Args:
            texts: List of texts to embed; every entry must be non-blank

        Returns:
            List of embedding vectors in the same order as input
        """
        if not texts:
            return []

        blank = [i for i, text in enumerate(texts) if not text or not text.strip()]
        if blank:
            raise EmbeddingInputError(f"Texts at positions {blank} are empty")

        results: list[list[float] | None] = [None] * len(texts)

        async with httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            for start in range(0, len(texts), MAX_BATCH_SIZE):
                chunk = texts[start : start + MAX_BATCH_SIZE]
                data = await self._request(client, chunk, input_type)
                logger.debug(
                    "Embedded chunk of %d texts starting at %d", len(chunk), start
                )

                for item in data:
                    index = int(item["index"])
                    if not 0 <= index < len(chunk):
                        raise UpstreamError(
                            "Voyage AI", 200, f"embedding index {index} out of range"
                        )
                    results[start + index] = item["embedding"]

        missing = [i for i, vector in enumerate(results) if vector is None]
        if missing:
            raise UpstreamError("Voyage AI", 200, f"no embeddings returned for {missing}")

        return [vector for vector in results if vector is not None]


# Singleton instance
_embedding_service: EmbeddingService | None = None


def get_embedding_service() -> EmbeddingService:
    """Get or create embedding service instance."""
    global _embedding_service  # noqa: PLW0603
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
