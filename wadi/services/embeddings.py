"""Embedding service using an OpenAI-compatible embeddings endpoint."""

import logging
from typing import List, Optional

import httpx

from wadi.config import settings
from wadi.errors import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating text embeddings.

    Configured independently of the generation backend: the chat provider
    (Groq) has no embeddings endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        embed_dim: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the embedding service."""
        self.api_key = settings.EMBEDDING_API_KEY if api_key is None else api_key
        self.base_url = base_url or settings.EMBEDDING_BASE_URL
        self.model = model or settings.EMBEDDING_MODEL
        self.embed_dim = embed_dim or settings.EMBED_DIM
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def embed_texts(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed
            model: Override for the configured embedding model

        Returns:
            List of embedding vectors, in input order

        Raises:
            EmbeddingError: If the backend is not configured, fails, or
                returns vectors of the wrong dimension
        """
        if not self.configured:
            raise EmbeddingError(
                "Embedding provider not configured. EMBEDDING_API_KEY is required for embeddings."
            )

        payload = {"model": model or self.model, "input": texts}
        logger.info(f"Generating {len(texts)} embedding(s) with {payload['model']}")

        try:
            with httpx.Client(timeout=60.0, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/embeddings",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Embedding request failed: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e
        except ValueError as e:
            logger.error(f"Embedding response was not JSON: {e}")
            raise EmbeddingError(f"Invalid embedding response: {e}") from e

        try:
            data = sorted(result.get("data", []), key=lambda item: item.get("index", 0))
            embeddings = [list(item["embedding"]) for item in data]
        except (KeyError, AttributeError, TypeError) as e:
            logger.error(f"Malformed embedding response: {e!r}")
            raise EmbeddingError(f"Invalid embedding response: {e!r}") from e

        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: expected {len(texts)}, got {len(embeddings)}"
            )

        for idx, embedding in enumerate(embeddings):
            if len(embedding) != self.embed_dim:
                raise EmbeddingError(
                    f"Embedding {idx} dimension mismatch: expected {self.embed_dim}, got {len(embedding)}"
                )

        return embeddings

    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Embed a single text."""
        return self.embed_texts([text], model=model)[0]
