"""
Embedding Service

Turns text into fixed-length dense vectors.

Backends:
- remote (default): any LiteLLM-supported embedding API, e.g.
  OpenAI text-embedding-3-large (3072 dims)
- local: sentence-transformers model such as all-MiniLM-L6-v2 (384 dims),
  free and offline

Results are not cached: identical text is re-embedded on every call.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
import math
import os
from typing import Any, List, Optional

import litellm
from pydantic import BaseModel, Field, field_validator

from .config import RAGConfig
from ..exceptions import EmbeddingError, ValidationError

logger = logging.getLogger(__name__)


class EmbeddingResult(BaseModel):
    """Parsed embedding provider response."""

    embedding: List[float] = Field(..., description="Dense vector")
    model: Optional[str] = Field(None, description="Model that produced the vector")
    total_tokens: Optional[int] = Field(None, description="Tokens billed for the call")

    @field_validator("embedding")
    @classmethod
    def check_vector(cls, v: List[float]) -> List[float]:
        """Reject empty or non-finite vectors."""
        if not v:
            raise ValueError("embedding vector is empty")
        if not all(math.isfinite(x) for x in v):
            raise ValueError("embedding vector contains non-finite values")
        return v


def _field(obj: Any, name: str) -> Any:
    """Read a field from either a dict or an attribute-style object."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def parse_embedding_response(response: Any) -> EmbeddingResult:
    """
    Parse a LiteLLM / OpenAI-style embedding response.

    Args:
        response: Raw response with a `data` list of `{embedding: [...]}` items

    Returns:
        EmbeddingResult for the first item

    Raises:
        EmbeddingError: If the payload is missing fields or holds a bad vector
    """
    data = _field(response, "data")
    if not data:
        raise EmbeddingError("Embedding response contained no data")

    usage = _field(response, "usage")
    try:
        return EmbeddingResult(
            embedding=_field(data[0], "embedding"),
            model=_field(response, "model"),
            total_tokens=_field(usage, "total_tokens") if usage is not None else None,
        )
    except ValueError as e:
        raise EmbeddingError(f"Malformed embedding payload: {e}") from e


class EmbeddingService(ABC):
    """Base class for text embedding backends; subclasses implement `_embed`."""

    model_name: str

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ValidationError: If text is empty
            EmbeddingError: If the backend fails
        """
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")
        return await self._embed(text)

    async def get_query_embedding(self, query: str) -> List[float]:
        """
        Generate embedding for a search query.

        Queries and documents are embedded the same way.
        """
        return await self.embed(query)

    @abstractmethod
    async def _embed(self, text: str) -> List[float]:
        """Backend call for already validated text."""


class LiteLLMEmbeddingService(EmbeddingService):
    """Embeddings from a remote API through LiteLLM."""

    def __init__(self, config: RAGConfig):
        """
        Initialize remote embedding service.

        Args:
            config: RAG configuration
        """
        self.config = config
        self.model_name = config.embedding_model
        self.dimension = config.embedding_dimension
        self.api_key = config.embedding_api_key or os.getenv("OPENAI_API_KEY")

        logger.info(f"Embedding backend: remote ({self.model_name})")

    async def _embed(self, text: str) -> List[float]:
        params = {
            "model": self.model_name,
            "input": [text],
            "timeout": self.config.embedding_timeout,
            "num_retries": self.config.embedding_num_retries,
        }
        if self.dimension:
            params["dimensions"] = self.dimension
        if self.api_key:
            params["api_key"] = self.api_key
        if self.config.embedding_api_base:
            params["api_base"] = self.config.embedding_api_base

        try:
            response = await litellm.aembedding(**params)
        except Exception as e:
            logger.error(f"Embedding call failed ({self.model_name}): {e}")
            raise EmbeddingError(f"Failed to create embedding: {e}") from e

        result = parse_embedding_response(response)
        logger.debug(
            f"Embedded {len(text)} chars -> {len(result.embedding)}d "
            f"(tokens: {result.total_tokens})"
        )
        return result.embedding


class SentenceTransformerEmbeddingService(EmbeddingService):
    """Local embeddings with sentence-transformers."""

    def __init__(self, config: RAGConfig, model=None):
        """
        Initialize local embedding service.

        Args:
            config: RAG configuration
            model: Preloaded SentenceTransformer (loads config.embedding_model if omitted)
        """
        self.config = config
        self.model_name = config.embedding_model

        if model is None:
            from sentence_transformers import SentenceTransformer

            device = "cuda" if config.use_gpu else "cpu"
            logger.info(f"Loading embedding model: {self.model_name}")
            model = SentenceTransformer(self.model_name, device=device)
            logger.info(f"Model loaded on device: {device}")

        self.model = model

    async def _embed(self, text: str) -> List[float]:
        try:
            vector = await asyncio.to_thread(
                self.model.encode,
                text,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as e:
            logger.error(f"Local embedding failed ({self.model_name}): {e}")
            raise EmbeddingError(f"Failed to create embedding: {e}") from e

        try:
            return EmbeddingResult(embedding=vector.tolist(), model=self.model_name).embedding
        except ValueError as e:
            raise EmbeddingError(f"Malformed embedding from local model: {e}") from e


def get_embedding_service(config: Optional[RAGConfig] = None) -> EmbeddingService:
    """
    Get embedding service for the configured backend.

    Args:
        config: RAG configuration (optional, will load from env if not provided)

    Returns:
        EmbeddingService instance
    """
    if config is None:
        from .config import get_rag_config
        config = get_rag_config()

    if config.embedding_backend == "local":
        return SentenceTransformerEmbeddingService(config)
    return LiteLLMEmbeddingService(config)
