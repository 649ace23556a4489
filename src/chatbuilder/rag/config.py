"""
RAG System Configuration

Centralized configuration for all RAG components including:
- Embedding backend and model settings
- Vector index persistence
- Chunking parameters
- Retrieval parameters
"""

from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class RAGConfig(BaseSettings):
    """Configuration for RAG system."""

    # Embedding Model
    embedding_backend: Literal["remote", "local"] = Field(
        default="remote",
        description="'remote' calls an embedding API via LiteLLM, 'local' runs sentence-transformers"
    )
    embedding_model: str = Field(
        default="text-embedding-3-large",
        description="Embedding model identifier (LiteLLM name or HuggingFace model)"
    )
    embedding_dimension: Optional[int] = Field(
        default=None,
        description="Requested output dimension (remote models that support it)"
    )
    embedding_api_key: Optional[str] = Field(
        default=None,
        description="API key for the embedding provider (falls back to OPENAI_API_KEY)"
    )
    embedding_api_base: Optional[str] = Field(
        default=None,
        description="Custom base URL for the embedding provider"
    )
    embedding_timeout: int = Field(
        default=30,
        description="Embedding request timeout in seconds"
    )
    embedding_num_retries: int = Field(
        default=2,
        description="Retries with exponential backoff on rate limits and 5xx"
    )
    embedding_concurrency: int = Field(
        default=1,
        ge=1,
        description="Concurrent embedding calls during ingestion (1 = sequential)"
    )
    use_gpu: bool = Field(
        default=False,
        description="Use GPU for local embeddings if available"
    )

    # Vector Index
    index_path: str = Field(
        default="data/vectors.json",
        description="File the vector index snapshot is written to"
    )

    # Text Chunking
    chunk_size: int = Field(
        default=500,
        ge=1,
        description="Words per chunk"
    )

    # Retrieval
    top_k: int = Field(
        default=3,
        ge=1,
        description="Number of similar chunks to retrieve per question"
    )

    class Config:
        env_prefix = "RAG_"
        case_sensitive = False
        extra = "ignore"


def get_rag_config() -> RAGConfig:
    """Get RAG configuration from environment."""
    return RAGConfig()
