"""
RAG (Retrieval Augmented Generation) System

Components:
- chunker: Splits document text into word-count chunks
- embedding_service: Generates vector embeddings (remote API or local model)
- vector_store: File-backed in-memory vector index with cosine search
"""

from .config import RAGConfig, get_rag_config
from .chunker import TextChunk, TextChunker, chunk_text
from .embedding_service import EmbeddingService, get_embedding_service
from .vector_store import (
    EmbeddingRecord,
    SearchResult,
    VectorIndex,
    cosine_similarity,
    get_vector_index,
)

__all__ = [
    "RAGConfig",
    "get_rag_config",
    "TextChunk",
    "TextChunker",
    "chunk_text",
    "EmbeddingService",
    "get_embedding_service",
    "EmbeddingRecord",
    "SearchResult",
    "VectorIndex",
    "cosine_similarity",
    "get_vector_index",
]
