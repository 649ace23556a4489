"""
Text Chunking for RAG

Splits document text into fixed-size word-count chunks that are embedded
and retrieved independently.

Strategy:
- Split on runs of whitespace
- Group chunk_size consecutive words per chunk
- No overlap; the last chunk may be shorter
"""

from typing import List
from dataclasses import dataclass

from .config import RAGConfig
from ..exceptions import ValidationError

DEFAULT_CHUNK_SIZE = 500


@dataclass
class TextChunk:
    """A chunk of text with its position in the source document."""
    text: str
    document_id: str
    chunk_index: int
    total_chunks: int
    word_count: int


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[str]:
    """
    Split text into chunks of chunk_size words.

    Args:
        text: Text to chunk
        chunk_size: Number of words per chunk

    Returns:
        List of chunk strings in document order (empty for blank text)
    """
    if chunk_size < 1:
        raise ValidationError(f"chunk_size must be >= 1, got {chunk_size}")

    words = text.split()
    return [
        " ".join(words[i:i + chunk_size])
        for i in range(0, len(words), chunk_size)
    ]


class TextChunker:
    """Splits document text into word-count chunks for embedding."""

    def __init__(self, config: RAGConfig):
        self.config = config
        self.chunk_size = config.chunk_size

    def chunk_document(self, text: str, document_id: str) -> List[TextChunk]:
        """
        Chunk a document's text and attach position metadata.

        Args:
            text: Full document text
            document_id: Owning document id

        Returns:
            List of TextChunk objects
        """
        pieces = chunk_text(text, self.chunk_size)
        total = len(pieces)

        return [
            TextChunk(
                text=piece,
                document_id=document_id,
                chunk_index=i,
                total_chunks=total,
                word_count=len(piece.split()),
            )
            for i, piece in enumerate(pieces)
        ]
