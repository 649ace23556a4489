"""
API Request/Response Models (Pydantic Schemas)

Defines data validation and serialization for FastAPI endpoints.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.document import Citation, CrawledPage, SourceType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Chat
class ChatRequest(BaseModel):
    """Request model for a chat turn"""

    message: str = Field(
        ...,
        description="Visitor's question",
        examples=["What is your refund policy?"]
    )
    session_id: Optional[str] = Field(
        default=None,
        alias="sessionId",
        description="Session id returned by a previous turn (omit to start a new session)"
    )

    class Config:
        populate_by_name = True


class ChatAnswerResponse(BaseModel):
    """Non-streamed answer to a chat turn"""

    success: bool
    answer: str
    citations: List[Citation] = Field(default_factory=list)
    session_id: str = Field(..., alias="sessionId")
    error: Optional[str] = None

    class Config:
        populate_by_name = True


# Documents
class DocumentResponse(BaseModel):
    """Knowledge-base document summary"""

    id: str
    title: str
    source_type: SourceType
    source_url: Optional[str] = None
    content_length: int = Field(..., description="Characters of extracted text")
    created_at: Optional[datetime] = None


class CrawledPagesRequest(BaseModel):
    """Pages extracted by an external crawler"""

    pages: List[CrawledPage] = Field(..., min_length=1)


class IngestionReportResponse(BaseModel):
    """Per-document ingestion outcome"""

    document_id: str
    title: str
    chunks_total: int
    chunks_indexed: int
    failed_chunks: List[int] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class IngestionResponse(BaseModel):
    """Result of an upload or page ingestion request"""

    success: bool = Field(..., description="True when every chunk of every document was indexed")
    documents: List[IngestionReportResponse]
    chunks_indexed: int
    chunks_failed: int


class DeleteResponse(BaseModel):
    """Result of a document deletion"""

    success: bool
    document_id: str


# Conversations
class MessageResponse(BaseModel):
    """A stored conversation message"""

    role: str
    content: str
    citations: Optional[List[Citation]] = None
    is_complete: bool = True
    created_at: Optional[datetime] = None


class ConversationMessagesResponse(BaseModel):
    """Messages of one chat session, oldest first"""

    session_id: str
    messages: List[MessageResponse]


# Index
class IndexStatsResponse(BaseModel):
    """Vector index statistics"""

    vectors: int = Field(..., description="Number of indexed chunks")
    documents: int = Field(..., description="Documents with at least one indexed chunk")
    dimension: Optional[int] = Field(None, description="Vector dimension (null while empty)")
    storage_path: str
    last_persist_error: Optional[str] = None


class RebuildResponse(BaseModel):
    """Result of rebuilding the index from the database"""

    success: bool
    vectors: int


# Health Check
class HealthResponse(BaseModel):
    """Health check response"""

    status: str = Field(..., description="Service status", examples=["healthy"])
    database: str = Field(..., description="Database connection status", examples=["connected"])
    llm: str = Field(..., description="LLM provider status", examples=["configured"])
    index_vectors: int = Field(..., description="Vectors loaded in the index")
    version: str = Field(..., description="API version", examples=["0.1.0"])
    timestamp: datetime = Field(default_factory=_utcnow, description="Current server time")


# Error Response
class ErrorResponse(BaseModel):
    """Standard error response"""

    detail: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code for client handling")
    timestamp: datetime = Field(default_factory=_utcnow)
