"""Pydantic models for chatbot configuration, conversations and stream frames."""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union
from pydantic import BaseModel, Field

from .document import Citation

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


class ChatbotConfig(BaseModel):
    """Settings the RAG pipeline reads for each chat turn."""

    id: str
    name: str = "AI Assistant"
    llm_model: str = Field(default="openai/gpt-5", description="Model id sent to the completion provider")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    class Config:
        from_attributes = True


class ConversationInfo(BaseModel):
    """A chat session."""

    id: str
    chatbot_id: str
    session_id: str
    visitor_ip: Optional[str] = None
    visitor_country: Optional[str] = None
    visitor_city: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageInfo(BaseModel):
    """A stored conversation message."""

    id: int
    conversation_id: str
    role: Literal["user", "assistant"]
    content: str
    citations: Optional[List[Citation]] = None
    is_complete: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChatStage(str, Enum):
    """Lifecycle of a single chat turn."""

    RECEIVED = "received"
    EMBEDDING_QUERY = "embedding_query"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class ContentFrame(BaseModel):
    """A fragment of the answer."""

    content: str


class DoneFrame(BaseModel):
    """Terminal frame carrying the session id for the next turn."""

    done: Literal[True] = True
    session_id: str = Field(..., alias="sessionId")

    class Config:
        populate_by_name = True


class ErrorFrame(BaseModel):
    """Terminal frame sent when the turn fails."""

    error: str
    session_id: Optional[str] = Field(None, alias="sessionId")

    class Config:
        populate_by_name = True


ChatFrame = Union[ContentFrame, DoneFrame, ErrorFrame]
