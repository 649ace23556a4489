"""Pydantic data models for documents, conversations and chat frames."""

from .document import Citation, CrawledPage, Document, SourceType
from .chat import (
    ChatbotConfig,
    ChatFrame,
    ChatStage,
    ContentFrame,
    ConversationInfo,
    DoneFrame,
    ErrorFrame,
    MessageInfo,
)

__all__ = [
    "Citation",
    "CrawledPage",
    "Document",
    "SourceType",
    "ChatbotConfig",
    "ChatFrame",
    "ChatStage",
    "ContentFrame",
    "ConversationInfo",
    "DoneFrame",
    "ErrorFrame",
    "MessageInfo",
]
