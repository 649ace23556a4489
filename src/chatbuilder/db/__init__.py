"""Database module for the chatbot knowledge base."""

from .base import Base
from .session import create_db_engine, create_session_factory, get_database_url, init_db
from .models import Chatbot, Conversation, Document, Embedding, Message
from .repositories import (
    ChatbotStore,
    ConversationStore,
    DocumentStore,
    SqlChatbotStore,
    SqlConversationStore,
    SqlDocumentStore,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "get_database_url",
    "init_db",
    "Chatbot",
    "Conversation",
    "Document",
    "Embedding",
    "Message",
    "ChatbotStore",
    "ConversationStore",
    "DocumentStore",
    "SqlChatbotStore",
    "SqlConversationStore",
    "SqlDocumentStore",
]
