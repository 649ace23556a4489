"""
Store interfaces used by the RAG pipeline, with SQLAlchemy implementations.

The pipeline only depends on the Protocol classes; the Sql* classes are the
production implementations over the relational mirror.
"""

import logging
from typing import List, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from .models import Chatbot, Conversation, Document as DocumentRow, Embedding, Message
from ..models.chat import DEFAULT_SYSTEM_PROMPT, ChatbotConfig, ConversationInfo, MessageInfo
from ..models.document import Citation, Document
from ..rag.vector_store import EmbeddingRecord

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Knowledge-base documents and their embedding mirror."""

    def get_document(self, document_id: str) -> Optional[Document]: ...

    def list_documents(self) -> List[Document]: ...

    def create_document(
        self,
        title: str,
        content: str,
        source_type: str,
        source_url: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> Document: ...

    def delete_document(self, document_id: str) -> bool: ...

    def add_embedding(self, record: EmbeddingRecord) -> None: ...

    def list_embeddings(self) -> List[EmbeddingRecord]: ...


class ConversationStore(Protocol):
    """Chat sessions and their messages."""

    def get_conversation(self, session_id: str) -> Optional[ConversationInfo]: ...

    def create_conversation(
        self,
        chatbot_id: str,
        session_id: str,
        visitor_ip: Optional[str] = None,
        visitor_country: Optional[str] = None,
        visitor_city: Optional[str] = None,
    ) -> ConversationInfo: ...

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        citations: Optional[Sequence[Citation]] = None,
        is_complete: bool = True,
    ) -> MessageInfo: ...

    def list_messages(self, conversation_id: str) -> List[MessageInfo]: ...


class ChatbotStore(Protocol):
    """Chatbot configuration lookup."""

    def get_or_create_default(self) -> ChatbotConfig: ...


class SqlDocumentStore:
    """DocumentStore backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_document(self, document_id: str) -> Optional[Document]:
        with self.session_factory() as session:
            row = session.get(DocumentRow, document_id)
            return Document.model_validate(row) if row else None

    def list_documents(self) -> List[Document]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(DocumentRow).order_by(DocumentRow.created_at.desc())
            ).all()
            return [Document.model_validate(r) for r in rows]

    def create_document(
        self,
        title: str,
        content: str,
        source_type: str,
        source_url: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> Document:
        with self.session_factory() as session:
            row = DocumentRow(
                title=title,
                content=content,
                source_type=source_type,
                source_url=source_url,
                company_id=company_id,
            )
            session.add(row)
            session.commit()
            logger.info(f"Created document {row.id} ({source_type}): {title}")
            return Document.model_validate(row)

    def delete_document(self, document_id: str) -> bool:
        """Delete a document and its embedding rows. Returns False if it did not exist."""
        with self.session_factory() as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            logger.info(f"Deleted document {document_id}")
            return True

    def add_embedding(self, record: EmbeddingRecord) -> None:
        with self.session_factory() as session:
            session.add(
                Embedding(
                    id=record.id,
                    document_id=record.document_id,
                    chunk_text=record.chunk_text,
                    chunk_index=record.chunk_index,
                    embedding=list(record.embedding),
                )
            )
            session.commit()

    def list_embeddings(self) -> List[EmbeddingRecord]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(Embedding).order_by(Embedding.created_at, Embedding.chunk_index)
            ).all()
            return [
                EmbeddingRecord(
                    id=r.id,
                    document_id=r.document_id,
                    chunk_text=r.chunk_text,
                    chunk_index=r.chunk_index,
                    embedding=r.embedding,
                )
                for r in rows
            ]


class SqlConversationStore:
    """ConversationStore backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_conversation(self, session_id: str) -> Optional[ConversationInfo]:
        with self.session_factory() as session:
            row = session.scalars(
                select(Conversation).where(Conversation.session_id == session_id)
            ).first()
            return ConversationInfo.model_validate(row) if row else None

    def create_conversation(
        self,
        chatbot_id: str,
        session_id: str,
        visitor_ip: Optional[str] = None,
        visitor_country: Optional[str] = None,
        visitor_city: Optional[str] = None,
    ) -> ConversationInfo:
        with self.session_factory() as session:
            row = Conversation(
                chatbot_id=chatbot_id,
                session_id=session_id,
                visitor_ip=visitor_ip,
                visitor_country=visitor_country,
                visitor_city=visitor_city,
            )
            session.add(row)
            session.commit()
            logger.info(f"Started conversation {row.id} for session {session_id}")
            return ConversationInfo.model_validate(row)

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        citations: Optional[Sequence[Citation]] = None,
        is_complete: bool = True,
    ) -> MessageInfo:
        with self.session_factory() as session:
            row = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                citations=[c.model_dump() for c in citations] if citations is not None else None,
                is_complete=is_complete,
            )
            session.add(row)
            session.commit()
            return MessageInfo.model_validate(row)

    def list_messages(self, conversation_id: str) -> List[MessageInfo]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.id)
            ).all()
            return [MessageInfo.model_validate(r) for r in rows]


class SqlChatbotStore:
    """ChatbotStore backed by SQLAlchemy; creates a default chatbot on first use."""

    def __init__(
        self,
        session_factory: sessionmaker,
        default_model: str = "openai/gpt-5",
        default_temperature: float = 0.7,
    ):
        self.session_factory = session_factory
        self.default_model = default_model
        self.default_temperature = default_temperature

    def get_or_create_default(self) -> ChatbotConfig:
        with self.session_factory() as session:
            row = session.scalars(select(Chatbot).order_by(Chatbot.created_at)).first()
            if row is None:
                row = Chatbot(
                    name="AI Assistant",
                    llm_model=self.default_model,
                    temperature=self.default_temperature,
                    system_prompt=DEFAULT_SYSTEM_PROMPT,
                )
                session.add(row)
                session.commit()
                logger.info(f"Created default chatbot {row.id} ({row.llm_model})")

            return ChatbotConfig(
                id=row.id,
                name=row.name,
                llm_model=row.llm_model,
                temperature=row.temperature,
                system_prompt=row.system_prompt or DEFAULT_SYSTEM_PROMPT,
            )
