"""
FastAPI Dependencies

Builds the service graph once per application and exposes it to routes.

Usage:
    @router.get("/endpoint")
    async def endpoint(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
        ...
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from ..agent.llm_config import LLMClient, LLMSettings
from ..agent.orchestrator import ChatOrchestrator
from ..db.repositories import (
    ChatbotStore,
    ConversationStore,
    DocumentStore,
    SqlChatbotStore,
    SqlConversationStore,
    SqlDocumentStore,
)
from ..db.session import create_db_engine, create_session_factory, init_db
from ..ingestion.ingest import IngestionService
from ..rag.config import RAGConfig
from ..rag.embedding_service import EmbeddingService, get_embedding_service
from ..rag.vector_store import VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routes need, wired together."""

    rag_config: RAGConfig
    llm_settings: LLMSettings
    index: VectorIndex
    embedding_service: EmbeddingService
    llm_client: LLMClient
    documents: DocumentStore
    conversations: ConversationStore
    chatbots: ChatbotStore
    orchestrator: ChatOrchestrator
    ingestion: IngestionService
    engine: Optional[Engine] = None


def build_services(
    rag_config: Optional[RAGConfig] = None,
    llm_settings: Optional[LLMSettings] = None,
    database_url: Optional[str] = None,
    embedding_service: Optional[EmbeddingService] = None,
    llm_client: Optional[LLMClient] = None,
) -> Services:
    """
    Create the service graph.

    Args:
        rag_config: RAG settings (loads from environment if omitted)
        llm_settings: LLM settings (loads from environment if omitted)
        database_url: Connection string (defaults to DATABASE_URL)
        embedding_service: Override for the configured embedding backend
        llm_client: Override for the LiteLLM client

    Returns:
        Services container
    """
    rag_config = rag_config or RAGConfig()
    llm_settings = llm_settings or LLMSettings()

    engine = create_db_engine(database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    documents = SqlDocumentStore(session_factory)
    conversations = SqlConversationStore(session_factory)
    chatbots = SqlChatbotStore(
        session_factory,
        default_model=llm_settings.llm_model,
        default_temperature=llm_settings.llm_temperature,
    )

    index = VectorIndex(rag_config.index_path)
    embedding_service = embedding_service or get_embedding_service(rag_config)
    llm_client = llm_client or LLMClient(llm_settings)

    orchestrator = ChatOrchestrator(
        embedding_service=embedding_service,
        index=index,
        llm_client=llm_client,
        documents=documents,
        conversations=conversations,
        chatbots=chatbots,
        top_k=rag_config.top_k,
    )
    ingestion = IngestionService(
        embedding_service=embedding_service,
        index=index,
        documents=documents,
        config=rag_config,
    )

    logger.info(
        f"Services ready: index={rag_config.index_path} ({index.count()} vectors), "
        f"embeddings={rag_config.embedding_backend}/{rag_config.embedding_model}, "
        f"llm={llm_client.build_model_string()}"
    )

    return Services(
        rag_config=rag_config,
        llm_settings=llm_settings,
        index=index,
        embedding_service=embedding_service,
        llm_client=llm_client,
        documents=documents,
        conversations=conversations,
        chatbots=chatbots,
        orchestrator=orchestrator,
        ingestion=ingestion,
        engine=engine,
    )


def get_services(request: Request) -> Services:
    """Service container attached to the app at startup."""
    return request.app.state.services


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return get_services(request).orchestrator


def get_ingestion_service(request: Request) -> IngestionService:
    return get_services(request).ingestion


def get_index(request: Request) -> VectorIndex:
    return get_services(request).index


def get_document_store(request: Request) -> DocumentStore:
    return get_services(request).documents


def get_conversation_store(request: Request) -> ConversationStore:
    return get_services(request).conversations
