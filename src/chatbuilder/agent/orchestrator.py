"""
Chat Orchestrator for the RAG chatbot.

Coordinates the embedding service, vector index and LLM client to answer a
visitor's question from the knowledge base, with citations.

Flow per turn:
1. Store the user message (conversation created on first message)
2. Embed the question
3. Retrieve the top-k most similar chunks
4. Resolve each chunk's document for citation title/URL
5. Build a grounded prompt and stream the model's answer
6. Store the assistant message with its citations
7. Emit a terminal frame carrying the session id
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .llm_config import ChatMessage, LLMClient
from .prompts import build_chat_messages, build_context
from ..db.repositories import ChatbotStore, ConversationStore, DocumentStore
from ..exceptions import ValidationError
from ..models.chat import (
    ChatbotConfig,
    ChatFrame,
    ChatStage,
    ContentFrame,
    ConversationInfo,
    DoneFrame,
    ErrorFrame,
)
from ..models.document import Citation, Document
from ..rag.embedding_service import EmbeddingService
from ..rag.vector_store import SearchResult, VectorIndex

logger = logging.getLogger(__name__)

UNKNOWN_DOCUMENT_TITLE = "Unknown"
GENERIC_ERROR = "Failed to process chat"


@dataclass
class ChatTurn:
    """State of one question/answer exchange."""

    message: str
    session_id: str
    visitor_ip: Optional[str] = None
    stage: ChatStage = ChatStage.RECEIVED
    conversation_id: Optional[str] = None
    citations: List[Citation] = field(default_factory=list)
    answer: str = ""
    error: Optional[str] = None
    started_at: float = field(default_factory=time.time)

    @property
    def elapsed_ms(self) -> int:
        return int((time.time() - self.started_at) * 1000)


class ChatOrchestrator:
    """
    Retrieval-augmented chat pipeline.

    Stateless between turns: no earlier messages are replayed into the prompt.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        index: VectorIndex,
        llm_client: LLMClient,
        documents: DocumentStore,
        conversations: ConversationStore,
        chatbots: ChatbotStore,
        top_k: int = 3,
    ):
        """
        Initialize orchestrator.

        Args:
            embedding_service: Embeds the visitor's question
            index: Vector index searched for context
            llm_client: Completion client used to generate the answer
            documents: Document lookup for citations
            conversations: Conversation/message persistence
            chatbots: Chatbot configuration lookup
            top_k: Number of chunks retrieved per question
        """
        self.embedding_service = embedding_service
        self.index = index
        self.llm_client = llm_client
        self.documents = documents
        self.conversations = conversations
        self.chatbots = chatbots
        self.top_k = top_k

    def start_turn(
        self,
        message: str,
        session_id: Optional[str] = None,
        visitor_ip: Optional[str] = None,
    ) -> ChatTurn:
        """
        Validate a question and open a turn.

        Raises:
            ValidationError: If the message is empty
        """
        if not message or not message.strip():
            raise ValidationError("Message is required")

        return ChatTurn(
            message=message,
            session_id=session_id or str(uuid.uuid4()),
            visitor_ip=visitor_ip,
        )

    def stream_chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        visitor_ip: Optional[str] = None,
    ) -> AsyncIterator[ChatFrame]:
        """
        Answer a question as a stream of frames.

        Validation happens before the iterator is returned, so an empty message
        raises here rather than producing an error frame.
        """
        turn = self.start_turn(message, session_id, visitor_ip)
        return self.run_turn(turn)

    async def run_turn(self, turn: ChatTurn) -> AsyncIterator[ChatFrame]:
        """
        Run a turn, yielding ContentFrames then one DoneFrame or ErrorFrame.

        If generation fails after fragments were sent, the partial answer is
        stored with is_complete=False before the ErrorFrame.
        """
        logger.info(f"Chat turn for session {turn.session_id}: {turn.message[:100]}")

        try:
            chatbot, messages = await self._prepare(turn)
        except Exception as e:
            yield self._fail(turn, e)
            return

        self._advance(turn, ChatStage.GENERATING)
        parts: List[str] = []
        stream = self.llm_client.stream_completion(
            messages,
            model=chatbot.llm_model,
            temperature=chatbot.temperature,
        )
        try:
            async for fragment in stream:
                parts.append(fragment)
                yield ContentFrame(content=fragment)
        except Exception as e:
            turn.answer = "".join(parts)
            if parts:
                await self._store_partial_answer(turn)
            yield self._fail(turn, e)
            return
        finally:
            # Also runs when the consumer closes us mid-answer
            close = getattr(stream, "aclose", None)
            if close is not None:
                await close()

        turn.answer = "".join(parts)

        try:
            await self._store_answer(turn, is_complete=True)
        except Exception as e:
            yield self._fail(turn, e)
            return

        self._advance(turn, ChatStage.DONE)
        logger.info(
            f"Chat turn done: session={turn.session_id}, "
            f"chars={len(turn.answer)}, citations={len(turn.citations)}, "
            f"time={turn.elapsed_ms}ms"
        )
        yield DoneFrame(session_id=turn.session_id)

    async def answer(
        self,
        message: str,
        session_id: Optional[str] = None,
        visitor_ip: Optional[str] = None,
    ) -> ChatTurn:
        """
        Answer a question without streaming.

        Uses the blocking completion call; the returned turn carries the answer,
        citations and final stage (DONE or FAILED with an error).

        Raises:
            ValidationError: If the message is empty
        """
        turn = self.start_turn(message, session_id, visitor_ip)

        try:
            chatbot, messages = await self._prepare(turn)
            self._advance(turn, ChatStage.GENERATING)
            turn.answer = await self.llm_client.get_completion(
                messages,
                model=chatbot.llm_model,
                temperature=chatbot.temperature,
            )
            await self._store_answer(turn, is_complete=True)
        except Exception as e:
            self._fail(turn, e)
            return turn

        self._advance(turn, ChatStage.DONE)
        return turn

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def _prepare(self, turn: ChatTurn) -> Tuple[ChatbotConfig, List[ChatMessage]]:
        """Store the user message, retrieve context and build the prompt."""
        chatbot = await asyncio.to_thread(self.chatbots.get_or_create_default)
        conversation = await asyncio.to_thread(self._get_or_create_conversation, chatbot, turn)
        turn.conversation_id = conversation.id

        await asyncio.to_thread(
            self.conversations.append_message,
            conversation.id,
            "user",
            turn.message,
        )

        self._advance(turn, ChatStage.EMBEDDING_QUERY)
        query_vector = await self.embedding_service.get_query_embedding(turn.message)

        self._advance(turn, ChatStage.RETRIEVING)
        results = self.index.search(query_vector, self.top_k)
        retrieved = await asyncio.to_thread(self._resolve_citations, results)

        turn.citations = [citation for citation, _ in retrieved]
        context = build_context([(citation.title, r.chunk_text) for citation, r in retrieved])
        if results:
            logger.info(
                f"Retrieved {len(results)} chunks "
                f"(best similarity: {results[0].similarity:.3f})"
            )
        else:
            logger.info("Retrieved 0 chunks, answering without context")

        return chatbot, build_chat_messages(chatbot.system_prompt, context, turn.message)

    def _get_or_create_conversation(self, chatbot: ChatbotConfig, turn: ChatTurn) -> ConversationInfo:
        conversation = self.conversations.get_conversation(turn.session_id)
        if conversation is None:
            conversation = self.conversations.create_conversation(
                chatbot_id=chatbot.id,
                session_id=turn.session_id,
                visitor_ip=turn.visitor_ip,
            )
        return conversation

    def _resolve_citations(self, results: List[SearchResult]) -> List[Tuple[Citation, SearchResult]]:
        """Look up each hit's document; deleted documents become "Unknown"."""
        cache: Dict[str, Optional[Document]] = {}
        resolved = []
        for result in results:
            if result.document_id not in cache:
                cache[result.document_id] = self.documents.get_document(result.document_id)
            document = cache[result.document_id]

            if document is None:
                logger.warning(f"Chunk {result.id} refers to missing document {result.document_id}")
                citation = Citation(title=UNKNOWN_DOCUMENT_TITLE, url=None)
            else:
                citation = Citation(title=document.title, url=document.source_url)
            resolved.append((citation, result))
        return resolved

    async def _store_answer(self, turn: ChatTurn, is_complete: bool) -> None:
        self._advance(turn, ChatStage.PERSISTING)
        await asyncio.to_thread(
            self.conversations.append_message,
            turn.conversation_id,
            "assistant",
            turn.answer,
            turn.citations,
            is_complete,
        )

    async def _store_partial_answer(self, turn: ChatTurn) -> None:
        try:
            await self._store_answer(turn, is_complete=False)
            logger.warning(
                f"Stored partial answer ({len(turn.answer)} chars) for session {turn.session_id}"
            )
        except Exception as e:
            logger.error(f"Could not store partial answer for session {turn.session_id}: {e}")

    # ------------------------------------------------------------------
    # State tracking
    # ------------------------------------------------------------------

    def _advance(self, turn: ChatTurn, stage: ChatStage) -> None:
        logger.debug(f"Session {turn.session_id}: {turn.stage.value} -> {stage.value}")
        turn.stage = stage

    def _fail(self, turn: ChatTurn, error: Exception) -> ErrorFrame:
        failed_stage = turn.stage
        turn.stage = ChatStage.FAILED

        # Provider and store errors stay in the log; visitors only see our own validation text
        if isinstance(error, ValidationError):
            turn.error = str(error)
            logger.error(f"Chat turn failed during {failed_stage.value}: {error}")
        else:
            turn.error = GENERIC_ERROR
            logger.error(f"Chat turn failed during {failed_stage.value}: {error}", exc_info=True)

        return ErrorFrame(error=turn.error, session_id=turn.session_id)
