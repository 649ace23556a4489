"""
Conversations Router

Read access to stored chat sessions.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_conversation_store
from ..schemas import ConversationMessagesResponse, MessageResponse
from ...db.repositories import ConversationStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/conversations/{session_id}/messages",
    response_model=ConversationMessagesResponse,
)
async def get_conversation_messages(
    session_id: str,
    conversations: ConversationStore = Depends(get_conversation_store),
):
    """
    Get the messages of a chat session in order.

    Assistant messages carry their citations; `is_complete` is false for an
    answer whose generation failed part way.
    """
    conversation = await asyncio.to_thread(conversations.get_conversation, session_id)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation not found: {session_id}"
        )

    messages = await asyncio.to_thread(conversations.list_messages, conversation.id)
    return ConversationMessagesResponse(
        session_id=session_id,
        messages=[
            MessageResponse(
                role=m.role,
                content=m.content,
                citations=m.citations,
                is_complete=m.is_complete,
                created_at=m.created_at,
            )
            for m in messages
        ],
    )
