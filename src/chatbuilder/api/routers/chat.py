"""
Chat Router

Streams retrieval-augmented answers as Server-Sent Events.
"""

import json
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..dependencies import get_orchestrator
from ..schemas import ChatAnswerResponse, ChatRequest
from ...agent.orchestrator import ChatOrchestrator
from ...models.chat import ChatFrame

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_frame(frame: ChatFrame) -> str:
    """Serialize one frame as an SSE `data:` event."""
    return f"data: {json.dumps(frame.model_dump(by_alias=True))}\n\n"


async def _sse_events(frames: AsyncIterator[ChatFrame]) -> AsyncIterator[str]:
    async for frame in frames:
        yield encode_frame(frame)


def get_visitor_ip(request: Request) -> Optional[str]:
    """Client IP, preferring the first X-Forwarded-For hop behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Ask the chatbot a question.

    The response is a `text/event-stream` of `data: <json>` events:
    - `{"content": "..."}` for each answer fragment
    - `{"done": true, "sessionId": "..."}` when the answer is complete
    - `{"error": "...", "sessionId": "..."}` if the turn fails

    Send the returned `sessionId` with the next message to continue the session.
    An empty message is rejected with 400 before the stream starts.
    """
    frames = orchestrator.stream_chat(
        payload.message,
        session_id=payload.session_id,
        visitor_ip=get_visitor_ip(request),
    )
    return StreamingResponse(
        _sse_events(frames),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/chat/complete", response_model=ChatAnswerResponse, response_model_by_alias=True)
async def chat_complete(
    payload: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Ask the chatbot a question and wait for the whole answer.

    Same pipeline as `/chat` without streaming; useful for integrations that
    cannot consume Server-Sent Events.
    """
    turn = await orchestrator.answer(
        payload.message,
        session_id=payload.session_id,
        visitor_ip=get_visitor_ip(request),
    )
    return ChatAnswerResponse(
        success=turn.error is None,
        answer=turn.answer,
        citations=turn.citations,
        session_id=turn.session_id,
        error=turn.error,
    )
