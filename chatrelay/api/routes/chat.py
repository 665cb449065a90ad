"""Chat API endpoints with streaming support."""

from typing import Any

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from chatrelay.api.deps import ClientId, Filter, Orchestrator
from chatrelay.api.schemas import (
    ChatReply,
    ChatRequest,
    DeleteResponse,
    HistoryMessage,
    HistoryResponse,
    TokenUsageSchema,
    UsageResponse,
)
from chatrelay.core.logging import get_logger
from chatrelay.services.chat import ChatOrchestrator, sse_event
from chatrelay.services.filter import MessageFilter

logger = get_logger(__name__)
router = APIRouter(prefix="/chat", tags=["Chat"])


def _build_context(
    request: ChatRequest, message_filter: MessageFilter, client_id: str
) -> tuple[str, dict[str, Any]]:
    context = request.to_context()
    if "sessionId" not in context:
        context["rate_limit_key"] = client_id
    filtered = message_filter.apply(request.message, context)
    return filtered.message, filtered.context


def _usage_schema(orchestrator: ChatOrchestrator) -> TokenUsageSchema | None:
    usage = orchestrator.get_last_token_usage()
    return TokenUsageSchema(**usage.to_dict()) if usage else None


@router.post(
    "",
    response_model=ChatReply,
    summary="Send message and receive a complete response",
    responses={
        429: {"description": "Rate limit exceeded"},
        502: {"description": "LLM provider error"},
    },
)
async def send_message(
    request: ChatRequest,
    orchestrator: Orchestrator,
    message_filter: Filter,
    client_id: ClientId,
) -> ChatReply:
    """
    Send a chat message and receive the full AI response.

    Identical requests are served from the response cache. When a
    **session_id** is given, prior turns are sent along as history.
    """
    message, context = _build_context(request, message_filter, client_id)
    reply = await orchestrator.ask(message, context)

    last = orchestrator.get_last_response()
    return ChatReply(
        reply=reply,
        session_id=request.session_id,
        model=last.model if last else None,
        usage=_usage_schema(orchestrator),
        cost=orchestrator.get_last_cost(),
    )


@router.post(
    "/stream",
    summary="Send message and receive streaming response",
    responses={
        200: {
            "description": "Server-Sent Events stream",
            "content": {"text/event-stream": {}},
        },
        400: {"description": "Streaming not supported by the configured backend"},
    },
)
async def send_message_stream(
    request: ChatRequest,
    orchestrator: Orchestrator,
    message_filter: Filter,
    client_id: ClientId,
):
    """
    Send a chat message and receive a streaming AI response.

    **SSE Event Types:**
    - `chunk`: Content fragment from the AI response
    - `done`: Stream completed, carries the full text
    - `error`: Error occurred mid-stream
    """
    message, context = _build_context(request, message_filter, client_id)
    stream = await orchestrator.ask_stream(message, context)

    async def event_generator():
        try:
            async for fragment in stream:
                yield sse_event("chunk", {"content": fragment})
            yield sse_event("done", {"content": stream.text, "session_id": request.session_id})
        except Exception as e:
            logger.error("Stream error", error=str(e))
            yield sse_event("error", {"message": str(e)})
        finally:
            await stream.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get(
    "/history/{session_id}",
    response_model=HistoryResponse,
    summary="Get conversation history",
)
async def get_history(session_id: str, orchestrator: Orchestrator) -> HistoryResponse:
    """
    Get the remembered turns for a session, oldest first.

    An unknown session returns an empty list.
    """
    turns = await orchestrator.get_conversation_history(session_id)
    return HistoryResponse(
        session_id=session_id,
        messages=[HistoryMessage(**turn) for turn in turns],
    )


@router.delete(
    "/history/{session_id}",
    response_model=DeleteResponse,
    summary="Clear conversation history",
)
async def clear_history(session_id: str, orchestrator: Orchestrator) -> DeleteResponse:
    """Forget every turn recorded for a session."""
    cleared = await orchestrator.clear_conversation_history(session_id)
    return DeleteResponse(
        success=cleared,
        message="Conversation history cleared" if cleared else "No history to clear",
    )


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Token usage and cost of the last response",
)
async def get_usage(orchestrator: Orchestrator) -> UsageResponse:
    """Accounting for the most recent complete answer."""
    last = orchestrator.get_last_response()
    return UsageResponse(
        summary=orchestrator.get_last_response_summary(),
        model=last.model if last else None,
        usage=_usage_schema(orchestrator),
        cost=orchestrator.get_last_cost(),
    )
