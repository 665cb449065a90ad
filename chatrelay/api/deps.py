"""API dependencies for FastAPI routes."""

from typing import Annotated

from fastapi import Depends, Request

from chatrelay.services.chat import ChatOrchestrator, get_chat_orchestrator
from chatrelay.services.filter import MessageFilter, get_message_filter


def client_identifier(request: Request) -> str:
    """Throttle key for callers without a session id.

    Uses the first X-Forwarded-For hop when present, otherwise the peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


# Type aliases for cleaner route signatures
Orchestrator = Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)]
Filter = Annotated[MessageFilter, Depends(get_message_filter)]
ClientId = Annotated[str, Depends(client_identifier)]
