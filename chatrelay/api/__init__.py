"""API module exports."""

from chatrelay.api.routes import chat_router, health_router
from chatrelay.api.deps import ClientId, Filter, Orchestrator

__all__ = [
    # Routers
    "chat_router",
    "health_router",
    # Dependencies
    "ClientId",
    "Filter",
    "Orchestrator",
]
