"""Routes module exports."""

from chatrelay.api.routes.chat import router as chat_router
from chatrelay.api.routes.health import router as health_router

__all__ = [
    "chat_router",
    "health_router",
]
