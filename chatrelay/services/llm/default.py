"""Offline backend that needs no credentials."""

from collections.abc import Mapping
from typing import Any

from chatrelay.services.llm.base import ChatBackend, RequestOptions
from chatrelay.services.response import ChatResponse, ResponseMetadata


class DefaultBackend(ChatBackend):
    """Deterministic canned answers, used when no provider is configured."""

    provider_name = "default"

    def __init__(self, model: str = "default") -> None:
        super().__init__(model)

    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        options = RequestOptions.from_context(context)
        language = (context or {}).get("language") or "en"
        previous = ""
        if options.history:
            previous = "Previous conversation: " + " ".join(
                turn["content"] for turn in options.history
            )
        content = (
            f"[DefaultAI-{language}] {options.prompt}\n"
            f"{previous}\n"
            f"User: {message}\n"
            "Bot: This is a default AI response."
        )
        return ChatResponse(
            content=content,
            metadata=ResponseMetadata(model=self.resolve_model(options), finish_reason="stop"),
        )
