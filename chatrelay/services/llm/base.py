"""Backend adapter contracts.

Every provider implements ``ChatBackend``; providers that can deliver
incremental output also implement ``StreamingBackend``.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from chatrelay.services.response import ChatResponse

DEFAULT_PROMPT = "You are a helpful chatbot."
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 256


@dataclass
class ModelInfo:
    """Information about an LLM model."""

    id: str
    name: str
    provider: str
    context_window: int = 0
    supports_streaming: bool = True


@dataclass
class RequestOptions:
    """Generation options read from a request context."""

    prompt: str = DEFAULT_PROMPT
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    history: list[dict[str, str]] = field(default_factory=list)
    model: str | None = None

    @classmethod
    def from_context(cls, context: Mapping[str, Any] | None) -> "RequestOptions":
        context = context or {}
        prompt = context.get("prompt")
        if context.get("system_instructions"):
            prompt = f"{prompt or DEFAULT_PROMPT}\n\n{context['system_instructions']}"
        temperature = context.get("temperature")
        max_tokens = context.get("max_tokens")
        history = context.get("messages")
        return cls(
            prompt=prompt if isinstance(prompt, str) and prompt else DEFAULT_PROMPT,
            temperature=(
                float(temperature)
                if isinstance(temperature, (int, float))
                else DEFAULT_TEMPERATURE
            ),
            max_tokens=(
                int(max_tokens)
                if isinstance(max_tokens, (int, float)) and max_tokens > 0
                else DEFAULT_MAX_TOKENS
            ),
            history=[
                {"role": str(m["role"]), "content": str(m["content"])}
                for m in (history if isinstance(history, list) else [])
                if isinstance(m, Mapping) and "role" in m and "content" in m
            ],
            model=context.get("model") if isinstance(context.get("model"), str) else None,
        )

    def chat_messages(self, message: str, *, with_system: bool = True) -> list[dict[str, str]]:
        """Prior turns plus the new user message, optionally led by the system prompt."""
        result: list[dict[str, str]] = []
        if with_system:
            result.append({"role": "system", "content": self.prompt})
        result.extend(self.history)
        result.append({"role": "user", "content": message})
        return result


class ChatBackend(ABC):
    """Abstract base class for provider adapters."""

    provider_name: str = "base"

    def __init__(self, model: str) -> None:
        self.model = model

    def resolve_model(self, options: RequestOptions) -> str:
        return options.model or self.model

    @abstractmethod
    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        """Produce a complete answer for ``message``."""

    def get_available_models(self) -> list[ModelInfo]:
        return [ModelInfo(self.model, self.model, self.provider_name)]

    async def close(self) -> None:
        """Release any held resources."""


class StreamingBackend(ChatBackend):
    """Backend that can also deliver an answer as text fragments."""

    def __init__(self, model: str, streaming: bool = True) -> None:
        super().__init__(model)
        self._streaming = streaming

    def streaming_enabled(self) -> bool:
        return self._streaming

    def set_streaming(self, enabled: bool) -> None:
        self._streaming = enabled

    @abstractmethod
    def stream(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]:
        """Yield fragments of the answer as the provider produces them."""
