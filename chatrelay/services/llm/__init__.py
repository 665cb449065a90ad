"""Provider adapters with a unified interface.

Built-in backends:
- default (offline)
- openai, gemini (official SDKs)
- anthropic, xai, deepseek, meta, ollama (REST over httpx)
"""

from chatrelay.services.llm.base import (
    ChatBackend,
    ModelInfo,
    RequestOptions,
    StreamingBackend,
)
from chatrelay.services.llm.default import DefaultBackend
from chatrelay.services.llm.registry import (
    create_backend,
    list_backends,
    register_backend,
    register_builtin_backends,
)
from chatrelay.services.llm.rest import AnthropicBackend, OllamaBackend, OpenAICompatibleBackend
from chatrelay.services.llm.sdk import GeminiBackend, OpenAIBackend

register_builtin_backends()

__all__ = [
    "AnthropicBackend",
    "ChatBackend",
    "DefaultBackend",
    "GeminiBackend",
    "ModelInfo",
    "OllamaBackend",
    "OpenAIBackend",
    "OpenAICompatibleBackend",
    "RequestOptions",
    "StreamingBackend",
    "create_backend",
    "list_backends",
    "register_backend",
]
