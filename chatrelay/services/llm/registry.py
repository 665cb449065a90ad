"""Thread-safe registry mapping backend names to factories."""

from collections.abc import Callable
from threading import Lock
from typing import Any

from chatrelay.core.exceptions import InvalidConfigError
from chatrelay.services.llm.base import ChatBackend

BackendFactory = Callable[..., ChatBackend]

_REGISTRY: dict[str, BackendFactory] = {}
_LOCK = Lock()


def register_backend(name: str, factory: BackendFactory, *, overwrite: bool = False) -> None:
    """Register one backend factory under a stable name."""
    key = name.strip().lower()
    if not key:
        raise InvalidConfigError("Backend name must be non-empty")

    with _LOCK:
        if key in _REGISTRY and not overwrite:
            raise InvalidConfigError(f"Backend already registered: {key}")
        _REGISTRY[key] = factory


def create_backend(name: str, **options: Any) -> ChatBackend:
    """Instantiate a registered backend; unknown names fail fast."""
    key = name.strip().lower()
    with _LOCK:
        factory = _REGISTRY.get(key)
    if factory is None:
        raise InvalidConfigError(
            f"Unknown backend '{name}'. Registered: {', '.join(list_backends())}"
        )
    return factory(**options)


def list_backends() -> list[str]:
    """List registered backend names in deterministic order."""
    with _LOCK:
        return sorted(_REGISTRY.keys())


def register_builtin_backends() -> None:
    from chatrelay.services.llm.default import DefaultBackend
    from chatrelay.services.llm.rest import (
        AnthropicBackend,
        OllamaBackend,
        deepseek_backend,
        meta_backend,
        xai_backend,
    )
    from chatrelay.services.llm.sdk import GeminiBackend, OpenAIBackend

    builtins: dict[str, BackendFactory] = {
        "default": DefaultBackend,
        "openai": OpenAIBackend,
        "gemini": GeminiBackend,
        "anthropic": AnthropicBackend,
        "xai": xai_backend,
        "deepseek": deepseek_backend,
        "meta": meta_backend,
        "ollama": OllamaBackend,
    }
    for name, factory in builtins.items():
        register_backend(name, factory, overwrite=True)
