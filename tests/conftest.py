"""Test configuration and fixtures.

Provides isolated test fixtures for:
- A controllable clock for expiry and window arithmetic
- Scripted backends (complete and streaming)
- An orchestrator wired to in-memory collaborators
- HTTP client with dependency overrides
"""

from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chatrelay.core.config import Settings
from chatrelay.services.cache import MemoryResponseCache
from chatrelay.services.chat import ChatOrchestrator, get_chat_orchestrator
from chatrelay.services.filter import MessageFilter, get_message_filter
from chatrelay.services.llm import ChatBackend, StreamingBackend
from chatrelay.services.memory import ConversationMemory, InMemoryStorage
from chatrelay.services.response import ChatResponse, ResponseMetadata, TokenUsage
from chatrelay.services.throttle import MemoryThrottleGate


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        debug=True,
        rate_limit_enabled=False,
        upstash_redis_rest_url="",
        upstash_redis_rest_token="",
    )


# =============================================================================
# Backends
# =============================================================================

class ScriptedBackend(ChatBackend):
    """Returns canned answers and records every call."""

    provider_name = "scripted"

    def __init__(
        self,
        reply: str = "Hello there!",
        model: str = "gpt-4o-mini",
        usage: TokenUsage | None = TokenUsage(10, 5, 15),
        error: Exception | None = None,
    ) -> None:
        super().__init__(model)
        self.reply = reply
        self.usage = usage
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        self.calls.append((message, dict(context or {})))
        if self.error is not None:
            raise self.error
        return ChatResponse(
            content=self.reply,
            metadata=ResponseMetadata(
                model=self.model, token_usage=self.usage, finish_reason="stop"
            ),
        )


class ScriptedStreamingBackend(StreamingBackend):
    """Yields canned fragments, optionally failing after ``fail_after`` of them."""

    provider_name = "scripted-stream"

    def __init__(
        self,
        fragments: list[str] | None = None,
        model: str = "gpt-4o-mini",
        streaming: bool = True,
        fail_after: int | None = None,
    ) -> None:
        super().__init__(model, streaming)
        self.fragments = ["Hel", "lo", "!"] if fragments is None else fragments
        self.fail_after = fail_after
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        self.calls.append((message, dict(context or {})))
        return ChatResponse.from_string("".join(self.fragments), self.model)

    async def stream(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]:
        self.calls.append((message, dict(context or {})))
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("stream dropped")
            yield fragment


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def streaming_backend() -> ScriptedStreamingBackend:
    return ScriptedStreamingBackend()


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def memory(clock: FakeClock) -> ConversationMemory:
    return ConversationMemory(InMemoryStorage(), max_history=20, clock=clock)


@pytest.fixture
def response_cache(clock: FakeClock) -> MemoryResponseCache:
    return MemoryResponseCache(clock=clock)


@pytest.fixture
def throttle(clock: FakeClock) -> MemoryThrottleGate:
    return MemoryThrottleGate(clock=clock)


@pytest.fixture
def orchestrator(
    backend: ScriptedBackend,
    memory: ConversationMemory,
    response_cache: MemoryResponseCache,
) -> ChatOrchestrator:
    return ChatOrchestrator(
        backend=backend,
        config={"prompt": "You are a helpful chatbot.", "temperature": 0.7, "max_tokens": 256},
        memory=memory,
        cache=response_cache,
    )


# =============================================================================
# HTTP Client Fixtures
# =============================================================================

@pytest_asyncio.fixture(scope="function")
async def client(orchestrator: ChatOrchestrator) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with the orchestrator overridden."""
    from chatrelay.main import app

    app.dependency_overrides[get_chat_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_message_filter] = lambda: MessageFilter(
        aggression_patterns=["stupid"],
    )

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
