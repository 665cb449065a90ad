"""Chat Orchestrator Service.

Coordinates one request across:
- Throttle gate (per-key sliding window admission)
- Response cache (cache-aside, complete answers only)
- Conversation memory (history injection and turn recording)
- Backend adapter (complete or streamed generation)
- Cost calculator (post-hoc accounting of the last answer)

Throttle and streaming-capability rejections happen before any side
effect. Backend errors propagate untouched. Cache and memory failures
are logged and swallowed so storage outages degrade to "no cache" or
"no memory" instead of failing the request.
"""

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any

import orjson

from chatrelay.core.config import get_settings
from chatrelay.core.exceptions import StreamingUnsupported
from chatrelay.core.logging import get_logger
from chatrelay.services.cache import ResponseCache, get_response_cache
from chatrelay.services.cache.constants import TTL_RESPONSE
from chatrelay.services.cost import CostCalculator
from chatrelay.services.llm import ChatBackend, StreamingBackend, create_backend
from chatrelay.services.memory import ConversationMemory, get_conversation_memory
from chatrelay.services.response import ChatResponse, TokenUsage
from chatrelay.services.throttle import ThrottleGate, create_throttle_gate

logger = get_logger(__name__)

DEFAULT_THROTTLE_KEY = "default"


def sse_event(event_type: str, data: dict[str, Any]) -> str:
    """Format a Server-Sent Event."""
    return f"event: {event_type}\ndata: {orjson.dumps(data).decode()}\n\n"


class ResponseStream:
    """Async iterator over a streamed answer with a single completion hook.

    Fragments are pulled from the backend one at a time as the caller
    iterates. When the backend is exhausted the accumulated text is handed
    to ``on_complete`` exactly once, even for a stream with no fragments.
    A backend error propagates and skips the automatic hook; callers that
    stop early (or recover from an error) may call ``finalize()`` to flush
    what was received so far.
    """

    def __init__(
        self,
        fragments: AsyncIterator[str],
        on_complete: Callable[[str], Awaitable[None]],
    ) -> None:
        self._fragments = fragments
        self._on_complete = on_complete
        self._parts: list[str] = []
        self._finalized = False
        self._failed = False

    def __aiter__(self) -> "ResponseStream":
        return self

    async def __anext__(self) -> str:
        if self._finalized or self._failed:
            raise StopAsyncIteration

        try:
            fragment = await self._fragments.__anext__()
        except StopAsyncIteration:
            await self.finalize()
            raise
        except Exception:
            self._failed = True
            raise

        self._parts.append(fragment)
        return fragment

    @property
    def text(self) -> str:
        """Everything yielded so far."""
        return "".join(self._parts)

    @property
    def finalized(self) -> bool:
        return self._finalized

    async def finalize(self) -> str:
        """Run the completion hook if it has not run yet; returns the text."""
        if not self._finalized:
            self._finalized = True
            await self._on_complete(self.text)
        return self.text

    async def aclose(self) -> None:
        """Close the underlying backend stream without finalizing."""
        aclose = getattr(self._fragments, "aclose", None)
        if aclose is not None:
            await aclose()


class ChatOrchestrator:
    """Entry point for complete and streamed chat requests."""

    def __init__(
        self,
        backend: ChatBackend,
        config: Mapping[str, Any] | None = None,
        memory: ConversationMemory | None = None,
        throttle: ThrottleGate | None = None,
        cache: ResponseCache | None = None,
        cost_calculator: CostCalculator | None = None,
    ) -> None:
        self.backend = backend
        self.config: dict[str, Any] = dict(config or {})
        self.memory = memory
        self.throttle = throttle
        self.cache = cache
        self.cost_calculator = cost_calculator or CostCalculator()
        self._last_response: ChatResponse | None = None

    # ========== Collaborators ==========

    def set_backend(self, backend: ChatBackend) -> None:
        self.backend = backend

    def set_memory(self, memory: ConversationMemory | None) -> None:
        self.memory = memory

    def set_throttle(self, throttle: ThrottleGate | None) -> None:
        self.throttle = throttle

    def set_cache(self, cache: ResponseCache | None) -> None:
        self.cache = cache

    # ========== Helpers ==========

    def _merge(self, context: Mapping[str, Any] | None) -> dict[str, Any]:
        return {**self.config, **(context or {})}

    def _memory_session(self, context: Mapping[str, Any]) -> str | None:
        """Session id to record under, or ``None`` when memory does not apply."""
        session_id = context.get("sessionId")
        if self.memory is None or not self.memory.is_enabled or not session_id:
            return None
        return str(session_id)

    async def _enforce_throttle(self, context: Mapping[str, Any]) -> None:
        limit = context.get("rate_limit_max")
        window = context.get("rate_limit_window")
        if self.throttle is None or not limit or not window:
            return

        key = str(
            context.get("rate_limit_key") or context.get("sessionId") or DEFAULT_THROTTLE_KEY
        )
        decision = await self.throttle.check(key, int(limit), int(window))
        if not decision.allowed:
            logger.info(
                "Request throttled",
                key=key,
                limit=decision.limit,
                window=decision.window,
                reset_in=decision.reset_in,
            )
            raise decision.error()

    def _cache_key_context(self, context: Mapping[str, Any]) -> dict[str, Any]:
        """Context for key derivation, naming the model the backend will use."""
        key_context = dict(context)
        model = context.get("model") or self.backend.model
        if model:
            key_context["model"] = model
        return key_context

    async def _cache_lookup(self, key: str) -> ChatResponse | None:
        assert self.cache is not None
        try:
            return await self.cache.lookup(key)
        except Exception as e:
            logger.warning("Cache lookup failed", key=key, error=str(e))
            return None

    async def _cache_store(self, key: str, response: ChatResponse, ttl: int) -> None:
        assert self.cache is not None
        try:
            if not await self.cache.store(key, response, ttl):
                logger.debug("Cache store skipped", key=key)
        except Exception as e:
            logger.warning("Cache store failed", key=key, error=str(e))

    async def _inject_history(self, context: dict[str, Any], session_id: str) -> None:
        assert self.memory is not None
        try:
            history = await self.memory.formatted_history(session_id)
        except Exception as e:
            logger.warning("Memory read failed", session_id=session_id, error=str(e))
            return
        if history:
            context["messages"] = history

    async def _remember(self, session_id: str, role: str, content: str) -> None:
        assert self.memory is not None
        try:
            await self.memory.append(session_id, role, content)
        except Exception as e:
            logger.warning("Memory append failed", session_id=session_id, role=role, error=str(e))

    # ========== Entry points ==========

    async def ask(self, message: str, context: Mapping[str, Any] | None = None) -> str:
        """Answer ``message`` and return the text.

        Raises:
            ThrottleExceeded: If the throttle key is over its limit.
            LLMProviderError: If the backend fails.
        """
        ctx = self._merge(context)

        await self._enforce_throttle(ctx)

        cache_key: str | None = None
        if self.cache is not None and ctx.get("cache_enabled", True):
            cache_key = self.cache.make_key(message, self._cache_key_context(ctx))
            cached = await self._cache_lookup(cache_key)
            if cached is not None:
                logger.debug("Cache hit", key=cache_key)
                self._last_response = cached
                return cached.content

        session_id = self._memory_session(ctx)
        if session_id:
            await self._inject_history(ctx, session_id)
            await self._remember(session_id, "user", message)

        response = await self.backend.generate(message, ctx)

        if cache_key is not None:
            ttl = ctx.get("cache_ttl")
            await self._cache_store(cache_key, response, TTL_RESPONSE if ttl is None else int(ttl))

        if session_id:
            await self._remember(session_id, "assistant", response.content)

        self._last_response = response
        return response.content

    async def ask_stream(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ResponseStream:
        """Start a streamed answer.

        The capability check and the user-turn write happen before this
        returns; fragments are produced only as the caller iterates.

        Raises:
            StreamingUnsupported: If the backend cannot stream right now.
        """
        backend = self.backend
        if not isinstance(backend, StreamingBackend):
            raise StreamingUnsupported(
                backend.provider_name, "backend does not support incremental delivery"
            )
        if not backend.streaming_enabled():
            raise StreamingUnsupported(backend.provider_name, "streaming is disabled")

        ctx = self._merge(context)
        session_id = self._memory_session(ctx)
        if session_id:
            await self._inject_history(ctx, session_id)
            await self._remember(session_id, "user", message)

        async def _on_complete(text: str) -> None:
            if session_id:
                await self._remember(session_id, "assistant", text)

        return ResponseStream(backend.stream(message, ctx), _on_complete)

    # ========== Accounting ==========

    def get_last_response(self) -> ChatResponse | None:
        return self._last_response

    def get_last_token_usage(self) -> TokenUsage | None:
        return self._last_response.token_usage if self._last_response else None

    def get_last_cost(self) -> float | None:
        """USD cost of the last answer, ``None`` without token usage."""
        usage = self.get_last_token_usage()
        if usage is None or self._last_response is None:
            return None
        return self.cost_calculator.calculate(usage, self._last_response.model)

    def get_last_response_summary(self) -> str | None:
        if self._last_response is None:
            return None
        summary = self._last_response.summary()
        cost = self.get_last_cost()
        if cost is not None:
            summary += f" | Cost: {self.cost_calculator.format_cost(cost)}"
        return summary

    def estimate_cost(
        self, prompt_tokens: int, completion_tokens: int, model: str | None = None
    ) -> float:
        return self.cost_calculator.estimate(
            prompt_tokens, completion_tokens, model or self.backend.model
        )

    # ========== History ==========

    async def get_conversation_history(self, session_id: str) -> list[dict[str, Any]]:
        if self.memory is None:
            return []
        return await self.memory.history(session_id)

    async def clear_conversation_history(self, session_id: str) -> bool:
        if self.memory is None:
            return False
        return await self.memory.clear(session_id)

    async def close(self) -> None:
        """Release backend and throttle resources."""
        await self.backend.close()
        if self.throttle is not None:
            await self.throttle.close()
        if self.cache is not None:
            await self.cache.close()


def create_chat_orchestrator() -> ChatOrchestrator:
    """Wire an orchestrator from settings."""
    settings = get_settings()
    backend_options: dict[str, Any] = {}
    if settings.default_model:
        backend_options["model"] = settings.default_model

    return ChatOrchestrator(
        backend=create_backend(settings.default_provider, **backend_options),
        config=settings.chat_defaults(),
        memory=get_conversation_memory(),
        throttle=create_throttle_gate(),
        cache=get_response_cache(),
    )


# Global orchestrator instance
_chat_orchestrator: ChatOrchestrator | None = None


def get_chat_orchestrator() -> ChatOrchestrator:
    """Get or create the global chat orchestrator."""
    global _chat_orchestrator

    if _chat_orchestrator is None:
        _chat_orchestrator = create_chat_orchestrator()
        logger.info(
            "Chat orchestrator initialized",
            provider=_chat_orchestrator.backend.provider_name,
            model=_chat_orchestrator.backend.model,
        )

    return _chat_orchestrator


async def shutdown_chat_orchestrator() -> None:
    """Close the global orchestrator, if one was created."""
    global _chat_orchestrator

    if _chat_orchestrator is not None:
        await _chat_orchestrator.close()
        _chat_orchestrator = None
