"""Chat API endpoint tests.

Tests for: complete answers, SSE streaming, history, usage, error mapping.
"""

import json
from typing import Any

import pytest
from httpx import AsyncClient

from chatrelay.core.exceptions import LLMProviderError
from chatrelay.services.chat import ChatOrchestrator
from chatrelay.services.throttle import MemoryThrottleGate
from tests.conftest import ScriptedBackend, ScriptedStreamingBackend

pytestmark = pytest.mark.asyncio


def _parse_sse(raw: str) -> list[tuple[str, dict[str, Any]]]:
    """Parse an SSE body into (event_type, data_dict) pairs."""
    events = []
    for block in raw.strip().split("\n\n"):
        event_type = ""
        data: dict[str, Any] = {}
        for line in block.split("\n"):
            if line.startswith("event: "):
                event_type = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        events.append((event_type, data))
    return events


# =============================================================================
# POST /chat
# =============================================================================

async def test_chat_returns_reply_and_usage(client: AsyncClient):
    resp = await client.post("/api/v1/chat", json={"message": "Hi", "session_id": "s1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["reply"] == "Hello there!"
    assert data["session_id"] == "s1"
    assert data["model"] == "gpt-4o-mini"
    assert data["usage"] == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
    assert data["cost"] is not None


async def test_chat_applies_filter(client: AsyncClient, backend: ScriptedBackend):
    await client.post("/api/v1/chat", json={"message": "you are stupid, see http://x.io"})
    message, _ = backend.calls[0]
    assert message == "you are stupid, see [link removed] [Please use respectful language.]"


async def test_chat_forwards_overrides(client: AsyncClient, backend: ScriptedBackend):
    await client.post(
        "/api/v1/chat",
        json={"message": "Hi", "temperature": 0.1, "max_tokens": 20, "model": "gpt-4o"},
    )
    _, ctx = backend.calls[0]
    assert ctx["temperature"] == 0.1
    assert ctx["max_tokens"] == 20
    assert ctx["model"] == "gpt-4o"
    assert ctx["rate_limit_key"].startswith("ip:")


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"message": ""},
        {"message": "x" * 10001},
        {"message": "Hi", "temperature": 5},
        {"message": "Hi", "cache_ttl": -1},
    ],
)
async def test_chat_validation(client: AsyncClient, payload: dict):
    resp = await client.post("/api/v1/chat", json=payload)
    assert resp.status_code == 422


async def test_chat_backend_error_is_502(client: AsyncClient, backend: ScriptedBackend):
    backend.error = LLMProviderError("scripted", "upstream down")
    resp = await client.post("/api/v1/chat", json={"message": "Hi"})
    assert resp.status_code == 502
    assert resp.json()["error"]["details"] == {"provider": "scripted"}


async def test_chat_throttled_is_429(client: AsyncClient, orchestrator: ChatOrchestrator):
    orchestrator.set_throttle(MemoryThrottleGate())
    orchestrator.config.update(rate_limit_max=1, rate_limit_window=60)

    first = await client.post("/api/v1/chat", json={"message": "one"})
    second = await client.post("/api/v1/chat", json={"message": "two"})

    assert first.status_code == 200
    assert second.status_code == 429
    assert int(second.headers["retry-after"]) > 0
    assert second.json()["error"]["details"]["limit"] == 1


# =============================================================================
# POST /chat/stream
# =============================================================================

async def test_stream_emits_chunks_then_done(client: AsyncClient, orchestrator: ChatOrchestrator):
    orchestrator.set_backend(ScriptedStreamingBackend())
    resp = await client.post("/api/v1/chat/stream", json={"message": "Hi", "session_id": "s1"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _parse_sse(resp.text)
    assert events == [
        ("chunk", {"content": "Hel"}),
        ("chunk", {"content": "lo"}),
        ("chunk", {"content": "!"}),
        ("done", {"content": "Hello!", "session_id": "s1"}),
    ]

    history = await client.get("/api/v1/chat/history/s1")
    assert [m["content"] for m in history.json()["messages"]] == ["Hi", "Hello!"]


async def test_stream_mid_error_event(client: AsyncClient, orchestrator: ChatOrchestrator):
    orchestrator.set_backend(ScriptedStreamingBackend(fail_after=1))
    resp = await client.post("/api/v1/chat/stream", json={"message": "Hi", "session_id": "s1"})

    events = _parse_sse(resp.text)
    assert events[0] == ("chunk", {"content": "Hel"})
    assert events[-1] == ("error", {"message": "stream dropped"})

    history = await client.get("/api/v1/chat/history/s1")
    assert [m["role"] for m in history.json()["messages"]] == ["user"]


async def test_stream_unsupported_backend_is_400(client: AsyncClient):
    resp = await client.post("/api/v1/chat/stream", json={"message": "Hi"})
    assert resp.status_code == 400
    assert "Streaming is not supported" in resp.json()["error"]["message"]


# =============================================================================
# History and usage
# =============================================================================

async def test_history_round_trip(client: AsyncClient):
    await client.post("/api/v1/chat", json={"message": "Hi", "session_id": "s1"})

    resp = await client.get("/api/v1/chat/history/s1")
    assert resp.status_code == 200
    data = resp.json()
    assert data["session_id"] == "s1"
    assert [m["role"] for m in data["messages"]] == ["user", "assistant"]

    cleared = await client.delete("/api/v1/chat/history/s1")
    assert cleared.json()["success"] is True
    assert (await client.get("/api/v1/chat/history/s1")).json()["messages"] == []


async def test_history_unknown_session_is_empty(client: AsyncClient):
    resp = await client.get("/api/v1/chat/history/nobody")
    assert resp.status_code == 200
    assert resp.json()["messages"] == []


async def test_usage_before_and_after(client: AsyncClient):
    empty = (await client.get("/api/v1/chat/usage")).json()
    assert empty["summary"] is None
    assert empty["cost"] is None

    await client.post("/api/v1/chat", json={"message": "Hi"})
    data = (await client.get("/api/v1/chat/usage")).json()
    assert data["model"] == "gpt-4o-mini"
    assert data["usage"]["total_tokens"] == 15
    assert "Cost: $" in data["summary"]
