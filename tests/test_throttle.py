"""Tests for throttle gates: sliding window, isolation, Redis fail-open."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from chatrelay.core.exceptions import ThrottleExceeded
from chatrelay.services.throttle import MemoryThrottleGate, RedisThrottleGate, ThrottleDecision

pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _redis_gate(results: list[Any], clock=None) -> tuple[RedisThrottleGate, AsyncMock]:
    gate = RedisThrottleGate(
        url="https://fake.upstash.io",
        token="tok",
        clock=clock or (lambda: 1_000.0),
    )
    client = AsyncMock(spec=httpx.AsyncClient)
    resp = MagicMock()
    resp.json.return_value = [{"result": r} for r in results]
    resp.raise_for_status = MagicMock()
    client.post = AsyncMock(return_value=resp)
    gate._client = client
    return gate, client


# ---------------------------------------------------------------------------
# Memory gate
# ---------------------------------------------------------------------------

class TestMemoryGateWindow:

    async def test_admits_up_to_limit_then_rejects(self, throttle: MemoryThrottleGate):
        results = [await throttle.admit("u1", 2, 60) for _ in range(3)]
        assert results == [True, True, False]

    async def test_window_slides_after_expiry(self, throttle, clock):
        assert await throttle.admit("u1", 1, 10)
        assert not await throttle.admit("u1", 1, 10)
        clock.advance(10)
        assert await throttle.admit("u1", 1, 10)

    async def test_rejected_attempts_are_not_recorded(self, throttle, clock):
        assert await throttle.admit("u1", 1, 10)
        clock.advance(5)
        assert not await throttle.admit("u1", 1, 10)
        clock.advance(5)
        # Only the first admission counted, so the window is free again
        assert await throttle.admit("u1", 1, 10)

    async def test_keys_are_isolated(self, throttle):
        assert await throttle.admit("a", 1, 60)
        assert not await throttle.admit("a", 1, 60)
        assert await throttle.admit("b", 1, 60)

    async def test_remaining_counts_down(self, throttle):
        assert await throttle.remaining("u1", 3, 60) == 3
        await throttle.admit("u1", 3, 60)
        assert await throttle.remaining("u1", 3, 60) == 2

    async def test_reset_in_reports_oldest_exit(self, throttle, clock):
        assert await throttle.reset_in("u1", 60) == 0
        await throttle.admit("u1", 1, 60)
        clock.advance(20.5)
        assert await throttle.reset_in("u1", 60) == 40

    async def test_reset_and_clear(self, throttle):
        await throttle.admit("a", 1, 60)
        await throttle.admit("b", 1, 60)
        await throttle.reset("a")
        assert await throttle.admit("a", 1, 60)
        await throttle.clear()
        assert await throttle.admit("a", 1, 60)
        assert await throttle.admit("b", 1, 60)

    async def test_concurrent_admissions_never_exceed_limit(self, throttle):
        results = await asyncio.gather(*(throttle.admit("u1", 5, 60) for _ in range(20)))
        assert sum(results) == 5


class TestCheck:

    async def test_allowed_decision(self, throttle):
        decision = await throttle.check("u1", 2, 60)
        assert decision == ThrottleDecision(
            allowed=True, key="u1", limit=2, window=60, remaining=1, reset_in=0
        )

    async def test_rejected_decision_builds_error(self, throttle, clock):
        await throttle.check("u1", 1, 60)
        clock.advance(15)
        decision = await throttle.check("u1", 1, 60)

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.reset_in == 45

        err = decision.error()
        assert isinstance(err, ThrottleExceeded)
        assert err.status_code == 429
        assert err.details["retry_after"] == 45


# ---------------------------------------------------------------------------
# Redis gate
# ---------------------------------------------------------------------------

class TestRedisGate:

    async def test_admit_runs_script_through_pipeline(self):
        gate, client = _redis_gate([[1, 1]])
        assert await gate.admit("u1", 2, 60) is True

        url = client.post.call_args.args[0]
        commands = client.post.call_args.kwargs["json"]
        assert url == "https://fake.upstash.io/pipeline"
        assert commands[0][0] == "EVAL"
        assert commands[0][3] == "chatbot:ratelimit:u1"
        assert commands[0][5:7] == ["60", "2"]

    async def test_admit_rejected_by_script(self):
        gate, _ = _redis_gate([[0, 2]])
        assert await gate.admit("u1", 2, 60) is False

    async def test_admit_fails_open_on_transport_error(self):
        gate, client = _redis_gate([])
        client.post = AsyncMock(side_effect=httpx.ConnectError("down"))
        assert await gate.admit("u1", 1, 60) is True

    async def test_remaining_uses_zcard(self):
        gate, _ = _redis_gate([0, 3])
        assert await gate.remaining("u1", 5, 60) == 2

    async def test_reset_in_from_oldest_score(self):
        gate, _ = _redis_gate([0, ["m", "970"]])
        assert await gate.reset_in("u1", 60) == 30

    async def test_health_check(self):
        gate, _ = _redis_gate(["PONG"])
        assert await gate.check_health() is True

    async def test_close_releases_client(self):
        gate, client = _redis_gate([])
        await gate.close()
        client.aclose.assert_awaited_once()
        assert gate._client is None
