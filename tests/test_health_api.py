"""Health API endpoint tests.

Tests for: root, health, liveness.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from chatrelay.api.routes.health import _timed_health_check
from chatrelay.services.chat import ChatOrchestrator

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize("endpoint", ["/", "/health", "/health/live"])
async def test_health_endpoints_respond(client: AsyncClient, endpoint: str):
    resp = await client.get(endpoint)
    assert resp.status_code == 200


async def test_root_status_and_version(client: AsyncClient):
    data = (await client.get("/")).json()
    assert data["status"] == "healthy"
    assert data["name"] == "chatrelay"
    assert "version" in data


async def test_health_all_probes_healthy(client: AsyncClient):
    data = (await client.get("/health")).json()
    assert data["status"] == "healthy"
    assert set(data["services"]) == {"cache", "memory", "llm"}
    assert data["services"]["memory"]["details"]["type"] == "InMemoryStorage"
    assert data["services"]["llm"]["details"]["provider"] == "scripted"
    assert "default" in data["services"]["llm"]["details"]["registered"]


async def test_health_degraded_when_probe_fails(
    client: AsyncClient, orchestrator: ChatOrchestrator
):
    orchestrator.cache.check_health = AsyncMock(return_value=False)
    data = (await client.get("/health")).json()
    assert data["status"] == "degraded"
    assert data["services"]["cache"]["status"] == "degraded"
    assert data["services"]["memory"]["status"] == "healthy"


async def test_health_error_is_reported(client: AsyncClient, orchestrator: ChatOrchestrator):
    orchestrator.memory.storage.check_health = AsyncMock(side_effect=ConnectionError("gone"))
    data = (await client.get("/health")).json()
    assert data["services"]["memory"]["details"]["error"] == "gone"


async def test_health_without_optional_services(
    client: AsyncClient, orchestrator: ChatOrchestrator
):
    orchestrator.set_cache(None)
    orchestrator.set_memory(None)
    data = (await client.get("/health")).json()
    assert data["status"] == "healthy"
    assert set(data["services"]) == {"llm"}


async def test_timed_health_check_timeout():
    async def slow() -> bool:
        await asyncio.sleep(1)
        return True

    name, healthy, _, error = await _timed_health_check("slow", slow, timeout=0.01)
    assert name == "slow"
    assert healthy is False
    assert "timed out" in error
