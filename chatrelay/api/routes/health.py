"""Health check and monitoring endpoints."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from chatrelay.api.deps import Orchestrator
from chatrelay.api.schemas import HealthResponse, ServiceHealth
from chatrelay.core.config import get_settings
from chatrelay.services.llm import list_backends
from chatrelay.services.throttle import RedisThrottleGate

router = APIRouter(tags=["Health"])


@router.get(
    "/",
    summary="Root endpoint",
    response_description="API information and basic health status",
)
async def root() -> dict[str, Any]:
    """
    Root endpoint with API information.

    Returns basic API metadata including:
    - Application name and version
    - Current status
    - Environment name
    - Server timestamp
    """
    settings = get_settings()

    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "healthy",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "documentation": "/docs",
    }


async def _timed_health_check(
    name: str,
    check_fn: Any,
    timeout: float = 5.0
) -> tuple[str, bool, float, str | None]:
    """Execute a health check and measure its latency with timeout.

    Returns:
        Tuple of (name, healthy, latency_ms, error_message)
    """
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(check_fn(), timeout=timeout)
        latency = (time.perf_counter() - start) * 1000
        return (name, result, latency, None)
    except asyncio.TimeoutError:
        latency = (time.perf_counter() - start) * 1000
        return (name, False, latency, f"Health check timed out after {timeout}s")
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return (name, False, latency, str(e))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Comprehensive health check",
    response_description="Detailed health status of all services",
)
async def health_check(orchestrator: Orchestrator) -> HealthResponse:
    """
    Comprehensive health check endpoint for monitoring.

    Probes every configured collaborator of the orchestrator:
    - **Cache**: response cache backend
    - **Memory**: conversation storage backend
    - **Rate limit**: shared throttle store, when Redis-backed

    None of them is required to answer a chat request, so a failing
    probe degrades the overall status rather than failing it.
    """
    settings = get_settings()
    services: dict[str, ServiceHealth] = {}
    probes: dict[str, dict[str, Any]] = {}
    tasks = []

    if orchestrator.cache is not None:
        probes["cache"] = {"type": type(orchestrator.cache).__name__}
        tasks.append(_timed_health_check("cache", orchestrator.cache.check_health))

    if orchestrator.memory is not None:
        storage = orchestrator.memory.storage
        probes["memory"] = {
            "type": type(storage).__name__,
            "enabled": orchestrator.memory.is_enabled,
        }
        tasks.append(_timed_health_check("memory", storage.check_health))

    if isinstance(orchestrator.throttle, RedisThrottleGate):
        probes["rate_limit"] = {"type": "redis", "provider": "upstash"}
        tasks.append(_timed_health_check("rate_limit", orchestrator.throttle.check_health))

    results = await asyncio.gather(*tasks)

    overall_status = "healthy"
    for name, healthy, latency, error in results:
        details = dict(probes[name])
        if error:
            details["error"] = error
        services[name] = ServiceHealth(
            status="healthy" if healthy else "degraded",
            latency_ms=round(latency, 2),
            details=details,
        )
        if not healthy:
            overall_status = "degraded"

    services["llm"] = ServiceHealth(
        status="healthy",
        details={
            "provider": orchestrator.backend.provider_name,
            "model": orchestrator.backend.model,
            "registered": list_backends(),
        },
    )

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        services=services,
    )


@router.get(
    "/health/live",
    summary="Liveness probe",
    response_description="Simple liveness check for orchestrators",
)
async def liveness() -> dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the service process is running.
    This is a lightweight check that doesn't verify external dependencies.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
