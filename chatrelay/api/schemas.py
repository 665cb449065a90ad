"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ============================================================
# Chat Schemas
# ============================================================

class ChatRequest(BaseModel):
    """Schema for a chat request."""

    message: str = Field(..., min_length=1, max_length=10000)
    session_id: str | None = Field(default=None, max_length=255)
    model: str | None = None
    prompt: str | None = Field(default=None, max_length=4000)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1, le=32000)
    cache_enabled: bool | None = None
    cache_ttl: int | None = Field(default=None, ge=0, description="Seconds, 0 = never expire")

    def to_context(self) -> dict[str, Any]:
        """Per-call context for the orchestrator; unset fields fall back to defaults."""
        context: dict[str, Any] = {}
        if self.session_id:
            context["sessionId"] = self.session_id
        for name in ("model", "prompt", "temperature", "max_tokens", "cache_enabled", "cache_ttl"):
            value = getattr(self, name)
            if value is not None:
                context[name] = value
        return context


class TokenUsageSchema(BaseModel):
    """Schema for token counts."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatReply(BaseModel):
    """Schema for a complete chat answer."""

    reply: str
    session_id: str | None = None
    model: str | None = None
    usage: TokenUsageSchema | None = None
    cost: float | None = None


class UsageResponse(BaseModel):
    """Schema for last-response accounting."""

    summary: str | None = None
    model: str | None = None
    usage: TokenUsageSchema | None = None
    cost: float | None = None


# ============================================================
# History Schemas
# ============================================================

class HistoryMessage(BaseModel):
    """Schema for one remembered turn."""

    role: str
    content: str
    timestamp: int | None = None


class HistoryResponse(BaseModel):
    """Schema for a session's conversation history."""

    session_id: str
    messages: list[HistoryMessage]


class DeleteResponse(BaseModel):
    """Schema for delete operation response."""

    success: bool = True
    message: str


# ============================================================
# Error / Health Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error: dict[str, Any] = Field(
        ...,
        examples=[{"message": "Error description", "details": {}}],
    )


class ServiceHealth(BaseModel):
    """Schema for individual service health."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    timestamp: datetime
    version: str
    services: dict[str, ServiceHealth]
