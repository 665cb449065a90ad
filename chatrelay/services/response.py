"""Normalized chat response value types.

Every backend adapter returns a ``ChatResponse``; caches round-trip it
through ``to_dict`` / ``from_dict``.
"""

from dataclasses import dataclass, field
from typing import Any

TRUNCATED_REASONS = frozenset({"length", "max_tokens", "truncated"})
FILTERED_REASONS = frozenset({"content_filter", "safety", "policy_violation"})


@dataclass(frozen=True)
class TokenUsage:
    """Prompt/completion token counts reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenUsage":
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )

    @classmethod
    def from_openai(cls, usage: dict[str, Any]) -> "TokenUsage":
        return cls.from_dict(usage)

    @classmethod
    def from_anthropic(cls, usage: dict[str, Any]) -> "TokenUsage":
        prompt = int(usage.get("input_tokens") or 0)
        completion = int(usage.get("output_tokens") or 0)
        return cls(prompt, completion, prompt + completion)

    @classmethod
    def from_gemini(cls, usage: dict[str, Any]) -> "TokenUsage":
        return cls(
            prompt_tokens=int(usage.get("promptTokenCount") or 0),
            completion_tokens=int(usage.get("candidatesTokenCount") or 0),
            total_tokens=int(usage.get("totalTokenCount") or 0),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    def summary(self) -> str:
        return (
            f"Tokens: {self.prompt_tokens} prompt + "
            f"{self.completion_tokens} completion = {self.total_tokens} total"
        )

    def exceeds_threshold(self, threshold: int) -> bool:
        return self.total_tokens > threshold

    def usage_percentage(self, limit: int) -> float:
        """Share of ``limit`` consumed, in percent (0.0 for a non-positive limit)."""
        if limit <= 0:
            return 0.0
        return self.total_tokens / limit * 100

    def remaining_tokens(self, limit: int) -> int:
        return max(0, limit - self.total_tokens)


@dataclass(frozen=True)
class ResponseMetadata:
    """Provider metadata attached to a response."""

    model: str
    token_usage: TokenUsage | None = None
    finish_reason: str | None = None
    id: str | None = None
    created: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_token_usage(self) -> bool:
        return self.token_usage is not None

    @property
    def was_truncated(self) -> bool:
        return self.finish_reason in TRUNCATED_REASONS

    @property
    def was_filtered(self) -> bool:
        return self.finish_reason in FILTERED_REASONS

    @property
    def was_completed_normally(self) -> bool:
        return self.finish_reason == "stop"

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
            "finish_reason": self.finish_reason,
            "id": self.id,
            "created": self.created,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResponseMetadata":
        usage = data.get("token_usage")
        return cls(
            model=str(data.get("model") or "unknown"),
            token_usage=TokenUsage.from_dict(usage) if isinstance(usage, dict) else None,
            finish_reason=data.get("finish_reason"),
            id=data.get("id"),
            created=data.get("created"),
            extra=dict(data.get("extra") or {}),
        )

    def summary(self) -> str:
        parts = [f"Model: {self.model}"]
        if self.token_usage:
            parts.append(self.token_usage.summary())
        if self.finish_reason:
            parts.append(f"Finish: {self.finish_reason}")
        return " | ".join(parts)


@dataclass(frozen=True)
class ChatResponse:
    """Complete answer from a backend: text plus metadata."""

    content: str
    metadata: ResponseMetadata

    def __str__(self) -> str:
        return self.content

    @property
    def model(self) -> str:
        return self.metadata.model

    @property
    def token_usage(self) -> TokenUsage | None:
        return self.metadata.token_usage

    @property
    def finish_reason(self) -> str | None:
        return self.metadata.finish_reason

    @property
    def was_truncated(self) -> bool:
        return self.metadata.was_truncated

    @property
    def was_filtered(self) -> bool:
        return self.metadata.was_filtered

    @property
    def was_completed_normally(self) -> bool:
        return self.metadata.was_completed_normally

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "metadata": self.metadata.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatResponse":
        """Rebuild a response from ``to_dict`` output.

        Raises:
            ValueError: If the payload does not look like a serialized response.
        """
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            raise ValueError("Invalid serialized chat response")
        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            raise ValueError("Invalid serialized chat response metadata")
        return cls(content=data["content"], metadata=ResponseMetadata.from_dict(metadata))

    def summary(self) -> str:
        preview = self.content[:50]
        if len(self.content) > 50:
            preview += "..."
        return (
            f'{self.metadata.summary()} | Length: {len(self.content)} chars | '
            f'Preview: "{preview}"'
        )

    # ========== Constructors ==========

    @classmethod
    def from_string(cls, content: str, model: str = "unknown") -> "ChatResponse":
        return cls(content=content, metadata=ResponseMetadata(model=model))

    @classmethod
    def from_openai(cls, content: str, payload: dict[str, Any]) -> "ChatResponse":
        """Build from an OpenAI-style chat-completions payload."""
        usage = payload.get("usage")
        choices = payload.get("choices") or [{}]
        return cls(
            content=content,
            metadata=ResponseMetadata(
                model=payload.get("model") or "unknown",
                token_usage=TokenUsage.from_openai(usage) if usage else None,
                finish_reason=choices[0].get("finish_reason"),
                id=payload.get("id"),
                created=payload.get("created"),
                extra={
                    "object": payload.get("object"),
                    "system_fingerprint": payload.get("system_fingerprint"),
                },
            ),
        )

    @classmethod
    def from_anthropic(cls, content: str, payload: dict[str, Any]) -> "ChatResponse":
        """Build from an Anthropic Messages API payload."""
        usage = payload.get("usage")
        return cls(
            content=content,
            metadata=ResponseMetadata(
                model=payload.get("model") or "unknown",
                token_usage=TokenUsage.from_anthropic(usage) if usage else None,
                finish_reason=payload.get("stop_reason"),
                id=payload.get("id"),
                extra={"type": payload.get("type"), "role": payload.get("role")},
            ),
        )

    @classmethod
    def from_gemini(
        cls, content: str, payload: dict[str, Any], model: str
    ) -> "ChatResponse":
        """Build from a Gemini ``generateContent`` payload."""
        usage = payload.get("usageMetadata")
        candidates = payload.get("candidates") or [{}]
        finish_reason = candidates[0].get("finishReason")
        return cls(
            content=content,
            metadata=ResponseMetadata(
                model=model,
                token_usage=TokenUsage.from_gemini(usage) if usage else None,
                finish_reason=str(finish_reason).lower() if finish_reason else None,
                extra={"safety_ratings": candidates[0].get("safetyRatings")},
            ),
        )
