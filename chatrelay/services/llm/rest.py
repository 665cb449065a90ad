"""Backends that talk to provider REST endpoints directly over httpx.

Streamed responses are server-sent events parsed by ``StreamReassembler``,
except Ollama, which streams newline-delimited JSON.
"""

from abc import abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx
import orjson

from chatrelay.core.config import get_settings
from chatrelay.core.exceptions import ApiError, LLMProviderError, NetworkError
from chatrelay.core.logging import get_logger
from chatrelay.services.llm.base import RequestOptions, StreamingBackend
from chatrelay.services.response import ChatResponse, ResponseMetadata, TokenUsage
from chatrelay.services.streaming import StreamReassembler

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class HttpBackend(StreamingBackend):
    """Shared plumbing: persistent client, error mapping, SSE streaming."""

    requires_api_key = True

    def __init__(
        self,
        api_key: str,
        model: str,
        endpoint: str,
        streaming: bool = True,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(model, streaming)
        self.api_key = api_key
        self.endpoint = endpoint
        self._timeout = timeout or get_settings().backend_timeout
        self._client = client

        if self.requires_api_key and not self.api_key:
            logger.warning("API key not configured", provider=self.provider_name)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create persistent HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    @abstractmethod
    def _payload(
        self, message: str, options: RequestOptions, model: str, stream: bool
    ) -> dict[str, Any]: ...

    @abstractmethod
    def _parse(self, data: dict[str, Any], model: str) -> ChatResponse: ...

    def _require_key(self) -> None:
        if self.requires_api_key and not self.api_key:
            raise LLMProviderError(self.provider_name, "API key not configured")

    def _api_error(self, status_code: int, body: str) -> ApiError:
        return ApiError(
            self.provider_name,
            f"HTTP {status_code}: {body[:200]}",
            status_code=status_code,
            response_body=body,
        )

    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        self._require_key()
        options = RequestOptions.from_context(context)
        model = self.resolve_model(options)
        client = await self._get_client()

        try:
            response = await client.post(
                self.endpoint,
                headers=self._headers(),
                json=self._payload(message, options, model, stream=False),
            )
        except httpx.RequestError as e:
            logger.error("Provider request failed", provider=self.provider_name, error=str(e))
            raise NetworkError(self.provider_name, str(e)) from e

        if response.status_code >= 400:
            raise self._api_error(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(
                self.provider_name,
                "Invalid JSON in response",
                status_code=response.status_code,
                response_body=response.text,
            ) from e
        return self._parse(data, model)

    async def stream(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]:
        self._require_key()
        options = RequestOptions.from_context(context)
        model = self.resolve_model(options)
        client = await self._get_client()

        try:
            async with client.stream(
                "POST",
                self.endpoint,
                headers=self._headers(),
                json=self._payload(message, options, model, stream=True),
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self._api_error(response.status_code, body)

                async for fragment in self._fragments(response):
                    yield fragment
        except httpx.RequestError as e:
            logger.error("Provider stream failed", provider=self.provider_name, error=str(e))
            raise NetworkError(self.provider_name, str(e)) from e

    async def _fragments(self, response: httpx.Response) -> AsyncIterator[str]:
        """Text fragments from a server-sent event body."""
        reassembler = StreamReassembler()
        async for chunk in response.aiter_bytes():
            reassembler.feed(chunk)
            while reassembler.has_fragment():
                yield reassembler.next_fragment()  # type: ignore[misc]
            if reassembler.done:
                break


class AnthropicBackend(HttpBackend):
    """Adapter for the Anthropic Messages API."""

    provider_name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
        endpoint: str | None = None,
        **kwargs: Any,
    ) -> None:
        settings = get_settings()
        super().__init__(
            api_key or settings.anthropic_api_key,
            model,
            endpoint or settings.anthropic_endpoint,
            **kwargs,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _payload(
        self, message: str, options: RequestOptions, model: str, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "system": options.prompt,
            "messages": options.chat_messages(message, with_system=False),
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if stream:
            payload["stream"] = True
        return payload

    def _parse(self, data: dict[str, Any], model: str) -> ChatResponse:
        blocks = data.get("content") or []
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        data.setdefault("model", model)
        return ChatResponse.from_anthropic(text, data)


class OpenAICompatibleBackend(HttpBackend):
    """Chat-completions endpoint speaking the OpenAI wire format (xAI, DeepSeek, Meta)."""

    provider_name = "openai-compatible"

    def __init__(
        self,
        api_key: str,
        model: str,
        endpoint: str,
        provider_name: str | None = None,
        **kwargs: Any,
    ) -> None:
        if provider_name:
            self.provider_name = provider_name
        super().__init__(api_key, model, endpoint, **kwargs)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(
        self, message: str, options: RequestOptions, model: str, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": options.chat_messages(message),
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if stream:
            payload["stream"] = True
        return payload

    def _parse(self, data: dict[str, Any], model: str) -> ChatResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ApiError(self.provider_name, "Response has no choices", response_body=str(data))
        content = (choices[0].get("message") or {}).get("content") or ""
        data.setdefault("model", model)
        return ChatResponse.from_openai(content, data)


def xai_backend(
    api_key: str | None = None, model: str = "grok-2-1212", **kwargs: Any
) -> OpenAICompatibleBackend:
    settings = get_settings()
    return OpenAICompatibleBackend(
        api_key or settings.xai_api_key,
        model,
        kwargs.pop("endpoint", None) or settings.xai_endpoint,
        provider_name="xai",
        **kwargs,
    )


def deepseek_backend(
    api_key: str | None = None, model: str = "deepseek-chat", **kwargs: Any
) -> OpenAICompatibleBackend:
    settings = get_settings()
    return OpenAICompatibleBackend(
        api_key or settings.deepseek_api_key,
        model,
        kwargs.pop("endpoint", None) or settings.deepseek_endpoint,
        provider_name="deepseek",
        **kwargs,
    )


def meta_backend(
    api_key: str | None = None, model: str = "llama-3.3-70b-versatile", **kwargs: Any
) -> OpenAICompatibleBackend:
    settings = get_settings()
    return OpenAICompatibleBackend(
        api_key or settings.meta_api_key,
        model,
        kwargs.pop("endpoint", None) or settings.meta_endpoint,
        provider_name="meta",
        **kwargs,
    )


class OllamaBackend(HttpBackend):
    """Adapter for a local or remote Ollama server's ``/api/chat`` endpoint.

    The API key is optional; it is sent as a bearer token when set, for
    servers behind an authenticating proxy.
    """

    provider_name = "ollama"
    requires_api_key = False

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "llama3.2",
        base_url: str | None = None,
        **kwargs: Any,
    ) -> None:
        settings = get_settings()
        base = (base_url or settings.ollama_base_url).rstrip("/")
        super().__init__(
            api_key or settings.ollama_api_key,
            model,
            kwargs.pop("endpoint", None) or f"{base}/api/chat",
            **kwargs,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(
        self, message: str, options: RequestOptions, model: str, stream: bool
    ) -> dict[str, Any]:
        return {
            "model": model,
            "messages": options.chat_messages(message),
            "stream": stream,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }

    def _parse(self, data: dict[str, Any], model: str) -> ChatResponse:
        message = data.get("message")
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise ApiError(self.provider_name, "Response has no message", response_body=str(data))

        prompt = int(data.get("prompt_eval_count") or 0)
        completion = int(data.get("eval_count") or 0)
        return ChatResponse(
            content=message["content"],
            metadata=ResponseMetadata(
                model=data.get("model") or model,
                token_usage=TokenUsage(prompt, completion, prompt + completion),
                finish_reason=data.get("done_reason"),
                extra={"created_at": data.get("created_at")},
            ),
        )

    async def _fragments(self, response: httpx.Response) -> AsyncIterator[str]:
        """Text fragments from a newline-delimited JSON body."""
        async for line in response.aiter_lines():
            if not line.strip():
                continue
            try:
                record = orjson.loads(line)
            except orjson.JSONDecodeError:
                logger.debug("Skipping malformed stream record", record=line[:200])
                continue
            if not isinstance(record, dict):
                continue
            message = record.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                if message["content"]:
                    yield message["content"]
            if record.get("done"):
                break
