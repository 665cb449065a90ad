"""Backends built on the official provider SDKs.

- OpenAI via ``openai.AsyncOpenAI``
- Google Gemini via ``google-genai``
"""

from collections.abc import AsyncIterator, Mapping
from typing import Any

import openai
from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam

from chatrelay.core.config import get_settings
from chatrelay.core.exceptions import ApiError, LLMProviderError, NetworkError
from chatrelay.core.logging import get_logger
from chatrelay.services.llm.base import ModelInfo, RequestOptions, StreamingBackend
from chatrelay.services.response import ChatResponse

logger = get_logger(__name__)


def _wrap_openai_error(provider: str, e: Exception) -> LLMProviderError:
    if isinstance(e, openai.APIStatusError):
        return ApiError(provider, str(e), status_code=e.status_code, response_body=e.response.text)
    if isinstance(e, openai.APIConnectionError):
        return NetworkError(provider, str(e))
    return LLMProviderError(provider, str(e))


class OpenAIBackend(StreamingBackend):
    """Adapter for OpenAI chat-completions models."""

    provider_name = "openai"

    MODELS = [
        ModelInfo("gpt-4o", "GPT-4o", "openai", 128000),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", "openai", 128000),
        ModelInfo("gpt-4-turbo", "GPT-4 Turbo", "openai", 128000),
        ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", "openai", 16385),
    ]

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        streaming: bool = True,
        client: AsyncOpenAI | None = None,
    ) -> None:
        super().__init__(model, streaming)
        self.api_key = api_key or get_settings().openai_api_key
        self._client = client

        if not self.api_key and client is None:
            logger.warning("OpenAI API key not configured")

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    def get_available_models(self) -> list[ModelInfo]:
        return self.MODELS

    def _require_key(self) -> None:
        if not self.api_key and self._client is None:
            raise LLMProviderError(self.provider_name, "API key not configured")

    def _to_messages(self, options: RequestOptions, message: str) -> list[ChatCompletionMessageParam]:
        return options.chat_messages(message)  # type: ignore[return-value]

    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        self._require_key()
        options = RequestOptions.from_context(context)
        model = self.resolve_model(options)

        try:
            completion = await self.client.chat.completions.create(
                model=model,
                messages=self._to_messages(options, message),
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except Exception as e:
            logger.error("OpenAI request error", error=str(e), model=model)
            raise _wrap_openai_error(self.provider_name, e) from e

        content = completion.choices[0].message.content if completion.choices else None
        return ChatResponse.from_openai(content or "", completion.model_dump())

    async def stream(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]:
        self._require_key()
        options = RequestOptions.from_context(context)
        model = self.resolve_model(options)

        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=self._to_messages(options, message),
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                stream=True,
            )

            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except Exception as e:
            logger.error("OpenAI streaming error", error=str(e), model=model)
            raise _wrap_openai_error(self.provider_name, e) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class GeminiBackend(StreamingBackend):
    """Adapter for Google Gemini models."""

    provider_name = "gemini"

    MODELS = [
        ModelInfo("gemini-2.0-flash", "Gemini 2.0 Flash", "gemini", 1000000),
        ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", "gemini", 2000000),
        ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", "gemini", 1000000),
    ]

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-1.5-flash",
        streaming: bool = True,
        client: genai.Client | None = None,
    ) -> None:
        super().__init__(model, streaming)
        self.api_key = api_key or get_settings().gemini_api_key
        self._client = client

        if not self.api_key and client is None:
            logger.warning("Gemini API key not configured")

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def get_available_models(self) -> list[ModelInfo]:
        return self.MODELS

    def _require_key(self) -> None:
        if not self.api_key and self._client is None:
            raise LLMProviderError(self.provider_name, "API key not configured")

    def _to_contents(self, options: RequestOptions, message: str) -> list[genai_types.Content]:
        """Convert chat messages to Gemini content format."""
        return [
            genai_types.Content(
                role="model" if msg["role"] == "assistant" else "user",
                parts=[genai_types.Part.from_text(text=msg["content"])],
            )
            for msg in options.chat_messages(message, with_system=False)
        ]

    def _config(self, options: RequestOptions) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            system_instruction=options.prompt,
        )

    async def generate(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> ChatResponse:
        self._require_key()
        options = RequestOptions.from_context(context)
        model = self.resolve_model(options)

        try:
            result = await self.client.aio.models.generate_content(
                model=model,
                contents=self._to_contents(options, message),
                config=self._config(options),
            )
        except Exception as e:
            logger.error("Gemini request error", error=str(e), model=model)
            raise LLMProviderError(self.provider_name, str(e)) from e

        payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
        return ChatResponse.from_gemini(result.text or "", payload, model)

    async def stream(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]:
        self._require_key()
        options = RequestOptions.from_context(context)
        model = self.resolve_model(options)

        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=model,
                contents=self._to_contents(options, message),
                config=self._config(options),
            )

            async for chunk in stream:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            logger.error("Gemini streaming error", error=str(e), model=model)
            raise LLMProviderError(self.provider_name, str(e)) from e
