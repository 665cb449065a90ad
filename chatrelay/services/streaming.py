"""Incremental parser for provider server-sent event streams.

Providers deliver streamed completions as newline-delimited ``data:``
records. Transport chunks split records at arbitrary byte offsets, so
the reassembler keeps the unterminated tail between ``feed`` calls and
only parses complete lines.
"""

from collections import deque
from typing import Any

import orjson

from chatrelay.core.logging import get_logger

logger = get_logger(__name__)

DATA_PREFIX = b"data:"
DONE_SENTINEL = b"[DONE]"


def extract_text(payload: Any) -> str | None:
    """Pull the incremental text out of a decoded stream record.

    Recognizes OpenAI-style ``choices[0].delta.content``, Anthropic
    ``content_block_delta`` events and Gemini ``candidates[0].content.parts[0].text``.
    """
    if not isinstance(payload, dict):
        return None

    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        delta = choices[0].get("delta") if isinstance(choices[0], dict) else None
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            return delta["content"]

    if payload.get("type") == "content_block_delta":
        delta = payload.get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("text"), str):
            return delta["text"]

    candidates = payload.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list) and parts and isinstance(parts[0], dict):
            text = parts[0].get("text")
            if isinstance(text, str):
                return text

    return None


class StreamReassembler:
    """Turns raw stream bytes into an ordered queue of text fragments."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._fragments: deque[str] = deque()
        self._done = False

    @property
    def done(self) -> bool:
        """True once the terminal ``[DONE]`` record has been seen."""
        return self._done

    def feed(self, raw: bytes | str) -> None:
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        self._buffer.extend(raw)

        *lines, tail = bytes(self._buffer).split(b"\n")
        self._buffer = bytearray(tail)

        for line in lines:
            line = line.strip()
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX) :].strip()
            if data == DONE_SENTINEL:
                self._done = True
                break
            try:
                payload = orjson.loads(data)
            except orjson.JSONDecodeError:
                logger.debug("Skipping malformed stream record", record=data[:200])
                continue
            text = extract_text(payload)
            if text:
                self._fragments.append(text)

    def has_fragment(self) -> bool:
        return bool(self._fragments)

    def next_fragment(self) -> str | None:
        return self._fragments.popleft() if self._fragments else None

    def drain_all(self) -> list[str]:
        fragments = list(self._fragments)
        self._fragments.clear()
        return fragments

    def reset(self) -> None:
        self._buffer.clear()
        self._fragments.clear()
        self._done = False
