"""Pre-processing of user messages before they reach a backend."""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from chatrelay.core.config import get_settings

DEFAULT_LINK_PATTERN = r"https?://[\w\.-]+"
LINK_REPLACEMENT = "[link removed]"
PROFANITY_REPLACEMENT = "[censored]"
AGGRESSION_NOTICE = " [Please use respectful language.]"


@dataclass
class FilteredMessage:
    message: str
    context: dict[str, Any]


class MessageFilter:
    """Redacts links, censors profanity and flags aggressive wording.

    Configured instructions are attached to the context as
    ``system_instructions`` so backends fold them into the system prompt
    without exposing them in the conversation history.
    """

    def __init__(
        self,
        instructions: list[str] | None = None,
        profanities: list[str] | None = None,
        aggression_patterns: list[str] | None = None,
        link_pattern: str | None = None,
    ) -> None:
        self.instructions = list(instructions or [])
        self._link_re = re.compile(link_pattern or DEFAULT_LINK_PATTERN, re.IGNORECASE)
        self._profanity_re = (
            re.compile("|".join(re.escape(p) for p in profanities), re.IGNORECASE)
            if profanities
            else None
        )
        self._aggression_re = (
            re.compile("|".join(re.escape(p) for p in aggression_patterns), re.IGNORECASE)
            if aggression_patterns
            else None
        )

    def filter_text(self, message: str) -> str:
        message = self._link_re.sub(LINK_REPLACEMENT, message)
        if self._profanity_re:
            message = self._profanity_re.sub(PROFANITY_REPLACEMENT, message)
        if self._aggression_re and self._aggression_re.search(message):
            message += AGGRESSION_NOTICE
        return message

    def apply(self, message: str, context: dict[str, Any] | None = None) -> FilteredMessage:
        context = dict(context or {})
        if self.instructions:
            context["system_instructions"] = " ".join(self.instructions)
        return FilteredMessage(self.filter_text(message), context)


@lru_cache
def get_message_filter() -> MessageFilter:
    """Get the filter configured from settings (cached)."""
    settings = get_settings()
    return MessageFilter(
        instructions=settings.filter_instructions,
        profanities=settings.filter_profanities,
        aggression_patterns=settings.filter_aggression_patterns,
    )
