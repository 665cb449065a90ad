"""Services module exports."""

from chatrelay.services.cache import ResponseCache, get_response_cache, make_key
from chatrelay.services.chat import ChatOrchestrator, ResponseStream, get_chat_orchestrator
from chatrelay.services.cost import CostCalculator
from chatrelay.services.filter import MessageFilter, get_message_filter
from chatrelay.services.llm import ChatBackend, StreamingBackend, create_backend, list_backends
from chatrelay.services.memory import ConversationMemory, get_conversation_memory
from chatrelay.services.response import ChatResponse, ResponseMetadata, TokenUsage
from chatrelay.services.streaming import StreamReassembler
from chatrelay.services.throttle import (
    MemoryThrottleGate,
    RedisThrottleGate,
    ThrottleDecision,
    ThrottleGate,
)

__all__ = [
    # Cache
    "ResponseCache",
    "get_response_cache",
    "make_key",
    # Chat
    "ChatOrchestrator",
    "ResponseStream",
    "get_chat_orchestrator",
    # Cost
    "CostCalculator",
    # Filter
    "MessageFilter",
    "get_message_filter",
    # LLM
    "ChatBackend",
    "StreamingBackend",
    "create_backend",
    "list_backends",
    # Memory
    "ConversationMemory",
    "get_conversation_memory",
    # Responses
    "ChatResponse",
    "ResponseMetadata",
    "TokenUsage",
    # Streaming
    "StreamReassembler",
    # Throttling
    "MemoryThrottleGate",
    "RedisThrottleGate",
    "ThrottleDecision",
    "ThrottleGate",
]
