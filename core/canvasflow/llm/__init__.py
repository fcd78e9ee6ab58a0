"""Model streaming service abstraction."""

from canvasflow.llm.litellm import LiteLLMProvider
from canvasflow.llm.mock import MockLLMProvider
from canvasflow.llm.provider import LLMParams, LLMProvider, LLMResponse
from canvasflow.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
)

__all__ = [
    "LLMProvider",
    "LLMParams",
    "LLMResponse",
    "LiteLLMProvider",
    "MockLLMProvider",
    "StreamEvent",
    "StreamStartEvent",
    "TextDeltaEvent",
    "TextEndEvent",
    "FinishEvent",
    "StreamErrorEvent",
]
