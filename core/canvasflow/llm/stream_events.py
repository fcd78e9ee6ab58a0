"""Stream event types for streaming model replies.

Defines a discriminated union of frozen dataclasses representing every event
a streaming completion can produce. These types form the contract between the
provider layer and the LLM invocation executor:

    StreamStartEvent -> TextDeltaEvent* -> TextEndEvent -> FinishEvent
    StreamStartEvent -> TextDeltaEvent* -> StreamErrorEvent
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class StreamStartEvent:
    """The service accepted the request and is about to stream."""

    type: Literal["start"] = "start"
    model: str = ""


@dataclass(frozen=True)
class TextDeltaEvent:
    """A chunk of text produced by the model."""

    type: Literal["text_delta"] = "text_delta"
    content: str = ""  # this chunk's text
    snapshot: str = ""  # accumulated text so far


@dataclass(frozen=True)
class TextEndEvent:
    """Signals that text generation is complete."""

    type: Literal["text_end"] = "text_end"
    full_text: str = ""


@dataclass(frozen=True)
class FinishEvent:
    """The model has finished generating."""

    type: Literal["finish"] = "finish"
    stop_reason: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def token_count(self) -> int | None:
        """Total tokens, or None when the service reported no usage."""
        total = self.input_tokens + self.output_tokens
        return total or None


@dataclass(frozen=True)
class StreamErrorEvent:
    """An error occurred during streaming."""

    type: Literal["error"] = "error"
    error: str = ""


# Discriminated union of all stream event types
StreamEvent = StreamStartEvent | TextDeltaEvent | TextEndEvent | FinishEvent | StreamErrorEvent
