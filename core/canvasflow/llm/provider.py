"""LLM Provider abstraction for pluggable streaming model backends."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

from canvasflow.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
)


@dataclass(frozen=True)
class LLMParams:
    """Per-invocation model settings, taken from an LLM invocation node."""

    model: str
    temperature: float = 0.7
    max_tokens: int = 150
    system_prompt: str | None = None


@dataclass
class LLMResponse:
    """Response from a non-streaming completion."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""

    @property
    def token_count(self) -> int | None:
        total = self.input_tokens + self.output_tokens
        return total or None


class LLMProvider(ABC):
    """
    Abstract streaming text service - plug in any model backend.

    Implementations should handle:
    - API authentication
    - Request formatting
    - Usage reporting on the FinishEvent
    - Reporting failures as a StreamErrorEvent (raising also works; the
      executor treats an exception escaping stream() the same way)
    """

    @abstractmethod
    def stream(self, prompt: str, params: LLMParams) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion of ``prompt`` as an async iterator of StreamEvents.

        Args:
            prompt: The user prompt (concatenated upstream text)
            params: Model, temperature, token limit and optional system prompt

        Yields:
            StreamStartEvent, then TextDeltaEvents carrying cumulative
            snapshots, then TextEndEvent + FinishEvent or a StreamErrorEvent
        """

    async def complete(self, prompt: str, params: LLMParams) -> LLMResponse:
        """
        Collect a whole completion.

        Default implementation drains stream(); raises RuntimeError on a
        stream error.
        """
        text = ""
        finish = FinishEvent()
        async for event in self.stream(prompt, params):
            if isinstance(event, TextDeltaEvent):
                text = event.snapshot
            elif isinstance(event, TextEndEvent):
                text = event.full_text
            elif isinstance(event, FinishEvent):
                finish = event
            elif isinstance(event, StreamErrorEvent):
                raise RuntimeError(f"Stream error: {event.error}")

        return LLMResponse(
            content=text,
            model=finish.model or params.model,
            input_tokens=finish.input_tokens,
            output_tokens=finish.output_tokens,
            stop_reason=finish.stop_reason,
        )
