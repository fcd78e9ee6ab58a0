"""Deterministic offline provider for demos and tests."""

import asyncio
from collections.abc import AsyncIterator

from canvasflow.llm.provider import LLMParams, LLMProvider
from canvasflow.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
)


class MockLLMProvider(LLMProvider):
    """
    Streams a canned reply word by word.

    With no reply configured it echoes the prompt back, which is enough to
    watch a graph run end to end without an API key.

    Args:
        reply: Fixed reply text; None echoes the prompt
        chunk_delay: Seconds to sleep between chunks
        error: If set, the stream fails with this message after the chunks
            listed in ``fail_after``
        fail_after: Number of chunks emitted before ``error`` is raised
    """

    def __init__(
        self,
        reply: str | None = None,
        chunk_delay: float = 0.0,
        error: str | None = None,
        fail_after: int = 0,
    ):
        self.reply = reply
        self.chunk_delay = chunk_delay
        self.error = error
        self.fail_after = fail_after
        self.calls: list[tuple[str, LLMParams]] = []

    @staticmethod
    def _chunks(text: str) -> list[str]:
        words = text.split(" ")
        pieces = [w + " " for w in words[:-1]] + [words[-1]]
        return [p for p in pieces if p]

    async def stream(self, prompt: str, params: LLMParams) -> AsyncIterator[StreamEvent]:
        self.calls.append((prompt, params))
        yield StreamStartEvent(model=params.model)

        reply = self.reply if self.reply is not None else f"Echo: {prompt}"
        text = ""
        for i, chunk in enumerate(self._chunks(reply)):
            if self.error is not None and i >= self.fail_after:
                break
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            text += chunk
            yield TextDeltaEvent(content=chunk, snapshot=text)

        if self.error is not None:
            yield StreamErrorEvent(error=self.error)
            return

        yield TextEndEvent(full_text=text)
        yield FinishEvent(
            stop_reason="stop",
            input_tokens=len(prompt.split()),
            output_tokens=len(reply.split()),
            model=params.model,
        )
