"""Shared fixtures for canvasflow tests."""

import asyncio
from collections.abc import AsyncIterator

import pytest

from canvasflow.config import EngineConfig
from canvasflow.graph.edge import Edge
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import LLMInvocationNode, OutputNode, StartNode, TextPromptNode
from canvasflow.llm.provider import LLMParams, LLMProvider
from canvasflow.llm.stream_events import (
    FinishEvent,
    StreamEvent,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
)
from canvasflow.observability import clear_trace_context


@pytest.fixture(autouse=True)
def _clean_trace_context():
    yield
    clear_trace_context()


@pytest.fixture
def fast_config():
    """No start settle delay and a short abort grace period."""
    return EngineConfig(start_settle_seconds=0.0, abort_grace_seconds=0.2)


@pytest.fixture
def chain_graph():
    """Factory for start -> text -> llm -> output(s)."""

    def build(text: str = "hello", outputs: int = 1, **llm_fields) -> WorkflowGraph:
        nodes = [
            StartNode(id="start"),
            TextPromptNode(id="text", text=text),
            LLMInvocationNode(id="llm", **llm_fields),
        ]
        edges = [
            Edge(id="e-start-text", source="start", target="text"),
            Edge(id="e-text-llm", source="text", target="llm"),
        ]
        for i in range(1, outputs + 1):
            nodes.append(OutputNode(id=f"out{i}"))
            edges.append(Edge(id=f"e-llm-out{i}", source="llm", target=f"out{i}"))
        return WorkflowGraph(nodes=nodes, edges=edges)

    return build


class ScriptedLLMProvider(LLMProvider):
    """Plays back a fixed list of stream events for every call.

    Args:
        events: Events yielded in order by each stream() call
        delay: Seconds to sleep before each event
        raise_after: If set, raise RuntimeError(raise_message) after this
            many events instead of finishing the stream
    """

    def __init__(
        self,
        events: list[StreamEvent],
        delay: float = 0.0,
        raise_after: int | None = None,
        raise_message: str = "connection reset",
    ):
        self.events = list(events)
        self.delay = delay
        self.raise_after = raise_after
        self.raise_message = raise_message
        self.calls: list[tuple[str, LLMParams]] = []
        self.closed = 0

    async def stream(self, prompt: str, params: LLMParams) -> AsyncIterator[StreamEvent]:
        self.calls.append((prompt, params))
        try:
            for i, event in enumerate(self.events):
                if self.raise_after is not None and i >= self.raise_after:
                    raise RuntimeError(self.raise_message)
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield event
        finally:
            self.closed += 1


def text_stream(*snapshots: str, output_tokens: int = 0) -> list[StreamEvent]:
    """Start, one delta per cumulative snapshot, end and finish."""
    events: list[StreamEvent] = [StreamStartEvent(model="scripted")]
    previous = ""
    for snapshot in snapshots:
        events.append(TextDeltaEvent(content=snapshot[len(previous) :], snapshot=snapshot))
        previous = snapshot
    events.append(TextEndEvent(full_text=previous))
    events.append(FinishEvent(stop_reason="stop", output_tokens=output_tokens, model="scripted"))
    return events


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLMProvider."""
    return ScriptedLLMProvider


@pytest.fixture
def stream_of():
    """Factory for a successful scripted event list."""
    return text_stream
