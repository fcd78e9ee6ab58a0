"""
Node Executors - One strategy per node kind.

Each executor receives the latest version of its node and an
ExecutionContext holding the shared graph. An executor moves its node to
RUNNING and, on success, to SUCCESS. Failures are raised; the scheduler
records them on the node.

Dispatch goes through the EXECUTORS table keyed by NodeKind.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field

from canvasflow.config import EngineConfig
from canvasflow.graph.broadcast import StreamingBroadcaster
from canvasflow.graph.errors import CancellationError, EmptyInputError, ModelServiceError
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import BaseNode, LLMInvocationNode, NodeKind, NodeStatus
from canvasflow.llm.provider import LLMParams, LLMProvider
from canvasflow.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
)

logger = logging.getLogger(__name__)

INPUT_SEPARATOR = "\n\n"


@dataclass
class ExecutionContext:
    """Everything an executor may touch during one run."""

    graph: WorkflowGraph
    broadcaster: StreamingBroadcaster
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    llm: LLMProvider | None = None
    config: EngineConfig = field(default_factory=EngineConfig)
    run_id: str = ""

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CancellationError()


def gather_input_text(graph: WorkflowGraph, node_id: str) -> str:
    """Join the text of every upstream node, in edge order, with blank lines."""
    parts = [upstream.input_text() for upstream in graph.inputs_of(node_id)]
    return INPUT_SEPARATOR.join(part for part in parts if part)


class NodeExecutor(ABC):
    """Strategy for running one kind of node."""

    kind: NodeKind

    @abstractmethod
    async def execute(self, node: BaseNode, ctx: ExecutionContext) -> None:
        """Run ``node``; raise to report failure."""


class StartExecutor(NodeExecutor):
    """A barrier with no inputs; succeeds after a short settle delay."""

    kind = NodeKind.START

    async def execute(self, node: BaseNode, ctx: ExecutionContext) -> None:
        ctx.graph.apply_status(node.id, NodeStatus.RUNNING)
        if ctx.config.start_settle_seconds > 0:
            await asyncio.sleep(ctx.config.start_settle_seconds)
        ctx.check_cancelled()
        ctx.graph.apply_status(node.id, NodeStatus.SUCCESS)


class TextPromptExecutor(NodeExecutor):
    """Authored text: clears stale downstream output, then succeeds."""

    kind = NodeKind.TEXT_PROMPT

    async def execute(self, node: BaseNode, ctx: ExecutionContext) -> None:
        ctx.graph.apply_status(node.id, NodeStatus.RUNNING)
        await ctx.broadcaster.reset(node.id)
        ctx.graph.apply_status(node.id, NodeStatus.SUCCESS)


class LLMInvocationExecutor(NodeExecutor):
    """
    Streams a model reply over the concatenated input text.

    Every cumulative snapshot is broadcast to all downstream outputs. The
    cancellation event is checked between chunks; once it is set no further
    update is written.
    """

    kind = NodeKind.LLM_INVOCATION

    async def execute(self, node: LLMInvocationNode, ctx: ExecutionContext) -> None:
        ctx.graph.apply_status(node.id, NodeStatus.RUNNING)

        prompt = gather_input_text(ctx.graph, node.id)
        if not prompt.strip():
            raise EmptyInputError()

        await ctx.broadcaster.reset(node.id)
        ctx.check_cancelled()

        if ctx.llm is None:
            message = "No model service configured"
            await ctx.broadcaster.fail(node.id, message)
            raise ModelServiceError(message)

        params = LLMParams(
            model=node.model,
            temperature=node.temperature,
            max_tokens=node.max_tokens,
            system_prompt=node.system_prompt,
        )
        logger.info(f"Invoking {params.model} with {len(prompt)} chars of input")

        started = False
        text = ""
        token_count: int | None = None
        try:
            async with aclosing(ctx.llm.stream(prompt, params)) as events:
                async for event in events:
                    ctx.check_cancelled()

                    if isinstance(event, StreamErrorEvent):
                        raise ModelServiceError(event.error or "Unknown error occurred")

                    if not started and isinstance(event, StreamStartEvent | TextDeltaEvent):
                        await ctx.broadcaster.begin(node.id)
                        started = True

                    if isinstance(event, TextDeltaEvent):
                        text = event.snapshot
                        await ctx.broadcaster.content(node.id, text)
                    elif isinstance(event, TextEndEvent):
                        text = event.full_text
                    elif isinstance(event, FinishEvent):
                        token_count = event.token_count
        except (CancellationError, asyncio.CancelledError):
            logger.info(f"Stream for {node.id} stopped by cancellation")
            raise
        except ModelServiceError as e:
            await ctx.broadcaster.fail(node.id, str(e))
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            await ctx.broadcaster.fail(node.id, message)
            raise ModelServiceError(message) from e

        ctx.check_cancelled()
        await ctx.broadcaster.complete(node.id, text, token_count=token_count)
        logger.info(
            f"Stream for {node.id} complete: {len(text)} chars",
            extra={"tokens_used": token_count, "model": params.model},
        )


class OutputExecutor(NodeExecutor):
    """
    A sink. Fed by a model, its state is owned by that model's stream and this
    executor does nothing; otherwise it copies the upstream text.
    """

    kind = NodeKind.OUTPUT

    async def execute(self, node: BaseNode, ctx: ExecutionContext) -> None:
        inputs = ctx.graph.inputs_of(node.id)
        if any(upstream.kind == NodeKind.LLM_INVOCATION for upstream in inputs):
            return

        ctx.graph.apply_status(node.id, NodeStatus.RUNNING)
        ctx.graph.apply_update(
            node.id,
            {"content": gather_input_text(ctx.graph, node.id), "is_streaming": False},
        )
        ctx.graph.apply_status(node.id, NodeStatus.SUCCESS)


EXECUTORS: dict[NodeKind, NodeExecutor] = {
    executor.kind: executor
    for executor in (
        StartExecutor(),
        TextPromptExecutor(),
        LLMInvocationExecutor(),
        OutputExecutor(),
    )
}
