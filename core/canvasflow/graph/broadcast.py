"""
Streaming Broadcaster - Fan-out of one producer's stream to its output sinks.

Every write touches all sinks of the producer in a single apply_batch call,
so no reader ever sees one sink ahead of another. The producer's own status
change rides in the same batch when a stream starts, completes or fails.
"""

import logging

from canvasflow.graph.model import NodeUpdate, WorkflowGraph
from canvasflow.graph.node import NodeKind, NodeStatus
from canvasflow.runtime.event_bus import EventBus, EventType

logger = logging.getLogger(__name__)


class StreamingBroadcaster:
    """
    Replicates streaming updates from a producer node to its output sinks.

    Example:
        broadcaster = StreamingBroadcaster(graph, event_bus=bus, run_id=run_id)
        await broadcaster.begin("llm-1")
        await broadcaster.content("llm-1", "Hel")
        await broadcaster.content("llm-1", "Hello")
        await broadcaster.complete("llm-1", "Hello", token_count=2)
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        event_bus: EventBus | None = None,
        run_id: str | None = None,
    ):
        self.graph = graph
        self._event_bus = event_bus
        self._run_id = run_id

    def sinks_of(self, producer_id: str) -> list[str]:
        """Output nodes directly downstream of the producer, without duplicates."""
        sinks: list[str] = []
        for node in self.graph.outputs_of(producer_id):
            if node.kind == NodeKind.OUTPUT and node.id not in sinks:
                sinks.append(node.id)
        return sinks

    async def _broadcast(
        self,
        producer_id: str,
        event_type: EventType,
        sink_update: dict,
        sink_status: NodeStatus | None = None,
        producer_status: NodeStatus | None = None,
        error: str | None = None,
        **event_data,
    ) -> list[str]:
        sinks = self.sinks_of(producer_id)
        updates = [
            NodeUpdate(sink_id, changes=sink_update, status=sink_status, error=error)
            for sink_id in sinks
        ]
        if producer_status is not None:
            updates.append(NodeUpdate(producer_id, status=producer_status, error=error))
        if updates:
            self.graph.apply_batch(updates)

        if self._event_bus:
            if error is not None:
                event_data["error"] = error
            await self._event_bus.emit(
                event_type, self._run_id, producer_id, sinks=sinks, **event_data
            )
        return sinks

    async def reset(self, producer_id: str) -> list[str]:
        """Clear streaming state on every sink before the producer runs again."""
        sinks = await self._broadcast(
            producer_id,
            EventType.OUTPUT_STREAM_RESET,
            {"is_streaming": False, "streamed_content": None, "token_count": None},
        )
        if sinks:
            logger.debug(f"Reset {len(sinks)} output(s) downstream of {producer_id}")
        return sinks

    async def begin(self, producer_id: str) -> list[str]:
        """Mark the producer and all its sinks as running and streaming."""
        return await self._broadcast(
            producer_id,
            EventType.OUTPUT_STREAM_STARTED,
            {"is_streaming": True, "content": "", "streamed_content": ""},
            sink_status=NodeStatus.RUNNING,
            producer_status=NodeStatus.RUNNING,
        )

    async def content(self, producer_id: str, snapshot: str) -> list[str]:
        """Show the cumulative text ``snapshot`` on every sink."""
        return await self._broadcast(
            producer_id,
            EventType.OUTPUT_STREAM_DELTA,
            {"streamed_content": snapshot},
            content=snapshot,
        )

    async def complete(
        self, producer_id: str, final_text: str, token_count: int | None = None
    ) -> list[str]:
        """Commit the final text and mark the producer and sinks successful."""
        return await self._broadcast(
            producer_id,
            EventType.OUTPUT_STREAM_COMPLETED,
            {
                "content": final_text,
                "is_streaming": False,
                "streamed_content": None,
                "token_count": token_count,
            },
            sink_status=NodeStatus.SUCCESS,
            producer_status=NodeStatus.SUCCESS,
            token_count=token_count,
        )

    async def fail(self, producer_id: str, message: str) -> list[str]:
        """Mark the producer and every sink as failed with the same message."""
        return await self._broadcast(
            producer_id,
            EventType.OUTPUT_STREAM_FAILED,
            {"is_streaming": False},
            sink_status=NodeStatus.ERROR,
            producer_status=NodeStatus.ERROR,
            error=message,
        )
