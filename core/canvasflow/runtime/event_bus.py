"""
Event Bus - Pub/sub notifications about workflow runs.

Lets observers (a canvas, a CLI progress printer, tests) follow a run
without reaching into the scheduler:
- Run lifecycle (started, completed, failed, aborted)
- Node lifecycle (started, completed, failed)
- Output streaming (reset, started, delta, completed, failed)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events that can be published."""

    # Run lifecycle
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"
    RUN_ABORTED = "run_aborted"

    # Node lifecycle
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    NODE_FAILED = "node_failed"

    # Output streaming
    OUTPUT_STREAM_RESET = "output_stream_reset"
    OUTPUT_STREAM_STARTED = "output_stream_started"
    OUTPUT_STREAM_DELTA = "output_stream_delta"
    OUTPUT_STREAM_COMPLETED = "output_stream_completed"
    OUTPUT_STREAM_FAILED = "output_stream_failed"


@dataclass
class WorkflowEvent:
    """An event in the workflow engine."""

    type: EventType
    run_id: str | None = None
    node_id: str | None = None  # Which node the event is about
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "run_id": self.run_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[WorkflowEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_node: str | None = None  # Only receive events about this node
    filter_run: str | None = None  # Only receive events from this run


class EventBus:
    """
    Async pub/sub event bus.

    Features:
    - Type-based subscriptions
    - Node/run filtering
    - Bounded event history for debugging

    Example:
        bus = EventBus()

        async def on_delta(event: WorkflowEvent):
            print(event.node_id, event.data["content"])

        bus.subscribe(event_types=[EventType.OUTPUT_STREAM_DELTA], handler=on_delta)
        scheduler = WorkflowScheduler(graph, llm=provider, event_bus=bus)
    """

    def __init__(
        self,
        max_history: int = 1000,
        max_concurrent_handlers: int = 10,
    ):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[WorkflowEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_node: str | None = None,
        filter_run: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_node=filter_node,
            filter_run=filter_run,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns True if it existed."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def publish(self, event: WorkflowEvent) -> None:
        """Publish an event to all matching subscribers."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history :]

        matching_handlers = [
            sub.handler for sub in list(self._subscriptions.values()) if self._matches(sub, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

    def _matches(self, subscription: Subscription, event: WorkflowEvent) -> bool:
        """Check if a subscription matches an event."""
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        if subscription.filter_run and subscription.filter_run != event.run_id:
            return False
        return True

    async def _execute_handlers(
        self,
        event: WorkflowEvent,
        handlers: list[EventHandler],
    ) -> None:
        """Execute handlers concurrently with rate limiting."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Handler error for {event.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers], return_exceptions=True)

    # === CONVENIENCE PUBLISHERS ===

    async def emit(
        self,
        event_type: EventType,
        run_id: str | None = None,
        node_id: str | None = None,
        **data: Any,
    ) -> None:
        event = WorkflowEvent(type=event_type, run_id=run_id, node_id=node_id, data=data)
        await self.publish(event)

    async def emit_run_started(self, run_id: str, node_count: int) -> None:
        await self.emit(EventType.RUN_STARTED, run_id, node_count=node_count)

    async def emit_run_completed(self, run_id: str, status: str, errored: list[str]) -> None:
        await self.emit(EventType.RUN_COMPLETED, run_id, status=status, errored=errored)

    async def emit_run_failed(self, run_id: str, error: str) -> None:
        await self.emit(EventType.RUN_FAILED, run_id, error=error)

    async def emit_run_aborted(self, run_id: str, in_flight: list[str]) -> None:
        await self.emit(EventType.RUN_ABORTED, run_id, in_flight=in_flight)

    async def emit_node_started(self, run_id: str, node_id: str, kind: str) -> None:
        await self.emit(EventType.NODE_STARTED, run_id, node_id, kind=kind)

    async def emit_node_completed(self, run_id: str, node_id: str, latency_ms: int) -> None:
        await self.emit(EventType.NODE_COMPLETED, run_id, node_id, latency_ms=latency_ms)

    async def emit_node_failed(self, run_id: str, node_id: str, error: str) -> None:
        await self.emit(EventType.NODE_FAILED, run_id, node_id, error=error)

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        node_id: str | None = None,
        run_id: str | None = None,
        limit: int = 100,
    ) -> list[WorkflowEvent]:
        """
        Get event history with optional filtering.

        Returns:
            List of matching events (most recent first)
        """
        events = self._event_history[::-1]

        if event_type:
            events = [e for e in events if e.type == event_type]
        if node_id:
            events = [e for e in events if e.node_id == node_id]
        if run_id:
            events = [e for e in events if e.run_id == run_id]

        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": type_counts,
        }

    # === WAITING OPERATIONS ===

    async def wait_for(
        self,
        event_type: EventType,
        node_id: str | None = None,
        run_id: str | None = None,
        timeout: float | None = None,
    ) -> WorkflowEvent | None:
        """
        Wait for a specific event to occur.

        Returns:
            The event if received, None if timeout
        """
        result: WorkflowEvent | None = None
        event_received = asyncio.Event()

        async def handler(event: WorkflowEvent) -> None:
            nonlocal result
            result = event
            event_received.set()

        sub_id = self.subscribe(
            event_types=[event_type],
            handler=handler,
            filter_node=node_id,
            filter_run=run_id,
        )

        try:
            if timeout:
                try:
                    await asyncio.wait_for(event_received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await event_received.wait()

            return result
        finally:
            self.unsubscribe(sub_id)
