"""Tests for the EventBus pub/sub layer."""

import asyncio

import pytest

from canvasflow.runtime.event_bus import EventBus, EventType, WorkflowEvent


@pytest.mark.asyncio
async def test_subscribers_receive_matching_events():
    bus = EventBus()
    received: list[WorkflowEvent] = []

    async def handler(event):
        received.append(event)

    bus.subscribe([EventType.NODE_STARTED], handler)
    await bus.emit_node_started("run-1", "llm-1", "llm_invocation")
    await bus.emit_node_completed("run-1", "llm-1", latency_ms=5)

    assert len(received) == 1
    assert received[0].node_id == "llm-1"
    assert received[0].data == {"kind": "llm_invocation"}


@pytest.mark.asyncio
async def test_node_and_run_filters():
    bus = EventBus()
    received: list[str] = []

    async def handler(event):
        received.append(f"{event.run_id}/{event.node_id}")

    bus.subscribe([EventType.NODE_FAILED], handler, filter_node="a", filter_run="r1")
    await bus.emit_node_failed("r1", "a", "x")
    await bus.emit_node_failed("r1", "b", "x")
    await bus.emit_node_failed("r2", "a", "x")

    assert received == ["r1/a"]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    calls = []

    async def handler(event):
        calls.append(event)

    sub_id = bus.subscribe([EventType.RUN_STARTED], handler)
    assert bus.unsubscribe(sub_id) is True
    assert bus.unsubscribe(sub_id) is False

    await bus.emit_run_started("r", node_count=1)
    assert calls == []


@pytest.mark.asyncio
async def test_handler_error_does_not_break_publish():
    bus = EventBus()
    received = []

    async def broken(event):
        raise ValueError("boom")

    async def healthy(event):
        received.append(event)

    bus.subscribe([EventType.RUN_COMPLETED], broken)
    bus.subscribe([EventType.RUN_COMPLETED], healthy)
    await bus.emit_run_completed("r", "completed", [])

    assert len(received) == 1


@pytest.mark.asyncio
async def test_history_is_bounded_and_most_recent_first():
    bus = EventBus(max_history=3)
    for i in range(5):
        await bus.emit(EventType.OUTPUT_STREAM_DELTA, "r", "llm", content=str(i))

    history = bus.get_history()
    assert [e.data["content"] for e in history] == ["4", "3", "2"]
    assert bus.get_stats()["events_by_type"] == {"output_stream_delta": 3}


@pytest.mark.asyncio
async def test_wait_for():
    bus = EventBus()

    async def later():
        await asyncio.sleep(0.01)
        await bus.emit_run_aborted("r", in_flight=["llm"])

    task = asyncio.create_task(later())
    event = await bus.wait_for(EventType.RUN_ABORTED, timeout=1)
    await task

    assert event.data["in_flight"] == ["llm"]
    assert bus.get_stats()["subscriptions"] == 0


@pytest.mark.asyncio
async def test_wait_for_timeout():
    assert await EventBus().wait_for(EventType.RUN_FAILED, timeout=0.01) is None


def test_to_dict():
    event = WorkflowEvent(
        type=EventType.RUN_FAILED, run_id="r", data={"error": "No start node found"}
    )
    data = event.to_dict()
    assert data["type"] == "run_failed"
    assert data["data"] == {"error": "No start node found"}
    assert "timestamp" in data
