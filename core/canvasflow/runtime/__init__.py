"""Runtime services shared by a running workflow."""

from canvasflow.runtime.event_bus import EventBus, EventType, WorkflowEvent

__all__ = ["EventBus", "EventType", "WorkflowEvent"]
