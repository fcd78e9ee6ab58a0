"""Workflow graph: nodes, edges, history, readiness, executors and scheduler."""

from canvasflow.graph.broadcast import StreamingBroadcaster
from canvasflow.graph.edge import Edge, GraphSpec
from canvasflow.graph.errors import (
    CancellationError,
    CyclicOrDisconnectedGraphError,
    EmptyInputError,
    InvalidGraphError,
    InvalidUpdateError,
    ModelServiceError,
    NodeNotFoundError,
    NoStartNodeError,
    RunInProgressError,
    WorkflowError,
)
from canvasflow.graph.executors import EXECUTORS, ExecutionContext, NodeExecutor
from canvasflow.graph.history import MAX_HISTORY_ENTRIES, TextHistory
from canvasflow.graph.model import GraphSnapshot, NodeUpdate, WorkflowGraph
from canvasflow.graph.node import (
    BaseNode,
    HistoryEntry,
    HistoryLog,
    LLMInvocationNode,
    Node,
    NodeKind,
    NodeStatus,
    OutputNode,
    StartNode,
    TextPromptNode,
    parse_node,
)
from canvasflow.graph.readiness import blocked_by_failure, cycle_among, is_ready, ready_set
from canvasflow.graph.scheduler import RunResult, RunState, RunStatus, WorkflowScheduler

__all__ = [
    # Nodes
    "Node",
    "BaseNode",
    "NodeKind",
    "NodeStatus",
    "StartNode",
    "TextPromptNode",
    "LLMInvocationNode",
    "OutputNode",
    "HistoryEntry",
    "HistoryLog",
    "parse_node",
    # Edges / documents
    "Edge",
    "GraphSpec",
    # Live graph
    "WorkflowGraph",
    "GraphSnapshot",
    "NodeUpdate",
    # History
    "TextHistory",
    "MAX_HISTORY_ENTRIES",
    # Readiness
    "is_ready",
    "ready_set",
    "blocked_by_failure",
    "cycle_among",
    # Execution
    "NodeExecutor",
    "ExecutionContext",
    "EXECUTORS",
    "StreamingBroadcaster",
    "WorkflowScheduler",
    "RunStatus",
    "RunState",
    "RunResult",
    # Errors
    "WorkflowError",
    "NoStartNodeError",
    "CyclicOrDisconnectedGraphError",
    "EmptyInputError",
    "ModelServiceError",
    "CancellationError",
    "NodeNotFoundError",
    "InvalidUpdateError",
    "InvalidGraphError",
    "RunInProgressError",
]
