"""
Workflow Graph - The single source of truth for nodes, edges and status.

Every reader (scheduler, resolver, executors) works against either the live
WorkflowGraph or an immutable GraphSnapshot taken from it. Every writer goes
through apply_update / apply_status / apply_batch, which replace whole node
objects under a lock, so a reader never observes a half-applied change.

Example:
    graph = WorkflowGraph.from_spec(spec)
    snap = graph.snapshot()
    for upstream in snap.inputs_of("llm-1"):
        ...
    graph.apply_status("llm-1", NodeStatus.RUNNING)
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from canvasflow.graph.edge import Edge, GraphSpec
from canvasflow.graph.errors import InvalidGraphError, InvalidUpdateError, NodeNotFoundError
from canvasflow.graph.node import BaseNode, NodeStatus, with_changes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeUpdate:
    """One node's share of an atomic batch write."""

    node_id: str
    changes: dict[str, Any] = field(default_factory=dict)
    status: NodeStatus | None = None
    error: str | None = None


class GraphSnapshot:
    """Read-only view of the graph at one instant."""

    def __init__(self, nodes: Iterable[BaseNode], edges: Iterable[Edge], version: int = 0):
        self._nodes: dict[str, BaseNode] = {node.id: node for node in nodes}
        self._edges: tuple[Edge, ...] = tuple(edges)
        self.version = version

    @property
    def nodes(self) -> list[BaseNode]:
        return list(self._nodes.values())

    def node_ids(self) -> list[str]:
        return list(self._nodes)

    def get_node(self, node_id: str) -> BaseNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def find_node(self, node_id: str) -> BaseNode | None:
        return self._nodes.get(node_id)

    def get_edges(self) -> tuple[Edge, ...]:
        return self._edges

    def inputs_of(self, node_id: str) -> list[BaseNode]:
        """Nodes with an edge into ``node_id``, in edge-list order."""
        return [
            self._nodes[e.source]
            for e in self._edges
            if e.target == node_id and e.source in self._nodes
        ]

    def outputs_of(self, node_id: str) -> list[BaseNode]:
        """Nodes with an edge out of ``node_id``, in edge-list order."""
        return [
            self._nodes[e.target]
            for e in self._edges
            if e.source == node_id and e.target in self._nodes
        ]


class WorkflowGraph:
    """
    Live, shared, mutable workflow graph.

    Structure (the node set and the edges) is fixed once built; node contents
    change through the update API only. Safe to read from another thread
    while a run is writing to it.
    """

    def __init__(self, nodes: Iterable[BaseNode] = (), edges: Iterable[Edge] = ()):
        nodes = list(nodes)
        edges = tuple(edges)
        errors = GraphSpec.model_construct(nodes=nodes, edges=list(edges)).reference_errors()
        if errors:
            raise InvalidGraphError(errors)

        self._nodes: dict[str, BaseNode] = {node.id: node for node in nodes}
        self._edges = edges
        self._lock = threading.RLock()
        self._version = 0

    # === CONVERSION ===

    @classmethod
    def from_spec(cls, spec: GraphSpec) -> "WorkflowGraph":
        return cls(nodes=spec.nodes, edges=spec.edges)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowGraph":
        return cls.from_spec(GraphSpec.model_validate(data))

    def to_spec(self) -> GraphSpec:
        with self._lock:
            return GraphSpec(nodes=list(self._nodes.values()), edges=list(self._edges))

    # === READS ===

    @property
    def version(self) -> int:
        """Incremented on every committed write."""
        return self._version

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            return GraphSnapshot(self._nodes.values(), self._edges, self._version)

    @property
    def nodes(self) -> list[BaseNode]:
        with self._lock:
            return list(self._nodes.values())

    def get_node(self, node_id: str) -> BaseNode:
        with self._lock:
            try:
                return self._nodes[node_id]
            except KeyError:
                raise NodeNotFoundError(node_id) from None

    def get_edges(self) -> tuple[Edge, ...]:
        return self._edges

    def inputs_of(self, node_id: str) -> list[BaseNode]:
        return self.snapshot().inputs_of(node_id)

    def outputs_of(self, node_id: str) -> list[BaseNode]:
        return self.snapshot().outputs_of(node_id)

    # === WRITES ===

    def apply_update(self, node_id: str, changes: dict[str, Any]) -> BaseNode:
        """Merge ``changes`` into the kind-specific fields of one node."""
        return self.apply_batch([NodeUpdate(node_id, changes=changes)])[0]

    def apply_status(
        self, node_id: str, status: NodeStatus, error: str | None = None
    ) -> BaseNode:
        """Set a node's status. The error message is kept only for ERROR."""
        return self.apply_batch([NodeUpdate(node_id, status=status, error=error)])[0]

    def apply_batch(self, updates: Iterable[NodeUpdate]) -> list[BaseNode]:
        """
        Apply several node updates as one atomic write.

        All replacements are validated before any of them is committed; if one
        update is invalid, none is applied.
        """
        with self._lock:
            staged: dict[str, BaseNode] = {}
            for update in updates:
                current = staged.get(update.node_id)
                if current is None:
                    current = self.get_node(update.node_id)
                staged[update.node_id] = self._updated(current, update)

            self._nodes.update(staged)
            self._version += 1
            return list(staged.values())

    def set_text(self, node_id: str, text: str) -> BaseNode:
        return self.apply_update(node_id, {"text": text})

    def reset_for_run(self) -> None:
        """Reset every node to IDLE and clear its error before a new run."""
        self.apply_batch(
            NodeUpdate(node_id, status=NodeStatus.IDLE) for node_id in list(self._nodes)
        )
        logger.debug("Reset %d node(s) to idle", len(self._nodes))

    @staticmethod
    def _updated(node: BaseNode, update: NodeUpdate) -> BaseNode:
        unknown = set(update.changes) - type(node).payload_fields()
        if unknown:
            raise InvalidUpdateError(
                f"Node '{node.id}' ({node.kind}) has no field(s): {', '.join(sorted(unknown))}"
            )

        changes = dict(update.changes)
        if update.status is not None:
            changes["status"] = update.status
            changes["error_message"] = update.error if update.status == NodeStatus.ERROR else None
        if not changes:
            return node
        return with_changes(node, **changes)
