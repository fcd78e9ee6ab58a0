"""
Edge Protocol - How nodes connect in a workflow graph.

Edges are directed and unconditional: a target depends on every source that
points at it. A node may have any number of outgoing edges (fan-out) and
incoming edges (fan-in). Self-loops are rejected; longer cycles can be
authored and are detected by the scheduler at run time.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from canvasflow.graph.node import Node, NodeKind


class Edge(BaseModel):
    """
    A directed dependency between two nodes.

    Example:
        Edge(id="e-text-llm", source="text-1", target="llm-1")
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _no_self_loop(self) -> "Edge":
        if self.source == self.target:
            raise ValueError(f"Edge '{self.id}' connects node '{self.source}' to itself")
        return self


class GraphSpec(BaseModel):
    """
    The serialisable ``{nodes, edges}`` document of a workflow.

    This is what the session layer loads and saves; the engine turns it into a
    live WorkflowGraph for the duration of a run and back again afterwards.

    Example:
        GraphSpec(
            nodes=[
                StartNode(id="start-1"),
                TextPromptNode(id="text-1", text="Write a haiku"),
                LLMInvocationNode(id="llm-1"),
                OutputNode(id="output-1"),
            ],
            edges=[
                Edge(id="e1", source="start-1", target="text-1"),
                Edge(id="e2", source="text-1", target="llm-1"),
                Edge(id="e3", source="llm-1", target="output-1"),
            ],
        )
    """

    nodes: list[Node] = Field(default_factory=list, description="All nodes, in canvas order")
    edges: list[Edge] = Field(default_factory=list, description="All edges, in insertion order")

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> Any | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        """Get all edges leaving a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def reference_errors(self) -> list[str]:
        """Errors that make the document unusable: duplicate ids, dangling edges."""
        errors = []

        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen.add(node.id)

        for edge in self.edges:
            if edge.source not in seen:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        return errors

    def find_cycle(self) -> list[str] | None:
        """Return the node ids of one cycle, or None if the graph is acyclic."""
        adjacency: dict[str, list[str]] = {node.id: [] for node in self.nodes}
        for edge in self.edges:
            if edge.source in adjacency and edge.target in adjacency:
                adjacency[edge.source].append(edge.target)

        # 0 = unvisited, 1 = on the current path, 2 = finished
        state = dict.fromkeys(adjacency, 0)
        for root in adjacency:
            if state[root]:
                continue
            path = [root]
            stack = [iter(adjacency[root])]
            state[root] = 1
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    state[path.pop()] = 2
                    stack.pop()
                elif state[nxt] == 1:
                    return path[path.index(nxt) :]
                elif state[nxt] == 0:
                    state[nxt] = 1
                    path.append(nxt)
                    stack.append(iter(adjacency[nxt]))
        return None

    def validate(self) -> list[str]:
        """Validate the graph structure without running it."""
        errors = self.reference_errors()

        start_ids = [n.id for n in self.nodes if n.kind == NodeKind.START]
        if not start_ids:
            errors.append("No start node found")

        for node in self.nodes:
            if node.kind == NodeKind.START and self.get_incoming_edges(node.id):
                errors.append(f"Start node '{node.id}' must not have incoming edges")

        cycle = self.find_cycle()
        if cycle:
            errors.append("Cycle detected: " + " -> ".join([*cycle, cycle[0]]))

        # Reachability from the start nodes
        reachable: set[str] = set()
        to_visit = list(start_ids)
        while to_visit:
            current = to_visit.pop()
            if current in reachable:
                continue
            reachable.add(current)
            for edge in self.get_outgoing_edges(current):
                to_visit.append(edge.target)

        if start_ids:
            for node in self.nodes:
                if node.id not in reachable:
                    errors.append(f"Node '{node.id}' is unreachable from a start node")

        return errors
