"""
Readiness Resolver - Which nodes may run now.

Pure functions over a GraphSnapshot. The scheduler calls them on a fresh
snapshot every tick; results are never cached.
"""

from collections.abc import Iterable

from canvasflow.graph.edge import GraphSpec
from canvasflow.graph.model import GraphSnapshot
from canvasflow.graph.node import NodeKind, NodeStatus


def is_ready(node_id: str, graph: GraphSnapshot) -> bool:
    """A start node is always ready; any other node once all its inputs succeeded."""
    node = graph.get_node(node_id)
    if node.kind == NodeKind.START:
        return True
    return all(upstream.status == NodeStatus.SUCCESS for upstream in graph.inputs_of(node_id))


def ready_set(pending: Iterable[str], graph: GraphSnapshot) -> list[str]:
    """The pending node ids that are ready, in graph order."""
    pending = set(pending)
    return [nid for nid in graph.node_ids() if nid in pending and is_ready(nid, graph)]


def blocked_by_failure(pending: Iterable[str], graph: GraphSnapshot) -> set[str]:
    """
    Pending nodes that can never run because something upstream is in ERROR.

    A node is blocked if one of its inputs is in ERROR or is itself blocked.
    Nodes in ERROR that never ran (an output sink failed by its producer)
    count as blocked too.
    """
    pending = set(pending)
    blocked = {nid for nid in pending if graph.get_node(nid).status == NodeStatus.ERROR}

    changed = True
    while changed:
        changed = False
        for nid in pending - blocked:
            for upstream in graph.inputs_of(nid):
                if upstream.status == NodeStatus.ERROR or upstream.id in blocked:
                    blocked.add(nid)
                    changed = True
                    break
    return blocked


def cycle_among(pending: Iterable[str], graph: GraphSnapshot) -> list[str] | None:
    """One cycle formed only by pending nodes, or None."""
    pending = set(pending)
    spec = GraphSpec.model_construct(
        nodes=[node for node in graph.nodes if node.id in pending],
        edges=list(graph.get_edges()),
    )
    return spec.find_cycle()
