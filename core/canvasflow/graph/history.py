"""
Text History - Bounded undo/redo for text prompt nodes.

Each text prompt node carries its own HistoryLog inside the graph, so the
history travels with the node when the session layer saves the graph. The
log is independent of execution: a run never adds or removes entries.

Semantics mirror an editor:
- record() pushes a state and clears the redo stack
- undo() restores the top undo entry and remembers the current text for redo
- redo() is the mirror image
- both stacks keep at most MAX_HISTORY_ENTRIES, oldest evicted first
"""

import logging

from canvasflow.graph.errors import NodeNotFoundError
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import HistoryEntry, HistoryLog, NodeKind, TextPromptNode

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 100


def _push(stack: tuple[HistoryEntry, ...], entry: HistoryEntry) -> tuple[HistoryEntry, ...]:
    stack = (*stack, entry)
    if len(stack) > MAX_HISTORY_ENTRIES:
        stack = stack[-MAX_HISTORY_ENTRIES:]
    return stack


class TextHistory:
    """
    Undo/redo operations over the text prompt nodes of one graph.

    Example:
        history = TextHistory(graph)
        history.commit_edit("text-1", "Write a limerick")
        history.undo("text-1")   # text is back to the previous prompt
        history.redo("text-1")   # and forward again
    """

    def __init__(self, graph: WorkflowGraph):
        self.graph = graph

    def _text_node(self, node_id: str, operation: str) -> TextPromptNode | None:
        try:
            node = self.graph.get_node(node_id)
        except NodeNotFoundError:
            logger.warning(f"[{operation}] Node {node_id} not found")
            return None
        if node.kind != NodeKind.TEXT_PROMPT:
            logger.warning(f"[{operation}] Node {node_id} is not a text prompt")
            return None
        return node

    def record(self, node_id: str, text: str) -> bool:
        """Push ``text`` onto the undo stack and clear the redo stack."""
        node = self._text_node(node_id, "record")
        if node is None:
            return False

        history = HistoryLog(
            undo_stack=_push(node.history.undo_stack, HistoryEntry(text=text)),
            redo_stack=(),
        )
        self.graph.apply_update(node_id, {"history": history})
        logger.debug(
            f"[record] Added entry for {node_id}, stack size: {len(history.undo_stack)}"
        )
        return True

    def commit_edit(self, node_id: str, text: str) -> bool:
        """Record the node's current text, then replace it with ``text``."""
        node = self._text_node(node_id, "commit_edit")
        if node is None or node.text == text:
            return False

        history = HistoryLog(
            undo_stack=_push(node.history.undo_stack, HistoryEntry(text=node.text)),
            redo_stack=(),
        )
        self.graph.apply_update(node_id, {"text": text, "history": history})
        return True

    def undo(self, node_id: str) -> bool:
        """Restore the most recent undo entry. Returns False if there is none."""
        node = self._text_node(node_id, "undo")
        if node is None or not node.history.undo_stack:
            return False

        *rest, last = node.history.undo_stack
        history = HistoryLog(
            undo_stack=tuple(rest),
            redo_stack=_push(node.history.redo_stack, HistoryEntry(text=node.text)),
        )
        logger.debug(f"[undo] {node_id}: {node.text!r} -> {last.text!r}")
        self.graph.apply_update(node_id, {"text": last.text, "history": history})
        return True

    def redo(self, node_id: str) -> bool:
        """Re-apply the most recently undone text. Returns False if there is none."""
        node = self._text_node(node_id, "redo")
        if node is None or not node.history.redo_stack:
            return False

        *rest, nxt = node.history.redo_stack
        history = HistoryLog(
            undo_stack=_push(node.history.undo_stack, HistoryEntry(text=node.text)),
            redo_stack=tuple(rest),
        )
        logger.debug(f"[redo] {node_id}: {node.text!r} -> {nxt.text!r}")
        self.graph.apply_update(node_id, {"text": nxt.text, "history": history})
        return True

    def can_undo(self, node_id: str) -> bool:
        node = self._text_node(node_id, "can_undo")
        return bool(node and node.history.undo_stack)

    def can_redo(self, node_id: str) -> bool:
        node = self._text_node(node_id, "can_redo")
        return bool(node and node.history.redo_stack)

    def capture_save_point(self) -> list[str]:
        """
        Checkpoint every text node whose text changed since its last entry.

        Blank text is skipped, and calling this twice without edits in between
        adds nothing the second time.

        Returns:
            IDs of the nodes that received a new entry
        """
        captured = []
        for node in self.graph.nodes:
            if node.kind != NodeKind.TEXT_PROMPT or not node.text.strip():
                continue
            stack = node.history.undo_stack
            if stack and stack[-1].text == node.text:
                continue
            if self.record(node.id, node.text):
                captured.append(node.id)

        if captured:
            logger.info(f"Captured save point for {len(captured)} text node(s)")
        return captured
