"""Tests for bounded undo/redo history of text prompt nodes."""

import pytest

from canvasflow.graph.edge import Edge
from canvasflow.graph.history import MAX_HISTORY_ENTRIES, TextHistory
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import OutputNode, StartNode, TextPromptNode


@pytest.fixture
def graph():
    return WorkflowGraph(
        nodes=[
            StartNode(id="start"),
            TextPromptNode(id="t1", text="draft"),
            TextPromptNode(id="t2", text=""),
            OutputNode(id="out"),
        ],
        edges=[Edge(id="e", source="start", target="t1")],
    )


@pytest.fixture
def history(graph):
    return TextHistory(graph)


def _stacks(graph, node_id="t1"):
    h = graph.get_node(node_id).history
    return len(h.undo_stack), len(h.redo_stack)


class TestRecord:
    def test_record_pushes_and_clears_redo(self, graph, history):
        history.record("t1", "v1")
        history.undo("t1")
        assert _stacks(graph) == (0, 1)

        history.record("t1", "v2")
        assert _stacks(graph) == (1, 0)

    def test_capacity_keeps_most_recent(self, graph, history):
        for i in range(150):
            history.record("t1", f"v{i}")

        stack = graph.get_node("t1").history.undo_stack
        assert len(stack) == MAX_HISTORY_ENTRIES == 100
        assert stack[0].text == "v50"
        assert stack[-1].text == "v149"

    def test_record_on_non_text_node_is_ignored(self, graph, history):
        assert history.record("out", "x") is False
        assert history.record("missing", "x") is False


class TestUndoRedo:
    def test_undo_empty_returns_false(self, history):
        assert history.undo("t1") is False
        assert history.redo("t1") is False

    def test_undo_applies_popped_text(self, graph, history):
        history.commit_edit("t1", "second")
        assert graph.get_node("t1").text == "second"

        assert history.undo("t1") is True
        assert graph.get_node("t1").text == "draft"
        assert graph.get_node("t1").history.redo_stack[-1].text == "second"

        assert history.redo("t1") is True
        assert graph.get_node("t1").text == "second"

    @pytest.mark.parametrize("n", [1, 2, 3])
    def test_round_trip_restores_text_and_stack_sizes(self, graph, history, n):
        for text in ("one", "two", "three"):
            history.commit_edit("t1", text)
        before_text = graph.get_node("t1").text
        before_sizes = _stacks(graph)

        for _ in range(n):
            assert history.undo("t1")
        for _ in range(n):
            assert history.redo("t1")

        assert graph.get_node("t1").text == before_text
        assert _stacks(graph) == before_sizes

    def test_can_undo_can_redo(self, history):
        assert not history.can_undo("t1")
        history.commit_edit("t1", "next")
        assert history.can_undo("t1")
        history.undo("t1")
        assert history.can_redo("t1")

    def test_commit_without_change_is_noop(self, graph, history):
        assert history.commit_edit("t1", "draft") is False
        assert _stacks(graph) == (0, 0)


class TestSavePoint:
    def test_captures_changed_non_blank_nodes(self, graph, history):
        assert history.capture_save_point() == ["t1"]
        assert graph.get_node("t1").history.undo_stack[-1].text == "draft"
        assert _stacks(graph, "t2") == (0, 0)

    def test_idempotent_without_edits(self, graph, history):
        history.capture_save_point()
        assert history.capture_save_point() == []
        assert _stacks(graph) == (1, 0)

    def test_captures_again_after_edit(self, graph, history):
        history.capture_save_point()
        graph.set_text("t1", "edited")
        assert history.capture_save_point() == ["t1"]
        assert graph.get_node("t1").history.undo_stack[-1].text == "edited"
