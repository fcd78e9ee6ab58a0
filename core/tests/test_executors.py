"""Tests for the per-kind node executors."""

import asyncio

import pytest

from canvasflow.graph.broadcast import StreamingBroadcaster
from canvasflow.graph.edge import Edge
from canvasflow.graph.errors import CancellationError, EmptyInputError, ModelServiceError
from canvasflow.graph.executors import (
    EXECUTORS,
    ExecutionContext,
    LLMInvocationExecutor,
    OutputExecutor,
    StartExecutor,
    TextPromptExecutor,
    gather_input_text,
)
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import NodeKind, NodeStatus, OutputNode, StartNode, TextPromptNode
from canvasflow.llm.provider import LLMProvider
from canvasflow.llm.stream_events import StreamErrorEvent, StreamStartEvent, TextDeltaEvent


def _ctx(graph, config, llm=None, cancel_event=None) -> ExecutionContext:
    return ExecutionContext(
        graph=graph,
        broadcaster=StreamingBroadcaster(graph),
        cancel_event=cancel_event or asyncio.Event(),
        llm=llm,
        config=config,
    )


async def _run(executor, graph, node_id, config, **ctx_kwargs):
    await executor.execute(graph.get_node(node_id), _ctx(graph, config, **ctx_kwargs))


def _mark_success(graph, *node_ids):
    for nid in node_ids:
        graph.apply_status(nid, NodeStatus.SUCCESS)


def test_executor_table_covers_every_kind():
    assert set(EXECUTORS) == set(NodeKind)


def test_gather_input_text_joins_in_edge_order_and_skips_empty():
    graph = WorkflowGraph(
        nodes=[
            TextPromptNode(id="a", text="alpha"),
            TextPromptNode(id="blank", text=""),
            TextPromptNode(id="b", text="beta"),
            StartNode(id="s"),
            OutputNode(id="out"),
        ],
        edges=[
            Edge(id="1", source="b", target="out"),
            Edge(id="2", source="blank", target="out"),
            Edge(id="3", source="s", target="out"),
            Edge(id="4", source="a", target="out"),
        ],
    )
    assert gather_input_text(graph, "out") == "beta\n\nalpha"


class TestStartAndText:
    @pytest.mark.asyncio
    async def test_start_succeeds(self, fast_config):
        graph = WorkflowGraph(nodes=[StartNode(id="s")])
        await _run(StartExecutor(), graph, "s", fast_config)
        assert graph.get_node("s").status == NodeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_start_observes_cancellation(self, fast_config):
        graph = WorkflowGraph(nodes=[StartNode(id="s")])
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(CancellationError):
            await _run(StartExecutor(), graph, "s", fast_config, cancel_event=cancel)
        assert graph.get_node("s").status == NodeStatus.RUNNING

    @pytest.mark.asyncio
    async def test_text_prompt_resets_downstream_outputs(self, fast_config):
        graph = WorkflowGraph(
            nodes=[
                TextPromptNode(id="t", text="hi"),
                OutputNode(id="o", streamed_content="old", is_streaming=True),
            ],
            edges=[Edge(id="e", source="t", target="o")],
        )
        await _run(TextPromptExecutor(), graph, "t", fast_config)

        assert graph.get_node("t").status == NodeStatus.SUCCESS
        out = graph.get_node("o")
        assert out.streamed_content is None
        assert out.is_streaming is False


class TestLLMInvocation:
    @pytest.mark.asyncio
    async def test_streams_into_every_sink(self, chain_graph, fast_config, scripted_llm, stream_of):
        graph = chain_graph(
            text="hi", outputs=2, model="gpt-4o-mini", temperature=0.2, max_tokens=42
        )
        _mark_success(graph, "start", "text")
        llm = scripted_llm(stream_of("Hel", "Hello", output_tokens=5))

        await _run(LLMInvocationExecutor(), graph, "llm", fast_config, llm=llm)

        prompt, params = llm.calls[0]
        assert prompt == "hi"
        assert (params.model, params.temperature, params.max_tokens) == ("gpt-4o-mini", 0.2, 42)
        assert graph.get_node("llm").status == NodeStatus.SUCCESS
        for sink in ("out1", "out2"):
            out = graph.get_node(sink)
            assert out.content == "Hello"
            assert out.token_count == 5
            assert out.status == NodeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_empty_input_never_calls_model(
        self, chain_graph, fast_config, scripted_llm, stream_of
    ):
        graph = chain_graph(text="   ")
        _mark_success(graph, "start", "text")
        llm = scripted_llm(stream_of("unused"))

        with pytest.raises(EmptyInputError, match="No input text provided to LLM node"):
            await _run(LLMInvocationExecutor(), graph, "llm", fast_config, llm=llm)
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_stream_error_event_fails_llm_and_sinks(
        self, chain_graph, fast_config, scripted_llm
    ):
        graph = chain_graph(outputs=2)
        _mark_success(graph, "start", "text")
        llm = scripted_llm([StreamStartEvent(), StreamErrorEvent(error="rate limited")])

        with pytest.raises(ModelServiceError, match="rate limited"):
            await _run(LLMInvocationExecutor(), graph, "llm", fast_config, llm=llm)

        for nid in ("llm", "out1", "out2"):
            assert graph.get_node(nid).status == NodeStatus.ERROR
            assert graph.get_node(nid).error_message == "rate limited"

    @pytest.mark.asyncio
    async def test_provider_exception_becomes_model_service_error(
        self, chain_graph, fast_config, scripted_llm, stream_of
    ):
        graph = chain_graph()
        _mark_success(graph, "start", "text")
        llm = scripted_llm(stream_of("a", "ab"), raise_after=2)

        with pytest.raises(ModelServiceError, match="connection reset"):
            await _run(LLMInvocationExecutor(), graph, "llm", fast_config, llm=llm)
        assert graph.get_node("out1").error_message == "connection reset"
        assert graph.get_node("out1").is_streaming is False

    @pytest.mark.asyncio
    async def test_no_provider_configured(self, chain_graph, fast_config):
        graph = chain_graph()
        _mark_success(graph, "start", "text")

        with pytest.raises(ModelServiceError):
            await _run(LLMInvocationExecutor(), graph, "llm", fast_config)
        assert graph.get_node("out1").status == NodeStatus.ERROR

    @pytest.mark.asyncio
    async def test_cancellation_stops_writes_mid_stream(self, chain_graph, fast_config):
        graph = chain_graph()
        _mark_success(graph, "start", "text")
        cancel = asyncio.Event()

        class CancellingProvider(LLMProvider):
            closed = False

            async def stream(self, prompt, params):
                try:
                    yield StreamStartEvent()
                    yield TextDeltaEvent(content="a", snapshot="a")
                    cancel.set()
                    yield TextDeltaEvent(content="b", snapshot="ab")
                finally:
                    self.closed = True

        llm = CancellingProvider()
        with pytest.raises(CancellationError):
            await _run(
                LLMInvocationExecutor(), graph, "llm", fast_config, llm=llm, cancel_event=cancel
            )

        out = graph.get_node("out1")
        assert out.streamed_content == "a"
        assert out.status == NodeStatus.RUNNING
        assert llm.closed


class TestOutput:
    @pytest.mark.asyncio
    async def test_copies_text_inputs(self, fast_config):
        graph = WorkflowGraph(
            nodes=[
                TextPromptNode(id="a", text="one"),
                TextPromptNode(id="b", text="two"),
                OutputNode(id="o"),
            ],
            edges=[Edge(id="1", source="a", target="o"), Edge(id="2", source="b", target="o")],
        )
        _mark_success(graph, "a", "b")

        await _run(OutputExecutor(), graph, "o", fast_config)

        out = graph.get_node("o")
        assert out.content == "one\n\ntwo"
        assert out.status == NodeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_leaves_llm_fed_output_untouched(self, chain_graph, fast_config):
        graph = chain_graph()
        graph.apply_update("out1", {"content": "streamed reply"})
        graph.apply_status("out1", NodeStatus.SUCCESS)
        version = graph.version

        await _run(OutputExecutor(), graph, "out1", fast_config)

        assert graph.version == version
        assert graph.get_node("out1").content == "streamed reply"
