"""
Command-line interface for canvasflow.

Usage:
    canvasflow demo > workflow.json
    canvasflow validate workflow.json
    canvasflow run workflow.json --mock
    canvasflow run workflow.json --output result.json --log-level DEBUG
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from canvasflow.config import EngineConfig, RuntimeConfig
from canvasflow.graph.edge import Edge, GraphSpec
from canvasflow.graph.errors import WorkflowError
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import LLMInvocationNode, OutputNode, StartNode, TextPromptNode
from canvasflow.graph.scheduler import RunResult, RunStatus, WorkflowScheduler
from canvasflow.llm.litellm import LiteLLMProvider
from canvasflow.llm.mock import MockLLMProvider
from canvasflow.llm.provider import LLMProvider
from canvasflow.observability import configure_logging
from canvasflow.runtime.event_bus import EventBus, EventType, WorkflowEvent

EXIT_OK = 0
EXIT_RUN_ERRORS = 1
EXIT_STRUCTURAL = 2


def demo_spec() -> GraphSpec:
    """The starter graph: start -> prompt -> model -> output."""
    return GraphSpec(
        nodes=[
            StartNode(id="start-1", workflow_name="Demo Workflow"),
            TextPromptNode(id="text-1", text="Write a short poem about coding"),
            LLMInvocationNode(id="llm-1", model="gpt-4o", temperature=0.7, max_tokens=150),
            OutputNode(id="output-1"),
        ],
        edges=[
            Edge(id="e-start-text", source="start-1", target="text-1"),
            Edge(id="e-text-llm", source="text-1", target="llm-1"),
            Edge(id="e-llm-output", source="llm-1", target="output-1"),
        ],
    )


def load_spec(path: str) -> GraphSpec:
    return GraphSpec.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _build_provider(args: argparse.Namespace) -> LLMProvider:
    if args.mock:
        return MockLLMProvider(chunk_delay=args.chunk_delay)
    runtime = RuntimeConfig()
    return LiteLLMProvider(
        api_key=runtime.api_key,
        api_base=runtime.api_base,
        default_model=runtime.model,
    )


def _print_summary(graph: WorkflowGraph, result: RunResult) -> None:
    for node in graph.nodes:
        line = f"{node.id:<20} {node.kind:<15} {node.status}"
        if node.error_message:
            line += f"  ({node.error_message})"
        print(line)
        if isinstance(node, OutputNode) and node.content:
            for content_line in node.content.splitlines():
                print(f"    {content_line}")
            if node.token_count is not None:
                print(f"    [{node.token_count} tokens]")
    print(f"\nRun {result.status} in {result.duration_ms}ms over {result.ticks} tick(s)")


async def _run(args: argparse.Namespace) -> int:
    try:
        graph = WorkflowGraph.from_spec(load_spec(args.graph))
    except (OSError, ValidationError, WorkflowError) as e:
        print(f"Could not load {args.graph}: {e}", file=sys.stderr)
        return EXIT_STRUCTURAL

    event_bus = EventBus()
    if args.stream:

        async def on_delta(event: WorkflowEvent) -> None:
            print(f"[{event.node_id}] {event.data['content']}", file=sys.stderr)

        event_bus.subscribe([EventType.OUTPUT_STREAM_DELTA], on_delta)

    config = EngineConfig()
    if args.settle is not None:
        config.start_settle_seconds = args.settle

    scheduler = WorkflowScheduler(
        graph, llm=_build_provider(args), event_bus=event_bus, config=config
    )

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, scheduler.stop)
    except (NotImplementedError, RuntimeError):
        pass  # not supported on this platform

    try:
        result = await scheduler.start()
    except WorkflowError as e:
        print(f"Run failed: {e}", file=sys.stderr)
        return EXIT_STRUCTURAL
    finally:
        if args.output:
            spec_json = graph.to_spec().model_dump_json(indent=2)
            Path(args.output).write_text(spec_json, encoding="utf-8")

    _print_summary(graph, result)
    return EXIT_OK if result.status == RunStatus.COMPLETED else EXIT_RUN_ERRORS


def cmd_run(args: argparse.Namespace) -> int:
    configure_logging(level=args.log_level, format=args.log_format)
    return asyncio.run(_run(args))


def cmd_validate(args: argparse.Namespace) -> int:
    try:
        spec = load_spec(args.graph)
    except (OSError, ValidationError) as e:
        print(f"Could not load {args.graph}: {e}", file=sys.stderr)
        return EXIT_STRUCTURAL

    errors = spec.validate()
    if errors:
        for error in errors:
            print(f"✗ {error}")
        return EXIT_STRUCTURAL
    print(f"✓ {len(spec.nodes)} node(s), {len(spec.edges)} edge(s): OK")
    return EXIT_OK


def cmd_demo(args: argparse.Namespace) -> int:
    print(json.dumps(demo_spec().model_dump(mode="json"), indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="canvasflow",
        description="canvasflow - run node-based LLM workflows",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a workflow graph")
    run_parser.add_argument("graph", help="Path to a graph JSON document")
    run_parser.add_argument(
        "--mock", action="store_true", help="Use the offline echo model instead of LiteLLM"
    )
    run_parser.add_argument(
        "--chunk-delay", type=float, default=0.05, help="Delay between mock chunks (seconds)"
    )
    run_parser.add_argument("--settle", type=float, default=None, help="Start node settle delay")
    run_parser.add_argument("--stream", action="store_true", help="Print streamed output live")
    run_parser.add_argument("--output", "-o", help="Write the resulting graph JSON here")
    run_parser.add_argument("--log-level", default="WARNING")
    run_parser.add_argument("--log-format", default="auto", choices=["auto", "human", "json"])
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Check a graph without running it")
    validate_parser.add_argument("graph", help="Path to a graph JSON document")
    validate_parser.set_defaults(func=cmd_validate)

    demo_parser = subparsers.add_parser("demo", help="Print the starter graph as JSON")
    demo_parser.set_defaults(func=cmd_demo)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
