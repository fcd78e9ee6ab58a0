"""
Workflow Scheduler - Runs a workflow graph tick by tick.

The scheduler:
1. Checks the graph has a start node and resets every node to IDLE
2. Each tick, computes the ready set from a fresh snapshot
3. Runs the whole ready set concurrently and waits for all of it to settle
4. Repeats until no node is left, or fails if work remains but nothing can run

Node failures stay local: the failed node is marked ERROR and its
dependents simply never become ready. Only a missing start node or a
cycle/disconnection aborts the run.

Example:
    scheduler = WorkflowScheduler(graph, llm=LiteLLMProvider())
    result = await scheduler.start()
    if result.status == RunStatus.COMPLETED_WITH_ERRORS:
        print(result.errored)
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum

from canvasflow.config import EngineConfig
from canvasflow.graph.broadcast import StreamingBroadcaster
from canvasflow.graph.errors import (
    CancellationError,
    CyclicOrDisconnectedGraphError,
    NoStartNodeError,
    RunInProgressError,
    WorkflowError,
)
from canvasflow.graph.executors import EXECUTORS, ExecutionContext, NodeExecutor
from canvasflow.graph.model import WorkflowGraph
from canvasflow.graph.node import NodeKind, NodeStatus
from canvasflow.graph.readiness import blocked_by_failure, cycle_among, ready_set
from canvasflow.llm.provider import LLMProvider
from canvasflow.observability import reset_trace_context, set_trace_context
from canvasflow.runtime.event_bus import EventBus

logger = logging.getLogger(__name__)


class RunStatus(StrEnum):
    """Overall state of a scheduler."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    ABORTED = "aborted"
    FAILED = "failed"  # structural: no start node, cycle or disconnection


@dataclass
class RunState:
    """Ephemeral state of one run; torn down when the run ends."""

    run_id: str
    is_running: bool = True
    completed: set[str] = field(default_factory=set)
    errored: set[str] = field(default_factory=set)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)


@dataclass
class RunResult:
    """Outcome of a run."""

    run_id: str
    status: RunStatus
    completed: list[str] = field(default_factory=list)
    errored: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # never ran: blocked by a failure
    in_flight: list[str] = field(default_factory=list)  # still running when aborted
    error: str | None = None
    ticks: int = 0
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED


class _Aborted(Exception):
    def __init__(self, in_flight: list[str]):
        self.in_flight = in_flight


class WorkflowScheduler:
    """
    Drives one workflow graph through runs.

    Args:
        graph: The shared live graph; all results are written into it
        llm: Model streaming service for LLM invocation nodes
        event_bus: Optional bus for run/node/stream events
        config: Timing settings (start settle delay, abort grace period)
        executors: Override the executor for some node kinds
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        llm: LLMProvider | None = None,
        event_bus: EventBus | None = None,
        config: EngineConfig | None = None,
        executors: dict[NodeKind, NodeExecutor] | None = None,
    ):
        self.graph = graph
        self.llm = llm
        self.config = config or EngineConfig()
        self.executors = {**EXECUTORS, **(executors or {})}
        self._event_bus = event_bus
        self._status = RunStatus.IDLE
        self._state: RunState | None = None
        # Executions still winding down after an abort
        self._stragglers: set[asyncio.Task] = set()

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def run_state(self) -> RunState | None:
        """State of the most recent run, or None before the first one."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is not None and self._state.is_running

    def stop(self) -> None:
        """Request the active run to stop. Safe to call at any time."""
        if not self.is_running:
            return
        if not self._state.cancel_event.is_set():
            logger.info("⏹ Stop requested")
            self._state.cancel_event.set()

    async def start(self) -> RunResult:
        """
        Run the graph to completion.

        Returns:
            RunResult with status COMPLETED, COMPLETED_WITH_ERRORS or ABORTED

        Raises:
            NoStartNodeError: the graph has no start node
            CyclicOrDisconnectedGraphError: work remained that could never run
            RunInProgressError: this scheduler is already running
        """
        if self.is_running:
            raise RunInProgressError()

        state = RunState(run_id=uuid.uuid4().hex)
        self._state = state
        self._status = RunStatus.RUNNING
        context_token = set_trace_context(run_id=state.run_id)
        started_at = time.monotonic()
        ticks = 0

        def result(status: RunStatus, **kwargs) -> RunResult:
            self._status = status
            snapshot = self.graph.snapshot()
            state.errored = {n.id for n in snapshot.nodes if n.status == NodeStatus.ERROR}
            return RunResult(
                run_id=state.run_id,
                status=status,
                completed=[nid for nid in snapshot.node_ids() if nid in state.completed],
                errored=[nid for nid in snapshot.node_ids() if nid in state.errored],
                ticks=ticks,
                duration_ms=int((time.monotonic() - started_at) * 1000),
                **kwargs,
            )

        try:
            self.graph.reset_for_run()
            snapshot = self.graph.snapshot()
            if not any(node.kind == NodeKind.START for node in snapshot.nodes):
                raise NoStartNodeError()

            logger.info(f"▶ Starting run over {len(snapshot.nodes)} node(s)")
            if self._event_bus:
                await self._event_bus.emit_run_started(state.run_id, len(snapshot.nodes))

            pending = snapshot.node_ids()
            skipped: list[str] = []
            while pending:
                if state.cancel_event.is_set():
                    raise _Aborted([])

                snapshot = self.graph.snapshot()
                ready = ready_set(pending, snapshot)
                if not ready:
                    blocked = blocked_by_failure(pending, snapshot)
                    on_cycle = set(cycle_among(pending, snapshot) or ())
                    stuck = [nid for nid in pending if nid not in blocked or nid in on_cycle]
                    if stuck:
                        raise CyclicOrDisconnectedGraphError(stuck)
                    skipped = pending
                    logger.warning(f"Skipping {len(skipped)} node(s) blocked by failures")
                    break

                ticks += 1
                logger.debug(f"Tick {ticks}: running {ready}")
                await self._run_tick(ready, state)
                pending = [nid for nid in pending if nid not in ready]

            outcome = result(
                RunStatus.COMPLETED_WITH_ERRORS if self._has_errors() else RunStatus.COMPLETED,
                skipped=skipped,
            )
            logger.info(
                f"✓ Run finished: {outcome.status} "
                f"({len(outcome.completed)} completed, {len(outcome.errored)} errored)",
                extra={"latency_ms": outcome.duration_ms},
            )
            if self._event_bus:
                await self._event_bus.emit_run_completed(
                    state.run_id, outcome.status.value, outcome.errored
                )
            return outcome

        except _Aborted as aborted:
            outcome = result(RunStatus.ABORTED, in_flight=aborted.in_flight, error="Aborted")
            logger.info(f"⏹ Run aborted ({len(aborted.in_flight)} node(s) still in flight)")
            if self._event_bus:
                await self._event_bus.emit_run_aborted(state.run_id, aborted.in_flight)
            return outcome

        except (NoStartNodeError, CyclicOrDisconnectedGraphError) as e:
            self._status = RunStatus.FAILED
            logger.error(f"✗ Run failed: {e}")
            if self._event_bus:
                await self._event_bus.emit_run_failed(state.run_id, str(e))
            raise

        finally:
            state.is_running = False
            reset_trace_context(context_token)

    def _has_errors(self) -> bool:
        return any(node.status == NodeStatus.ERROR for node in self.graph.nodes)

    async def _run_tick(self, ready: list[str], state: RunState) -> None:
        """Run the ready set concurrently; return once all settle or stop() is called."""
        tasks = {
            asyncio.create_task(self._execute_node(nid, state), name=f"node:{nid}"): nid
            for nid in ready
        }
        cancel_waiter = asyncio.create_task(state.cancel_event.wait())
        waiting = set(tasks)
        try:
            while waiting:
                done, _ = await asyncio.wait(
                    waiting | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                waiting -= done
                for task in done:
                    if task is not cancel_waiter:
                        self._record_crash(task, tasks[task], state)
                if cancel_waiter in done and waiting:
                    await self._abandon(waiting, tasks)
        finally:
            cancel_waiter.cancel()

    def _record_crash(self, task: asyncio.Task, node_id: str, state: RunState) -> None:
        """Mark a node failed if its task died with an exception it did not handle."""
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        message = str(exc) or type(exc).__name__
        logger.error(f"   ✗ {node_id}: node task crashed", exc_info=exc)
        self.graph.apply_status(node_id, NodeStatus.ERROR, message)
        state.errored.add(node_id)

    async def _abandon(self, waiting: set[asyncio.Task], tasks: dict) -> None:
        """Give in-flight nodes a grace period, then stop waiting for them."""
        _, still_running = await asyncio.wait(waiting, timeout=self.config.abort_grace_seconds)
        in_flight = sorted(tasks[t] for t in still_running)
        for task in still_running:
            self._stragglers.add(task)
            task.add_done_callback(self._stragglers.discard)
        if in_flight:
            logger.warning(f"Not waiting for in-flight node(s): {in_flight}")
        raise _Aborted(in_flight)

    async def _execute_node(self, node_id: str, state: RunState) -> None:
        """Run one node; node-local failures are recorded, never raised."""
        node = self.graph.get_node(node_id)
        kind = NodeKind(node.kind)
        started_at = time.monotonic()
        try:
            set_trace_context(node_id=node_id, node_kind=str(kind))
            executor = self.executors[kind]
            ctx = ExecutionContext(
                graph=self.graph,
                broadcaster=StreamingBroadcaster(self.graph, self._event_bus, state.run_id),
                cancel_event=state.cancel_event,
                llm=self.llm,
                config=self.config,
                run_id=state.run_id,
            )
            if self._event_bus:
                await self._event_bus.emit_node_started(state.run_id, node_id, str(kind))

            await executor.execute(node, ctx)
        except CancellationError:
            logger.info(f"   ⏹ {node_id}: cancelled")
            return
        except Exception as e:
            message = str(e) or type(e).__name__
            if not isinstance(e, WorkflowError):
                logger.exception(f"   ✗ {node_id}: unexpected error")
            else:
                logger.error(f"   ✗ {node_id}: {message}")
            self.graph.apply_status(node_id, NodeStatus.ERROR, message)
            state.errored.add(node_id)
            if self._event_bus:
                await self._event_bus.emit_node_failed(state.run_id, node_id, message)
            return

        latency_ms = int((time.monotonic() - started_at) * 1000)
        if self.graph.get_node(node_id).status == NodeStatus.SUCCESS:
            state.completed.add(node_id)
            logger.info(f"   ✓ {node_id}: success", extra={"latency_ms": latency_ms})
            if self._event_bus:
                await self._event_bus.emit_node_completed(state.run_id, node_id, latency_ms)
