"""Error taxonomy for the workflow engine.

Structural errors (no start node, cycles or disconnected nodes) abort the
whole run. Node-local errors are recorded on the node and the run keeps
going on independent branches.
"""


class WorkflowError(Exception):
    """Base class for every error raised by the engine."""


class NoStartNodeError(WorkflowError):
    """The graph has no Start node, so nothing can ever become ready."""

    def __init__(self, message: str = "No start node found"):
        super().__init__(message)


class CyclicOrDisconnectedGraphError(WorkflowError):
    """Work remains but no node can become ready."""

    def __init__(self, stuck_nodes: list[str]):
        self.stuck_nodes = list(stuck_nodes)
        super().__init__(
            "Workflow has circular dependencies or disconnected nodes: "
            + ", ".join(self.stuck_nodes)
        )


class EmptyInputError(WorkflowError):
    """An LLM invocation has no usable input text."""

    def __init__(self, message: str = "No input text provided to LLM node"):
        super().__init__(message)


class ModelServiceError(WorkflowError):
    """The model streaming service reported an error."""


class CancellationError(WorkflowError):
    """The run was stopped while a node was still executing."""

    def __init__(self, message: str = "Workflow execution aborted"):
        super().__init__(message)


class NodeNotFoundError(WorkflowError, KeyError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} not found in graph")

    def __str__(self) -> str:
        return self.args[0]


class InvalidUpdateError(WorkflowError):
    """A payload update names fields the node kind does not have."""


class RunInProgressError(WorkflowError):
    def __init__(self, message: str = "A workflow run is already in progress"):
        super().__init__(message)


class InvalidGraphError(WorkflowError):
    """The graph document breaks a structural invariant (ids, edge endpoints)."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid graph: " + "; ".join(self.errors))
