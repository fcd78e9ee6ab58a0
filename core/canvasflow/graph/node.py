"""
Node Protocol - The typed processing units of a workflow graph.

A workflow is built from four node kinds:
- start: the trigger every run begins from
- text_prompt: authored text fed to downstream nodes
- llm_invocation: a streaming language-model call over its inputs
- output: a sink displaying upstream text or a streamed model reply

Nodes are frozen pydantic models. The graph replaces a node object on every
change instead of mutating it, so any snapshot a reader holds stays intact.
"""

import time
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field


class NodeKind(StrEnum):
    """Which executor a node is dispatched to."""

    START = "start"
    TEXT_PROMPT = "text_prompt"
    LLM_INVOCATION = "llm_invocation"
    OUTPUT = "output"


class NodeStatus(StrEnum):
    """Execution status of a node."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class HistoryEntry(BaseModel):
    """One saved text state of a text prompt node."""

    text: str
    timestamp: float = Field(default_factory=time.time)

    model_config = ConfigDict(frozen=True)


class HistoryLog(BaseModel):
    """Undo/redo stacks of a text prompt node. The last entry is the top."""

    undo_stack: tuple[HistoryEntry, ...] = ()
    redo_stack: tuple[HistoryEntry, ...] = ()

    model_config = ConfigDict(frozen=True)


class BaseNode(BaseModel):
    """Fields shared by every node kind."""

    id: str
    status: NodeStatus = NodeStatus.IDLE
    error_message: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def payload_fields(cls) -> frozenset[str]:
        """Names of the kind-specific fields that apply_update may change."""
        return frozenset(cls.model_fields) - {"id", "kind", "status", "error_message"}

    def input_text(self) -> str:
        """Text this node contributes when it feeds another node."""
        return ""


class StartNode(BaseNode):
    kind: Literal["start"] = "start"
    workflow_name: str = "Untitled Workflow"


class TextPromptNode(BaseNode):
    kind: Literal["text_prompt"] = "text_prompt"
    text: str = ""
    history: HistoryLog = Field(default_factory=HistoryLog)

    @computed_field
    @property
    def character_count(self) -> int:
        return len(self.text)

    def input_text(self) -> str:
        return self.text


class LLMInvocationNode(BaseNode):
    kind: Literal["llm_invocation"] = "llm_invocation"
    model: str = "gpt-4o"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=150, gt=0)
    system_prompt: str | None = None


class OutputNode(BaseNode):
    kind: Literal["output"] = "output"
    content: str = ""
    is_streaming: bool = False
    streamed_content: str | None = None
    token_count: int | None = Field(default=None, ge=0)

    def input_text(self) -> str:
        return self.content


Node = Annotated[
    StartNode | TextPromptNode | LLMInvocationNode | OutputNode,
    Field(discriminator="kind"),
]

_node_adapter: TypeAdapter[Any] = TypeAdapter(Node)


def parse_node(data: dict[str, Any]) -> BaseNode:
    """Build the right node class from a plain dict, dispatching on ``kind``."""
    return _node_adapter.validate_python(data)


def with_changes(node: BaseNode, **changes: Any) -> BaseNode:
    """Return a validated copy of ``node`` with ``changes`` applied."""
    data = node.model_dump(exclude={"character_count"})
    data.update(changes)
    return type(node).model_validate(data)
