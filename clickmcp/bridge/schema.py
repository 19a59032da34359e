"""Data models for tool definitions, execution requests, and results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Name of the parameter that carries positional arguments.
POSITIONAL_PARAM = "args"


class ToolParam(BaseModel):
    """A single input parameter of a tool, backed by one command option."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "string"  # string, boolean, integer, number, array
    item_type: Optional[str] = None  # only for arrays
    description: str = ""
    required: bool = False
    default: Any = None
    has_default: bool = False
    shorthand: Optional[str] = None
    choices: Optional[Tuple[str, ...]] = None

    # How to put the value back on the command line
    level: int = 0  # index of the owning command in the chain, 0 = root
    token: Optional[str] = None  # e.g. "--greeting"
    negative_token: Optional[str] = None  # e.g. "--no-color"
    flag_value: Optional[bool] = None  # value a bare flag sets; None means True
    is_flag: bool = False
    is_count: bool = False
    positional: bool = False

    def json_schema(self) -> Dict[str, Any]:
        """JSON schema fragment for this parameter."""
        prop: Dict[str, Any] = {"type": self.type}
        if self.type == "array":
            items: Dict[str, Any] = {"type": self.item_type or "string"}
            if self.choices:
                items["enum"] = list(self.choices)
            prop["items"] = items
        elif self.choices:
            prop["enum"] = list(self.choices)
        if self.description:
            prop["description"] = self.description
        if self.has_default:
            prop["default"] = self.default
        return prop


class ToolAnnotations(BaseModel):
    """Behaviour hints reported with a tool (MCP ``ToolAnnotations``)."""

    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    readOnlyHint: Optional[bool] = None
    destructiveHint: Optional[bool] = None
    idempotentHint: Optional[bool] = None
    openWorldHint: Optional[bool] = None

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ToolDef(BaseModel):
    """Immutable tool definition derived from one selected command."""

    model_config = ConfigDict(frozen=True)

    name: str  # e.g. "kubectl_get_pods"
    description: str
    command_path: Tuple[str, ...]  # e.g. ("kubectl", "get", "pods")
    params: Tuple[ToolParam, ...] = ()
    annotations: Optional[ToolAnnotations] = None

    @property
    def path(self) -> str:
        """Space-separated command path, as typed on a shell."""
        return " ".join(self.command_path)

    def param(self, name: str) -> Optional[ToolParam]:
        for p in self.params:
            if p.name == name:
                return p
        return None

    def input_schema(self) -> Dict[str, Any]:
        """Full JSON schema object describing the tool's arguments."""
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.params},
            "additionalProperties": False,
        }
        required = [p.name for p in self.params if p.required]
        if required:
            schema["required"] = required
        return schema

    def full_schema_text(self) -> str:
        """Human-readable parameter listing."""
        lines = [f"Tool: {self.name} ({self.path})", f"  {self.description}", "  Parameters:"]
        if not self.params:
            lines.append("    (none)")
        for p in self.params:
            req = " (required)" if p.required else ""
            default = f" [default: {p.default!r}]" if p.has_default else ""
            lines.append(f"    - {p.name}: {p.type}{req}{default} {p.description}".rstrip())
        return "\n".join(lines)


class ExecutionState(str, Enum):
    """Lifecycle of a single tool call."""

    IDLE = "idle"
    ARGUMENTS_BOUND = "arguments_bound"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionRequest(BaseModel):
    """A tool call as delivered by the protocol layer."""

    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """Outcome of a tool call."""

    tool_name: str = ""
    success: bool = False
    output: str = ""  # combined stdout + stderr, plus the error on failure
    error: Optional[str] = None
    exit_code: int = 0
    state: ExecutionState = ExecutionState.IDLE
    duration_ms: int = 0
    argv: List[str] = Field(default_factory=list)
