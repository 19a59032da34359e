"""
Command-to-tool bridge.

Walks a click command tree, selects commands with allow/deny rules, turns
each into an MCP tool definition, and executes tool calls by re-entering
the command in-process.

    startup:  tree --> walker/selection --> generator --> registry
    per call: request --> executor (fresh tree, captured output) --> result
"""

from clickmcp.bridge.errors import (
    ArgumentError,
    BridgeError,
    ConfigurationError,
    DuplicateToolNameError,
    ToolCallError,
    ToolDefinitionError,
    ToolNotFoundError,
)
from clickmcp.bridge.schema import ExecutionRequest, ExecutionResult, ExecutionState, ToolAnnotations, ToolDef, ToolParam
from clickmcp.bridge.tree import CallableFactory, ClickNode, CommandFactory, CommandNode, CopyingFactory, FlagSpec, annotate
from clickmcp.bridge.selection import (
    InheritedFlagRule,
    Selection,
    SelectionRule,
    allow_all,
    allow_cmds,
    allow_cmds_containing,
    allow_glob,
    allow_prefix,
    exclude_cmds,
    exclude_cmds_containing,
    exclude_glob,
    exclude_prefix,
    select,
)
from clickmcp.bridge.walker import SelectedNode, walk
from clickmcp.bridge.generator import build_tool_definition, tool_annotations, tool_name
from clickmcp.bridge.registry import ToolRegistry
from clickmcp.bridge.executor import ToolExecutor, is_cancelled
from clickmcp.bridge.server import Bridge

__all__ = [
    "ArgumentError",
    "Bridge",
    "BridgeError",
    "CallableFactory",
    "ClickNode",
    "CommandFactory",
    "CommandNode",
    "ConfigurationError",
    "CopyingFactory",
    "DuplicateToolNameError",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionState",
    "FlagSpec",
    "InheritedFlagRule",
    "SelectedNode",
    "Selection",
    "SelectionRule",
    "ToolCallError",
    "ToolAnnotations",
    "ToolDef",
    "ToolDefinitionError",
    "ToolExecutor",
    "ToolNotFoundError",
    "ToolParam",
    "ToolRegistry",
    "allow_all",
    "allow_cmds",
    "allow_cmds_containing",
    "allow_glob",
    "allow_prefix",
    "annotate",
    "build_tool_definition",
    "exclude_cmds",
    "exclude_cmds_containing",
    "exclude_glob",
    "exclude_prefix",
    "is_cancelled",
    "select",
    "tool_annotations",
    "tool_name",
    "walk",
]
