"""
clickmcp - Expose click command trees as MCP tools.

Every runnable command a host application selects becomes one MCP tool.
The tool's input schema is generated from the command's options, and a
tool call re-enters the command in-process with the JSON arguments turned
back into command-line tokens.

Architecture:
- tree: read-only view of the click command tree
- selection + walker: which commands become tools, with which flags
- generator + registry: immutable tool definitions, keyed by name
- executor: runs calls against fresh trees with output captured
- server: MCP tools/list and tools/call over stdio
"""

__version__ = "0.1.0"

from clickmcp.bridge import (
    Bridge,
    CommandFactory,
    ExecutionRequest,
    ExecutionResult,
    InheritedFlagRule,
    SelectionRule,
    ToolDef,
    ToolParam,
    annotate,
    is_cancelled,
)

__all__ = [
    "Bridge",
    "CommandFactory",
    "ExecutionRequest",
    "ExecutionResult",
    "InheritedFlagRule",
    "SelectionRule",
    "ToolDef",
    "ToolParam",
    "annotate",
    "is_cancelled",
    "__version__",
]
