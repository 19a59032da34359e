"""Error taxonomy for the command-to-tool bridge.

Two families matter to callers:

- ``ConfigurationError`` and its subclasses are raised while the tool set is
  being built and are fatal: the server must not start serving.
- ``ToolCallError`` subclasses are raised per call and surface to the MCP
  client as protocol errors. A command that runs and fails is *not* an
  exception; it comes back as a failed ``ExecutionResult``.
"""

from __future__ import annotations

from typing import Optional


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class ConfigurationError(BridgeError):
    """Raised when the tool set cannot be constructed."""


class DuplicateToolNameError(ConfigurationError):
    """Two command paths normalize to the same tool name."""

    def __init__(self, name: str, first_path: str, second_path: str):
        self.name = name
        self.first_path = first_path
        self.second_path = second_path
        super().__init__(
            f"Duplicate tool name {name!r}: commands {first_path!r} and "
            f"{second_path!r} normalize to the same name"
        )


class ToolDefinitionError(ConfigurationError):
    """A selected command cannot be turned into a tool definition."""


class ToolCallError(BridgeError):
    """Base class for per-call faults reported as protocol errors."""


class ToolNotFoundError(ToolCallError):
    """The requested tool is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ArgumentError(ToolCallError):
    """A supplied argument cannot be translated into command-line tokens."""

    def __init__(self, tool_name: str, param: Optional[str], message: str):
        self.tool_name = tool_name
        self.param = param
        where = f" parameter {param!r}" if param else ""
        super().__init__(f"Invalid arguments for tool {tool_name!r}{where}: {message}")
