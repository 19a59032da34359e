"""
The bridge: builds the tool set from a command tree and serves it over MCP.

``Bridge`` runs the startup pipeline (walk, select, generate, register) once
and keeps the result. The MCP side uses the SDK's low-level ``Server``, with
``tools/list`` and ``tools/call`` answered from the registry and executor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import mcp.types as types
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError

from clickmcp.bridge import capture
from clickmcp.bridge.errors import ArgumentError, ConfigurationError, ToolNotFoundError
from clickmcp.bridge.executor import ToolExecutor
from clickmcp.bridge.generator import build_tool_definition
from clickmcp.bridge.registry import ToolRegistry
from clickmcp.bridge.schema import ExecutionRequest, ExecutionResult
from clickmcp.bridge.selection import SelectionRule, allow_all
from clickmcp.bridge.tree import ClickNode, CommandFactory, as_factory
from clickmcp.bridge.walker import walk

logger = logging.getLogger(__name__)


class Bridge:
    """
    Exposes the commands of a click application as MCP tools.

    Parameters
    ----------
    factory : ``CommandFactory``, zero-argument builder, or ``click.Command``
    rules : selection rules; None exposes every eligible command, an empty
        sequence exposes nothing
    name, version, instructions : reported to MCP clients on initialize
    timeout : default per-call timeout in seconds, None for no limit

    Raises
    ------
    ConfigurationError : the tool set cannot be built (including duplicate
        tool names and unrepresentable commands)
    """

    def __init__(
        self,
        factory: Any,
        rules: Optional[Sequence[SelectionRule]] = None,
        *,
        name: Optional[str] = None,
        version: str = "unknown",
        instructions: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        if factory is None:
            raise ConfigurationError("A command factory is required")
        try:
            self.factory: CommandFactory = as_factory(factory)
            root_command = self.factory.registration_command()
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ConfigurationError(f"Could not build the registration command tree: {exc}") from exc

        self.rules = tuple(rules) if rules is not None else (allow_all(),)
        self.root = ClickNode(root_command)
        self.name = name or self.root.name
        self.version = version
        self.instructions = instructions

        self.registry = ToolRegistry()
        self.registry.register(build_tool_definition(s) for s in walk(self.root, self.rules))
        self.executor = ToolExecutor(self.registry, self.factory, timeout=timeout)
        logger.info("Bridge %r ready with %d tools", self.name, len(self.registry))

    @classmethod
    def from_config(cls, factory: Any, config) -> "Bridge":
        """Build a bridge from a ``BridgeConfig``."""
        return cls(
            factory,
            config.rules,
            name=config.server.name,
            version=config.server.version,
            instructions=config.server.instructions,
            timeout=config.execution.timeout,
        )

    # ── MCP operations ────────────────────────────────────────────────────

    def list_tools(self) -> List[types.Tool]:
        return [
            types.Tool(
                name=t.name,
                description=t.description,
                inputSchema=t.input_schema(),
                annotations=types.ToolAnnotations(**t.annotations.as_dict()) if t.annotations else None,
            )
            for t in self.registry.list_tools()
        ]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> types.CallToolResult:
        """
        Run a tool and convert the outcome for the client.

        Unknown tools and untranslatable arguments raise ``McpError`` with
        ``INVALID_PARAMS``; a command that fails yields ``isError=True``.
        """
        request = ExecutionRequest(tool_name=name, arguments=arguments or {})
        try:
            result = await self.executor.execute_async(request)
        except (ToolNotFoundError, ArgumentError) as exc:
            logger.info("Rejected call to %s: %s", name, exc)
            raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=str(exc))) from exc
        return to_call_tool_result(result)

    def create_server(self) -> Server:
        """Low-level MCP server wired to this bridge."""
        server = Server(self.name, version=self.version, instructions=self.instructions)

        async def _list_tools(_request: types.ListToolsRequest) -> types.ServerResult:
            return types.ServerResult(types.ListToolsResult(tools=self.list_tools()))

        async def _call_tool(request: types.CallToolRequest) -> types.ServerResult:
            result = await self.call_tool(request.params.name, request.params.arguments)
            return types.ServerResult(result)

        # Raw handlers: McpError surfaces as a JSON-RPC error, not a tool result
        server.request_handlers[types.ListToolsRequest] = _list_tools
        server.request_handlers[types.CallToolRequest] = _call_tool
        return server

    async def serve_stdio(self) -> None:
        """Serve MCP over stdin/stdout until the client disconnects."""
        capture.install()
        server = self.create_server()
        logger.info("Serving %r over stdio", self.name)
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    def run(self) -> None:
        asyncio.run(self.serve_stdio())


def to_call_tool_result(result: ExecutionResult) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=result.output)],
        isError=not result.success,
    )
