"""
Desktop client integration.

Registers a clickmcp-enabled application with MCP desktop clients.
"""

from clickmcp.desktop.claude import ClaudeConfig, ClaudeConfigError, ClaudeConfigManager, MCPServer

__all__ = ["ClaudeConfig", "ClaudeConfigError", "ClaudeConfigManager", "MCPServer"]
