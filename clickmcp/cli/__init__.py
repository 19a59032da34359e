"""clickmcp CLI module."""

from clickmcp.cli.main import claude_command, cli, main, mcp_command, setup_logging

__all__ = ["claude_command", "cli", "main", "mcp_command", "setup_logging"]
