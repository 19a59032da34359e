"""
clickmcp CLI - MCP commands for click applications.

Host applications add the ``mcp`` command group to their own tree::

    cli.add_command(mcp_command(build_cli))

which gives ``myapp mcp start``, ``myapp mcp tools`` and
``myapp mcp claude enable|disable|list``. The standalone ``clickmcp``
script does the same for any importable click application.
"""

import importlib
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from clickmcp import __version__
from clickmcp.bridge import capture
from clickmcp.bridge.errors import ConfigurationError
from clickmcp.bridge.server import Bridge
from clickmcp.bridge.tree import CommandFactory, as_factory
from clickmcp.desktop.claude import ClaudeConfigError, ClaudeConfigManager, MCPServer, validate_server_name
from clickmcp.validation.config import VALID_LOG_LEVELS, BridgeConfig, Config, ConfigError

console = Console()
# stdout belongs to the MCP transport while serving
err_console = Console(stderr=True)

MCP_COMMAND_NAME = "mcp"
DEFAULT_TOOLS_FILE = "mcp-tools.json"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


# ── Logging ───────────────────────────────────────────────────────────────


def setup_logging(level: str = "info", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``clickmcp`` logger.

    Logs go to ``log_file`` when given, else to the process's original
    stderr. Never to stdout, which carries MCP messages.
    """
    logger = logging.getLogger("clickmcp")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path)
    else:
        handler = logging.StreamHandler(capture.original_stderr())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(_LOG_LEVELS.get(level.lower(), logging.INFO))
    logger.propagate = False
    return logger


# ── Shared helpers ────────────────────────────────────────────────────────


def _load_config(base: Optional[Config], path: Optional[str], **overrides: Any) -> BridgeConfig:
    try:
        if path:
            config = Config.load(Path(path))
        elif base is not None:
            config = base
        else:
            config = Config.load()
        return config.override(**overrides).merged
    except ConfigError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _build_bridge(factory: CommandFactory, config: BridgeConfig) -> Bridge:
    try:
        return Bridge.from_config(factory, config)
    except ConfigurationError as e:
        err_console.print(f"[red]Error: failed to create MCP server: {e}[/red]")
        sys.exit(1)


def _serve(factory: CommandFactory, config: BridgeConfig) -> None:
    setup_logging(config.logging.level, config.logging.file)
    bridge = _build_bridge(factory, config)
    bridge.run()


def _export_tools(factory: CommandFactory, config: BridgeConfig, output: str, show: Optional[str]) -> None:
    bridge = _build_bridge(factory, config)

    if show:
        if show not in bridge.registry:
            console.print(f"[red]Tool not found: {show}[/red]")
            sys.exit(1)
        console.print(bridge.registry.build_full_schema(show), markup=False, highlight=False)
        return

    tools = bridge.registry.list_tools()
    table = Table(title=f"MCP tools ({len(tools)})", show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Command")
    table.add_column("Params", justify="right")
    table.add_column("Description", style="dim")
    for tool in tools:
        table.add_row(tool.name, escape(tool.path), str(len(tool.params)), escape(tool.description))
    console.print(table)

    path = bridge.registry.write_manifest(Path(output))
    console.print(f"[green]Exported {len(tools)} tools to {path}[/green]")


def _server_options(f):
    f = click.option(
        "--log-file", type=click.Path(dir_okay=False), default=None,
        help="Write logs to this file instead of stderr",
    )(f)
    f = click.option(
        "--log-level", type=click.Choice(VALID_LOG_LEVELS, case_sensitive=False), default=None,
        help="Log level (default: info)",
    )(f)
    f = click.option(
        "--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
        help="Bridge configuration file (YAML)",
    )(f)
    return f


# ── Embedded command group ────────────────────────────────────────────────


def mcp_command(factory: Any, config: Optional[Config] = None, name: str = MCP_COMMAND_NAME) -> click.Group:
    """
    Build the ``mcp`` command group for a host application.

    Parameters
    ----------
    factory : ``CommandFactory``, builder function or ``click.Command``
        producing the host's full command tree
    config : preloaded configuration; when None, ``Config.load()`` is used
    name : name of the group in the host tree
    """
    factory = as_factory(factory)

    @click.group(name=name)
    def group() -> None:
        """Serve this application's commands over MCP."""

    @group.command("start")
    @_server_options
    def start(config_path: Optional[str], log_level: Optional[str], log_file: Optional[str]) -> None:
        """Start the MCP server on stdin/stdout."""
        bridge_config = _load_config(config, config_path, log_level=log_level, log_file=log_file)
        _serve(factory, bridge_config)

    @group.command("tools")
    @click.option("--output", "-o", default=DEFAULT_TOOLS_FILE, show_default=True,
                  type=click.Path(dir_okay=False), help="Export file (.json, .yaml)")
    @click.option("--show", default=None, metavar="TOOL", help="Print the full schema of one tool")
    @click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
                  help="Bridge configuration file (YAML)")
    def tools(output: str, show: Optional[str], config_path: Optional[str]) -> None:
        """List the exposed tools and export their definitions."""
        bridge_config = _load_config(config, config_path)
        _export_tools(factory, bridge_config, output, show)

    group.add_command(claude_command())
    return group


# ── Claude Desktop ────────────────────────────────────────────────────────


def server_command(argv0: Optional[str] = None) -> Tuple[str, List[str]]:
    """Command and leading args that re-run the current program."""
    script = Path(argv0 or sys.argv[0]).resolve()
    if script.suffix == ".py":
        return sys.executable, [str(script)]
    return str(script), []


def mcp_command_args(ctx: click.Context) -> List[str]:
    """Subcommand names from below the root down to the ``mcp`` group."""
    names = []
    current: Optional[click.Context] = ctx
    while current is not None:
        names.append(current.info_name)
        current = current.parent
    names.reverse()
    # [root, ..., mcp, claude, <action>]
    return [n for n in names[1:-2] if n]


def _parse_env(pairs: Tuple[str, ...]) -> dict:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value
    return env


def claude_command() -> click.Group:
    """The ``claude`` group: manage Claude Desktop's MCP server entry."""

    config_path_option = click.option(
        "--config-path", type=click.Path(dir_okay=False), default=None,
        help="Path to claude_desktop_config.json (default: platform location)",
    )

    @click.group(name="claude")
    def claude() -> None:
        """Manage Claude Desktop MCP servers."""

    @claude.command("enable")
    @config_path_option
    @click.option("--server-name", default=None, help="Server name (default: executable name)")
    @click.option("--log-level", type=click.Choice(VALID_LOG_LEVELS, case_sensitive=False), default=None,
                  help="Log level passed to 'mcp start'")
    @click.option("--env", "env_pairs", multiple=True, metavar="KEY=VALUE",
                  help="Environment variable for the server (repeatable)")
    @click.pass_context
    def enable(ctx: click.Context, config_path: Optional[str], server_name: Optional[str],
               log_level: Optional[str], env_pairs: Tuple[str, ...]) -> None:
        """Add this application to Claude Desktop."""
        command, args = server_command()
        name = server_name or Path(args[0] if args else command).stem
        args = args + mcp_command_args(ctx) + ["start"]
        if log_level:
            args += ["--log-level", log_level]
        server = MCPServer(command=command, args=args, env=_parse_env(env_pairs))

        manager = ClaudeConfigManager(Path(config_path) if config_path else None)
        try:
            validate_server_name(name)
            if manager.has_server(name):
                console.print(f"[yellow]Replacing existing MCP server '{name}'[/yellow]")
            manager.add_server(name, server)
        except ClaudeConfigError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)

        console.print(f"[green]Added MCP server '{name}' to {manager.config_path}[/green]")
        console.print(f"[dim]  {command} {' '.join(args)}[/dim]")
        console.print("[dim]Restart Claude Desktop to apply the change.[/dim]")

    @claude.command("disable")
    @config_path_option
    @click.option("--server-name", default=None, help="Server name (default: executable name)")
    def disable(config_path: Optional[str], server_name: Optional[str]) -> None:
        """Remove this application from Claude Desktop."""
        command, args = server_command()
        name = server_name or Path(args[0] if args else command).stem
        manager = ClaudeConfigManager(Path(config_path) if config_path else None)
        try:
            removed = manager.remove_server(name)
        except ClaudeConfigError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)

        if not removed:
            console.print(f"[yellow]MCP server '{name}' is not configured[/yellow]")
            return
        console.print(f"[green]Removed MCP server '{name}' from {manager.config_path}[/green]")
        console.print("[dim]Restart Claude Desktop to apply the change.[/dim]")

    @claude.command("list")
    @config_path_option
    def list_servers(config_path: Optional[str]) -> None:
        """List the MCP servers configured in Claude Desktop."""
        manager = ClaudeConfigManager(Path(config_path) if config_path else None)
        try:
            servers = manager.list_servers()
        except ClaudeConfigError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)

        if not servers:
            console.print(f"[dim]No MCP servers configured in {manager.config_path}[/dim]")
            return

        table = Table(title="Claude Desktop MCP servers", show_header=True, header_style="bold")
        table.add_column("Name", style="cyan")
        table.add_column("Command")
        table.add_column("Args")
        for name, server in servers.items():
            table.add_row(name, server.command, " ".join(server.args))
        console.print(table)

    return claude


# ── Standalone script ─────────────────────────────────────────────────────


def load_app(target: str) -> click.Command:
    """
    Import a click application from ``module:attribute``.

    The attribute may be a ``click.Command`` or a zero-argument function
    returning one.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(f"expected MODULE:ATTRIBUTE, got {target!r}", param_hint="APP")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name!r}: {e}", param_hint="APP")
    obj = module
    for part in attr.split("."):
        if not hasattr(obj, part):
            raise click.BadParameter(f"{module_name!r} has no attribute {attr!r}", param_hint="APP")
        obj = getattr(obj, part)
    return obj


@click.group()
@click.version_option(__version__, prog_name="clickmcp")
def cli() -> None:
    """
    clickmcp - Expose a click application's commands as MCP tools.

    \b
    Examples:
        clickmcp tools mypkg.cli:main      # Show and export the tools
        clickmcp start mypkg.cli:main      # Serve them over stdio
    """


@cli.command("start")
@click.argument("app")
@_server_options
def start_app(app: str, config_path: Optional[str], log_level: Optional[str], log_file: Optional[str]) -> None:
    """Serve APP (MODULE:ATTRIBUTE) over MCP on stdin/stdout."""
    factory = as_factory(load_app(app))
    bridge_config = _load_config(None, config_path, log_level=log_level, log_file=log_file)
    _serve(factory, bridge_config)


@cli.command("tools")
@click.argument("app")
@click.option("--output", "-o", default=DEFAULT_TOOLS_FILE, show_default=True,
              type=click.Path(dir_okay=False), help="Export file (.json, .yaml)")
@click.option("--show", default=None, metavar="TOOL", help="Print the full schema of one tool")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Bridge configuration file (YAML)")
def tools_app(app: str, output: str, show: Optional[str], config_path: Optional[str]) -> None:
    """List APP's tools and export their definitions."""
    factory = as_factory(load_app(app))
    bridge_config = _load_config(None, config_path)
    _export_tools(factory, bridge_config, output, show)


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
