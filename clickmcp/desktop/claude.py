"""
Claude Desktop integration: register the bridge as an MCP server.

Claude Desktop reads its servers from ``claude_desktop_config.json``::

    {"mcpServers": {"myapp": {"command": "/usr/local/bin/myapp", "args": ["mcp", "start"]}}}

Keys other than ``mcpServers`` are left untouched.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "claude_desktop_config.json"
INVALID_SERVER_NAME_CHARS = '/\\:*?"<>|'


class ClaudeConfigError(Exception):
    """Raised when the Claude Desktop config cannot be read or written."""


class MCPServer(BaseModel):
    """One entry under ``mcpServers``."""

    model_config = ConfigDict(extra="allow")

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)


class ClaudeConfig(BaseModel):
    """The parts of Claude Desktop's config this module manages."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    mcp_servers: Dict[str, MCPServer] = Field(default_factory=dict, alias="mcpServers")

    def to_json(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        for server in data.get("mcpServers", {}).values():
            # Claude Desktop writes these keys only when set
            for key in ("args", "env"):
                if not server.get(key):
                    server.pop(key, None)
        return data


def default_config_path(
    platform: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Location of Claude Desktop's config file on this platform."""
    platform = platform or sys.platform
    environ = os.environ if environ is None else environ
    home = home or Path.home()

    if platform == "darwin":
        return home / "Library" / "Application Support" / "Claude" / CONFIG_FILENAME
    if platform.startswith("win"):
        appdata = environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / "Claude" / CONFIG_FILENAME
    xdg = environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else home / ".config"
    return base / "Claude" / CONFIG_FILENAME


def validate_server_name(name: str) -> None:
    """Reject names Claude Desktop cannot use as a server key."""
    if not name or not name.strip():
        raise ClaudeConfigError("Server name cannot be empty")
    bad = sorted({c for c in name if c in INVALID_SERVER_NAME_CHARS})
    if bad:
        raise ClaudeConfigError(f"Server name {name!r} contains invalid characters: {' '.join(bad)}")


class ClaudeConfigManager:
    """
    Reads and edits Claude Desktop's MCP server list.

    Every write first copies the existing file to a ``.backup.json``
    sibling.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = Path(config_path) if config_path else default_config_path()

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def backup_path(self) -> Path:
        return self._config_path.with_name(f"{self._config_path.stem}.backup.json")

    # ── Config I/O ────────────────────────────────────────────────────────

    def load_config(self) -> ClaudeConfig:
        """Load the config; a missing file is an empty config."""
        if not self._config_path.exists():
            return ClaudeConfig()
        try:
            with open(self._config_path) as f:
                raw = f.read()
        except OSError as exc:
            raise ClaudeConfigError(f"Failed to read Claude config {self._config_path}: {exc}") from exc
        if not raw.strip():
            return ClaudeConfig()
        try:
            return ClaudeConfig.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ClaudeConfigError(f"Failed to parse Claude config {self._config_path}: {exc}") from exc

    def save_config(self, config: ClaudeConfig) -> None:
        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            self.backup_config()
            with open(self._config_path, "w") as f:
                json.dump(config.to_json(), f, indent=2)
                f.write("\n")
        except OSError as exc:
            raise ClaudeConfigError(f"Failed to write Claude config {self._config_path}: {exc}") from exc
        logger.debug("Wrote Claude config %s", self._config_path)

    def backup_config(self) -> Optional[Path]:
        """Copy the current file aside. Returns the backup path, if any."""
        if not self._config_path.exists():
            return None
        shutil.copy2(self._config_path, self.backup_path)
        return self.backup_path

    # ── Server entries ────────────────────────────────────────────────────

    def list_servers(self) -> Dict[str, MCPServer]:
        return dict(self.load_config().mcp_servers)

    def has_server(self, name: str) -> bool:
        return name in self.load_config().mcp_servers

    def add_server(self, name: str, server: MCPServer) -> None:
        """Add or replace a server entry."""
        validate_server_name(name)
        config = self.load_config()
        config.mcp_servers[name] = server
        self.save_config(config)
        logger.info("Added MCP server %r to %s", name, self._config_path)

    def remove_server(self, name: str) -> bool:
        """Remove a server entry. Returns False when it was not present."""
        config = self.load_config()
        if name not in config.mcp_servers:
            return False
        del config.mcp_servers[name]
        self.save_config(config)
        logger.info("Removed MCP server %r from %s", name, self._config_path)
        return True
