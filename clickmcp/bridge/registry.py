"""Tool registry: the immutable name -> definition table built at startup."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from clickmcp.bridge.errors import ConfigurationError, DuplicateToolNameError
from clickmcp.bridge.schema import ToolDef

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Holds every tool definition, keyed by tool name.

    ``register()`` is called exactly once, with the complete tool set.
    After that the registry only answers lookups, so concurrent readers
    need no locking.
    """

    def __init__(self) -> None:
        self._tools: Mapping[str, ToolDef] = MappingProxyType({})
        self._populated = False

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    # ── Population ────────────────────────────────────────────────────────

    def register(self, definitions: Iterable[ToolDef]) -> None:
        """
        Populate the registry.

        Raises
        ------
        DuplicateToolNameError : two definitions share a name
        ConfigurationError : the registry was already populated
        """
        if self._populated:
            raise ConfigurationError("Tool registry is already populated")

        tools: Dict[str, ToolDef] = {}
        for definition in definitions:
            existing = tools.get(definition.name)
            if existing is not None:
                raise DuplicateToolNameError(definition.name, existing.path, definition.path)
            tools[definition.name] = definition

        self._tools = MappingProxyType(tools)
        self._populated = True
        logger.debug("Registered %d tools: %s", len(tools), ", ".join(tools))

    # ── Tool Lookup ───────────────────────────────────────────────────────

    def lookup(self, name: str) -> Optional[ToolDef]:
        """Definition registered under ``name``, or None."""
        return self._tools.get(name)

    def list_tools(self) -> List[ToolDef]:
        """All definitions, in walk order."""
        return list(self._tools.values())

    def build_full_schema(self, name: str) -> str:
        """Human-readable parameter listing for one tool."""
        tool = self.lookup(name)
        if not tool:
            return f"Tool not found: {name}"
        return tool.full_schema_text()

    # ── Export ────────────────────────────────────────────────────────────

    def export(self) -> List[Dict[str, Any]]:
        """Tool list in the shape MCP clients receive from ``tools/list``."""
        exported = []
        for t in self._tools.values():
            entry: Dict[str, Any] = {"name": t.name, "description": t.description, "inputSchema": t.input_schema()}
            if t.annotations is not None:
                entry["annotations"] = t.annotations.as_dict()
            exported.append(entry)
        return exported

    def write_manifest(self, path: Path) -> Path:
        """Write the exported tool list as YAML or JSON, chosen by suffix."""
        path = Path(path)
        data = self.export()
        with open(path, "w") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(data, f, indent=2)
                f.write("\n")
        return path
