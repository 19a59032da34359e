"""Turns selected commands into tool definitions."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from clickmcp.bridge.errors import ToolDefinitionError
from clickmcp.bridge.schema import POSITIONAL_PARAM, ToolAnnotations, ToolDef, ToolParam
from clickmcp.bridge.tree import CommandNode, FlagSpec
from clickmcp.bridge.walker import SelectedNode

logger = logging.getLogger(__name__)

MAX_TOOL_NAME_LENGTH = 64

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9_]+")

_HINT_KEYS = ("readOnlyHint", "destructiveHint", "idempotentHint", "openWorldHint")
_HINT_STRINGS = {"1": True, "t": True, "true": True, "0": False, "f": False, "false": False}


def tool_name(path: str) -> str:
    """
    Normalize a command path into a tool name.

    Lowercases, then collapses every run of characters outside
    ``[a-z0-9_]`` into one underscore: ``"root sub-a"`` becomes
    ``"root_sub_a"``.
    """
    name = _INVALID_NAME_CHARS.sub("_", path.strip().lower())
    if len(name) > MAX_TOOL_NAME_LENGTH:
        logger.warning(
            "Tool name %r is %d characters long; some MCP clients reject names over %d",
            name, len(name), MAX_TOOL_NAME_LENGTH,
        )
    return name


def describe(node: CommandNode) -> str:
    """Short help, else long help, else the command name."""
    return node.short_help or node.long_help or node.name


def args_description(node: CommandNode) -> str:
    usage = " ".join(f"<{a}>" for a in node.arguments)
    return f"Positional command line arguments\nUsage pattern: {node.path} [flags] {usage}"


def tool_annotations(node: CommandNode) -> Optional[ToolAnnotations]:
    """
    MCP annotations for a command, or None when it carries none.

    Hints accept booleans or the strings ``1/t/true`` and ``0/f/false``
    (any case); anything else is skipped with a warning. Unknown keys are
    ignored.
    """
    raw = node.annotations
    if not raw:
        return None

    values: Dict[str, Any] = {}
    if raw.get("title") is not None:
        values["title"] = str(raw["title"])
    for key in _HINT_KEYS:
        if key not in raw:
            continue
        hint = _parse_hint(raw[key])
        if hint is None:
            logger.warning("Ignoring annotation %s=%r on %r: not a boolean", key, raw[key], node.path)
            continue
        values[key] = hint

    if not values:
        return None
    return ToolAnnotations(**values)


def _parse_hint(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _HINT_STRINGS.get(value.strip().lower())
    return None


def build_tool_definition(selected: SelectedNode) -> ToolDef:
    """Build the immutable ``ToolDef`` for one selected command."""
    node = selected.node
    params = []
    for flag in selected.flags:
        if not flag.representable:
            logger.warning(
                "Dropping option --%s of %r: %s values cannot be expressed in a tool schema",
                flag.name, node.path, flag.type_name,
            )
            continue
        params.append(_param_from_flag(flag))

    if node.arguments:
        if any(p.name == POSITIONAL_PARAM for p in params):
            raise ToolDefinitionError(
                f"Command {node.path!r} takes positional arguments and also has an option "
                f"named {POSITIONAL_PARAM!r}; rename the option or exclude the command"
            )
        params.append(
            ToolParam(
                name=POSITIONAL_PARAM,
                type="array",
                item_type="string",
                description=args_description(node),
                level=len(node.command_path) - 1,
                positional=True,
            )
        )

    return ToolDef(
        name=tool_name(node.path),
        description=describe(node),
        command_path=node.command_path,
        params=tuple(params),
        annotations=tool_annotations(node),
    )


def _param_from_flag(flag: FlagSpec) -> ToolParam:
    description = flag.help
    if flag.custom_type:
        description = f"{description} (type: {flag.type_name})".strip()
    return ToolParam(
        name=flag.name,
        type=flag.value_type,
        item_type=flag.item_type,
        description=description,
        required=flag.required,
        default=flag.default,
        has_default=flag.has_default,
        shorthand=flag.shorthand,
        choices=flag.choices,
        level=flag.level,
        token=flag.token,
        negative_token=flag.negative_token,
        is_flag=flag.is_flag,
        flag_value=flag.flag_value,
        is_count=flag.is_count,
    )
