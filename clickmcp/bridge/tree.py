"""
Command-tree capabilities and the click adapter that provides them.

The walker, selector and generator only ever talk to a ``CommandNode``.
``ClickNode`` implements that interface on top of a live ``click.Command``
tree, and ``CommandFactory`` hands out fresh trees so that every tool call
parses into pristine command state.
"""

from __future__ import annotations

import copy
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import click
import click.core

logger = logging.getLogger(__name__)

# click >= 8.3 marks "no default given" with a sentinel instead of None
_UNSET = getattr(click.core, "UNSET", None)

_STRING_TYPES = (
    click.types.StringParamType,
    click.types.Path,
    click.types.File,
    click.types.DateTime,
    click.types.UUIDParameterType,
    click.types.UnprocessedParamType,
)


@dataclass(frozen=True)
class FlagSpec:
    """Everything the bridge needs to know about one command option."""

    name: str
    level: int
    value_type: Optional[str]  # JSON type; None when it cannot be represented
    item_type: Optional[str] = None
    type_name: str = "text"  # click's own name for the type
    custom_type: bool = False
    required: bool = False
    default: Any = None
    has_default: bool = False
    help: str = ""
    shorthand: Optional[str] = None
    token: str = ""
    negative_token: Optional[str] = None
    is_flag: bool = False
    flag_value: Optional[bool] = None
    is_count: bool = False
    choices: Optional[Tuple[str, ...]] = None
    hidden: bool = False
    deprecated: bool = False

    @property
    def representable(self) -> bool:
        return self.value_type is not None


@runtime_checkable
class CommandNode(Protocol):
    """Read-only view of one command in a hierarchical command tree."""

    @property
    def name(self) -> str: ...

    @property
    def command_path(self) -> Tuple[str, ...]: ...

    @property
    def path(self) -> str: ...

    @property
    def runnable(self) -> bool: ...

    @property
    def hidden(self) -> bool: ...

    @property
    def deprecated(self) -> bool: ...

    @property
    def short_help(self) -> str: ...

    @property
    def long_help(self) -> str: ...

    @property
    def arguments(self) -> Tuple[str, ...]: ...

    @property
    def annotations(self) -> Dict[str, Any]: ...

    def local_flags(self) -> List[FlagSpec]: ...

    def inherited_flags(self) -> List[FlagSpec]: ...

    def children(self) -> List["CommandNode"]: ...


class CommandFactory(Protocol):
    """Produces the host's command tree."""

    def registration_command(self) -> click.Command:
        """Tree used once, at startup, to discover and describe tools."""
        ...

    def new(self) -> click.Command:
        """Fresh tree for a single tool call."""
        ...


class CallableFactory:
    """
    ``CommandFactory`` over a zero-argument builder function.

    The registration tree is built once and cached; ``new()`` calls the
    builder every time. Builders that return a module-level command object
    work too, as click does not keep parse state on the command itself.
    """

    def __init__(self, build: Callable[[], click.Command]):
        self._build = build
        self._registration: Optional[click.Command] = None

    def registration_command(self) -> click.Command:
        if self._registration is None:
            self._registration = self._build()
        return self._registration

    def new(self) -> click.Command:
        return self._build()


class CopyingFactory:
    """
    ``CommandFactory`` over an already built command tree.

    The tree itself is used for registration; every ``new()`` returns a
    deep copy of it.
    """

    def __init__(self, command: click.Command):
        self._command = command

    def registration_command(self) -> click.Command:
        return self._command

    def new(self) -> click.Command:
        return copy.deepcopy(self._command)


def as_factory(source: Any) -> CommandFactory:
    """Accept a factory, a builder function, or a bare ``click.Command``."""
    if isinstance(source, click.Command):
        return CopyingFactory(source)
    if hasattr(source, "registration_command") and hasattr(source, "new"):
        return source
    if callable(source):
        return CallableFactory(source)
    raise TypeError(f"Expected a command factory, builder or click.Command, got {type(source).__name__}")


# ── Annotations ───────────────────────────────────────────────────────────

# Attribute on a click.Command holding its MCP tool annotations
ANNOTATIONS_ATTR = "mcp_annotations"


def annotate(
    title: Optional[str] = None,
    read_only: Any = None,
    destructive: Any = None,
    idempotent: Any = None,
    open_world: Any = None,
    **hints: Any,
) -> Callable[[click.Command], click.Command]:
    """
    Attach MCP tool annotations to a click command.

    Apply it above the click decorator::

        @annotate(title="List pods", read_only=True)
        @kubectl.command()
        def pods(): ...

    Hints may be booleans or strings such as ``"true"`` or ``"0"``.
    The MCP key names (``readOnlyHint=...``) are accepted as well.
    """
    values = {
        "title": title,
        "readOnlyHint": read_only,
        "destructiveHint": destructive,
        "idempotentHint": idempotent,
        "openWorldHint": open_world,
    }
    values = {k: v for k, v in values.items() if v is not None}
    values.update(hints)

    def decorator(command: click.Command) -> click.Command:
        if not isinstance(command, click.Command):
            raise TypeError("annotate() must be applied to a click command; place it above @command")
        merged = dict(getattr(command, ANNOTATIONS_ATTR, None) or {})
        merged.update(values)
        setattr(command, ANNOTATIONS_ATTR, merged)
        return command

    return decorator


# ── click adapter ─────────────────────────────────────────────────────────


class ClickNode:
    """``CommandNode`` backed by a ``click.Command``."""

    def __init__(
        self,
        command: click.Command,
        parent: Optional["ClickNode"] = None,
        name: Optional[str] = None,
    ):
        self.command = command
        self.parent = parent
        self._name = name or command.name or ""

    def __repr__(self) -> str:
        return f"ClickNode({self.path!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def command_path(self) -> Tuple[str, ...]:
        if self.parent is None:
            return (self._name,)
        return self.parent.command_path + (self._name,)

    @property
    def path(self) -> str:
        return " ".join(self.command_path)

    @property
    def level(self) -> int:
        return len(self.command_path) - 1

    @property
    def runnable(self) -> bool:
        cmd = self.command
        if cmd.callback is None:
            return False
        if isinstance(cmd, click.Group):
            return bool(cmd.invoke_without_command)
        return True

    @property
    def hidden(self) -> bool:
        return bool(self.command.hidden)

    @property
    def deprecated(self) -> bool:
        return bool(self.command.deprecated)

    @property
    def short_help(self) -> str:
        """Explicit short help, else the first paragraph of the help text."""
        if self.command.short_help:
            return self.command.short_help.strip()
        paragraphs = self.long_help.split("\n\n")
        return " ".join(paragraphs[0].split())

    @property
    def long_help(self) -> str:
        # click stops reading help at a form feed
        return (self.command.help or "").split("\f")[0].strip()

    @property
    def arguments(self) -> Tuple[str, ...]:
        return tuple(p.human_readable_name for p in self.command.params if isinstance(p, click.Argument))

    @property
    def annotations(self) -> Dict[str, Any]:
        """Raw MCP annotations attached with ``annotate()``."""
        return dict(getattr(self.command, ANNOTATIONS_ATTR, None) or {})

    def local_flags(self) -> List[FlagSpec]:
        level = self.level
        return [flag_spec(p, level) for p in self.command.params if isinstance(p, click.Option)]

    def inherited_flags(self) -> List[FlagSpec]:
        """Options of every ancestor, nearest first, minus shadowed names."""
        seen = {f.name for f in self.local_flags()}
        inherited: List[FlagSpec] = []
        node = self.parent
        while node is not None:
            for flag in node.local_flags():
                if flag.name not in seen:
                    seen.add(flag.name)
                    inherited.append(flag)
            node = node.parent
        return inherited

    def children(self) -> List["ClickNode"]:
        return [ClickNode(cmd, self, name) for name, cmd in subcommands(self.command)]


def subcommands(command: click.Command) -> List[Tuple[str, click.Command]]:
    """Direct subcommands in declaration order."""
    if not isinstance(command, click.Group):
        return []
    if command.commands:
        return list(command.commands.items())
    # lazily loading groups only answer through list_commands/get_command
    ctx = click.Context(command, info_name=command.name)
    found = []
    for name in command.list_commands(ctx):
        sub = command.get_command(ctx, name)
        if sub is not None:
            found.append((name, sub))
    return found


def resolve_command(root: click.Command, command_path: Sequence[str]) -> click.Command:
    """Find the command at ``command_path`` in ``root``'s tree."""
    command = root
    for name in command_path[1:]:
        if not isinstance(command, click.Group):
            raise LookupError(f"{command.name!r} has no subcommand {name!r}")
        ctx = click.Context(command, info_name=command.name)
        sub = command.get_command(ctx, name)
        if sub is None:
            raise LookupError(f"{command.name!r} has no subcommand {name!r}")
        command = sub
    return command


# ── Option introspection ──────────────────────────────────────────────────


def flag_spec(option: click.Option, level: int) -> FlagSpec:
    """Describe a click option as a ``FlagSpec``."""
    long_opts = [o for o in option.opts if o.startswith("--")]
    short_opts = [o for o in option.opts if not o.startswith("--")]
    token = long_opts[0] if long_opts else option.opts[0]
    name = token[2:] if long_opts else (option.name or token.lstrip("-"))

    negative_token = None
    flag_value = None
    if option.is_flag and option.secondary_opts:
        negatives = sorted(option.secondary_opts, key=lambda o: not o.startswith("--"))
        negative_token = negatives[0]
    elif option.is_flag:
        flag_value = _flag_activation_value(option)

    value_type, item_type, type_name, custom, choices = _classify(option)
    default, has_default = _json_default(option)

    return FlagSpec(
        name=name,
        level=level,
        value_type=value_type,
        item_type=item_type,
        type_name=type_name,
        custom_type=custom,
        required=bool(option.required),
        default=default,
        has_default=has_default,
        help=(option.help or "").strip(),
        shorthand=short_opts[0].lstrip("-") if short_opts else None,
        token=token,
        negative_token=negative_token,
        is_flag=bool(option.is_flag),
        flag_value=flag_value,
        is_count=bool(option.count),
        choices=choices,
        # --help/--version style options act on their own and take no value
        hidden=bool(option.hidden) or (option.is_eager and not option.expose_value),
        deprecated=bool(getattr(option, "deprecated", False)),
    )


def _flag_activation_value(option: click.Option) -> Optional[bool]:
    """Boolean a bare ``--flag`` stores, or None for non-boolean flag values."""
    # click >= 8.3 keeps flag_value unset and resolves it here
    value = getattr(option, "flag_activation_value", option.flag_value)
    if _UNSET is not None and value is _UNSET:
        return True
    if isinstance(value, bool):
        return value
    return None


def _classify(option: click.Option):
    """Return ``(value_type, item_type, type_name, custom, choices)``."""
    param_type = option.type
    type_name = getattr(param_type, "name", type(param_type).__name__)

    if option.count:
        return "integer", None, "count", False, None
    if option.is_flag:
        return "boolean", None, "boolean", False, None
    if option.nargs != 1 or isinstance(param_type, click.types.CompositeParamType):
        return None, None, type_name, False, None

    scalar, custom, choices = _scalar_type(param_type)
    if option.multiple:
        return "array", scalar, type_name, custom, choices
    return scalar, None, type_name, custom, choices


def _scalar_type(param_type: click.ParamType):
    if isinstance(param_type, click.types.BoolParamType):
        return "boolean", False, None
    if isinstance(param_type, click.types.IntParamType):
        return "integer", False, None
    if isinstance(param_type, click.types.FloatParamType):
        return "number", False, None
    if isinstance(param_type, click.Choice):
        return "string", False, tuple(_choice_label(c) for c in param_type.choices)
    if isinstance(param_type, _STRING_TYPES):
        return "string", False, None
    return "string", True, None


def _choice_label(choice: Any) -> str:
    if isinstance(choice, enum.Enum):
        return choice.name
    return str(choice)


def _json_default(option: click.Option):
    default = option.default
    if default is None or (_UNSET is not None and default is _UNSET) or callable(default):
        return None, False
    if isinstance(default, (list, tuple)):
        if not default:
            return None, False
        return [_json_scalar(v) for v in default], True
    return _json_scalar(default), True


def _json_scalar(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, enum.Enum):
        return value.name
    return str(value)
