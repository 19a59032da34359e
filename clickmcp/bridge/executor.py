"""Tool executor: runs tool calls as in-process command invocations."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, List, Mapping, Optional, Tuple

import click

from clickmcp.bridge.capture import capture_output
from clickmcp.bridge.errors import ArgumentError, ToolNotFoundError
from clickmcp.bridge.registry import ToolRegistry
from clickmcp.bridge.schema import ExecutionRequest, ExecutionResult, ExecutionState, ToolDef, ToolParam
from clickmcp.bridge.tree import CommandFactory, resolve_command

logger = logging.getLogger(__name__)

# Key under ``click.Context.meta`` holding the call's cancellation event
CANCEL_KEY = "clickmcp.cancel"

_TRUE_STRINGS = {"1", "true", "t", "yes", "y", "on"}
_FALSE_STRINGS = {"0", "false", "f", "no", "n", "off"}

_TRANSITIONS = {
    ExecutionState.IDLE: {ExecutionState.ARGUMENTS_BOUND},
    ExecutionState.ARGUMENTS_BOUND: {ExecutionState.RUNNING, ExecutionState.FAILED},
    ExecutionState.RUNNING: {ExecutionState.COMPLETED, ExecutionState.FAILED},
}


def is_cancelled(ctx: Optional[click.Context] = None) -> bool:
    """
    True once the MCP call running this command has been cancelled.

    Long-running commands can poll this and stop early. Outside a tool
    call it is always False.
    """
    if ctx is None:
        ctx = click.get_current_context(silent=True)
    if ctx is None:
        return False
    event = ctx.meta.get(CANCEL_KEY)
    return event is not None and event.is_set()


class _Execution:
    """State machine for one call: IDLE -> ARGUMENTS_BOUND -> RUNNING -> COMPLETED | FAILED."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        self.state = ExecutionState.IDLE

    def advance(self, state: ExecutionState) -> None:
        if state not in _TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"Invalid execution transition {self.state.value} -> {state.value}")
        logger.debug("%s: %s -> %s", self.tool_name, self.state.value, state.value)
        self.state = state


class ToolExecutor:
    """
    Executes tool calls against fresh command trees.

    Every call builds a new tree from the factory, translates the JSON
    arguments back into command-line tokens, and runs the root command with
    stdout and stderr captured. Calls are independent of each other and may
    run concurrently.
    """

    def __init__(self, registry: ToolRegistry, factory: CommandFactory, timeout: Optional[float] = None):
        self._registry = registry
        self._factory = factory
        self._timeout = timeout

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # ── Execution ─────────────────────────────────────────────────────────

    def execute(self, request: ExecutionRequest, cancel_event: Optional[threading.Event] = None) -> ExecutionResult:
        """
        Run one tool call synchronously.

        Raises
        ------
        ToolNotFoundError : no tool is registered under the requested name
        ArgumentError : an argument cannot be turned into command-line tokens

        A command that runs and fails is reported through the returned
        result, not raised.
        """
        tool = self._registry.lookup(request.tool_name)
        if tool is None:
            raise ToolNotFoundError(request.tool_name)

        execution = _Execution(tool.name)
        argv = build_command_args(tool, request.arguments)
        execution.advance(ExecutionState.ARGUMENTS_BOUND)
        logger.debug("Executing %s: %s %s", tool.name, tool.command_path[0], " ".join(argv))

        t0 = time.perf_counter()
        try:
            root = self._factory.new()
            resolve_command(root, tool.command_path)
        except Exception as exc:
            logger.exception("Could not build a command tree for %s", tool.name)
            execution.advance(ExecutionState.FAILED)
            return ExecutionResult(
                tool_name=tool.name,
                success=False,
                output=f"Error: {exc}",
                error=f"command tree unavailable: {exc}",
                exit_code=1,
                state=execution.state,
                duration_ms=_elapsed_ms(t0),
                argv=argv,
            )

        if cancel_event is None:
            cancel_event = threading.Event()
        with capture_output() as buffer:
            execution.advance(ExecutionState.RUNNING)
            exit_code, error = _invoke(root, tool.command_path[0], argv, cancel_event)
        output = buffer.getvalue()

        if error is None:
            execution.advance(ExecutionState.COMPLETED)
            return ExecutionResult(
                tool_name=tool.name,
                success=True,
                output=output,
                exit_code=0,
                state=execution.state,
                duration_ms=_elapsed_ms(t0),
                argv=argv,
            )

        execution.advance(ExecutionState.FAILED)
        logger.info("Tool %s failed: %s", tool.name, error)
        if output and not output.endswith("\n"):
            output += "\n"
        return ExecutionResult(
            tool_name=tool.name,
            success=False,
            output=output + error,
            error=error,
            exit_code=exit_code,
            state=execution.state,
            duration_ms=_elapsed_ms(t0),
            argv=argv,
        )

    async def execute_async(self, request: ExecutionRequest, timeout: Optional[float] = None) -> ExecutionResult:
        """
        Run a tool call on a worker thread.

        Cancelling the awaiting task sets the call's cancellation event and
        re-raises. When ``timeout`` (or the executor default) elapses, the
        event is set and a failed result is returned; the command itself
        keeps running until it returns or checks ``is_cancelled()``.
        """
        if timeout is None:
            timeout = self._timeout
        cancel_event = threading.Event()
        call = asyncio.to_thread(self.execute, request, cancel_event)
        try:
            if timeout:
                return await asyncio.wait_for(call, timeout)
            return await call
        except asyncio.TimeoutError:
            cancel_event.set()
            logger.warning("Tool %s timed out after %ss", request.tool_name, timeout)
            message = f"Error: timed out after {timeout}s"
            return ExecutionResult(
                tool_name=request.tool_name,
                success=False,
                output=message,
                error=message,
                exit_code=1,
                state=ExecutionState.FAILED,
                duration_ms=int(timeout * 1000),
            )
        except asyncio.CancelledError:
            cancel_event.set()
            logger.info("Tool %s cancelled", request.tool_name)
            raise


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def _invoke(root: click.Command, prog_name: str, argv: List[str], cancel_event: threading.Event) -> Tuple[int, Optional[str]]:
    """Parse and run ``argv`` against ``root``; return ``(exit_code, error)``."""
    try:
        with root.make_context(prog_name, list(argv)) as ctx:
            ctx.meta[CANCEL_KEY] = cancel_event
            root.invoke(ctx)
    except click.exceptions.Exit as exc:
        if exc.exit_code == 0:
            return 0, None
        return exc.exit_code, f"Error: command exited with status {exc.exit_code}"
    except click.ClickException as exc:
        return exc.exit_code, _format_click_error(exc)
    except (click.Abort, EOFError, KeyboardInterrupt):
        return 1, "Error: Aborted!"
    except SystemExit as exc:
        if exc.code is None or exc.code == 0:
            return 0, None
        if isinstance(exc.code, int):
            return exc.code, f"Error: command exited with status {exc.code}"
        return 1, f"Error: {exc.code}"
    except Exception as exc:
        logger.exception("Command %s raised", prog_name)
        return 1, f"Error: {type(exc).__name__}: {exc}"
    return 0, None


def _format_click_error(exc: click.ClickException) -> str:
    lines = []
    ctx = getattr(exc, "ctx", None)
    if ctx is not None:
        lines.append(ctx.get_usage())
        if ctx.command.get_help_option(ctx) is not None:
            lines.append(f"Try '{ctx.command_path} {ctx.help_option_names[0]}' for help.")
        lines.append("")
    lines.append(f"Error: {exc.format_message()}")
    return "\n".join(lines)


# ── Argument translation ──────────────────────────────────────────────────


def build_command_args(tool: ToolDef, arguments: Optional[Mapping[str, Any]]) -> List[str]:
    """
    Translate a JSON argument object into command-line tokens.

    Options are placed after the command that owns them, so the result
    reads like ``[root opts] sub [sub opts] leaf [leaf opts] [--] args``.
    The root's own name is not included.
    """
    arguments = arguments or {}
    known = {p.name for p in tool.params}
    unknown = sorted(name for name in arguments if name not in known)
    if unknown:
        raise ArgumentError(tool.name, unknown[0], "unknown parameter")

    per_level: List[List[str]] = [[] for _ in tool.command_path]
    positionals: List[str] = []
    for param in tool.params:
        raw = arguments.get(param.name)
        if raw is None:
            continue
        value = coerce_value(tool.name, param, raw)
        if param.positional:
            positionals = [str(v) for v in value]
            continue
        try:
            per_level[param.level].extend(option_tokens(param, value))
        except ValueError as exc:
            raise ArgumentError(tool.name, param.name, str(exc)) from exc

    argv = list(per_level[0])
    for level in range(1, len(tool.command_path)):
        argv.append(tool.command_path[level])
        argv.extend(per_level[level])
    if positionals:
        if any(p.startswith("-") for p in positionals):
            argv.append("--")
        argv.extend(positionals)
    return argv


def option_tokens(param: ToolParam, value: Any) -> List[str]:
    """
    Tokens for one option and its coerced value.

    Raises ``ValueError`` when a flag cannot be driven to ``value`` from the
    command line.
    """
    if param.is_count:
        return [param.token] * value
    if param.is_flag:
        return _flag_tokens(param, value)
    if param.type == "array":
        tokens: List[str] = []
        for item in value:
            tokens.extend([param.token, _format_token(item)])
        return tokens
    return [param.token, _format_token(value)]


def _flag_tokens(param: ToolParam, value: bool) -> List[str]:
    if param.negative_token:
        return [param.token] if value else [param.negative_token]
    if param.flag_value is None:
        # non-boolean flag_value: true selects it, false leaves the default
        return [param.token] if value else []
    if value == param.flag_value:
        return [param.token]
    # without the flag click falls back to the default, or to the opposite value
    omitted = param.default if param.has_default else not param.flag_value
    if value == omitted:
        return []
    raise ValueError(f"{param.token} cannot set {_format_token(value)}; it only sets {_format_token(param.flag_value)}")


def _format_token(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_value(tool_name: str, param: ToolParam, raw: Any) -> Any:
    """Check and convert ``raw`` to the parameter's declared type."""
    try:
        if param.type == "array":
            items = raw if isinstance(raw, (list, tuple)) else [raw]
            return [_coerce_scalar(param.item_type or "string", item) for item in items]
        value = _coerce_scalar(param.type, raw)
        if param.is_count and value < 0:
            raise ValueError(f"expected a non-negative count, got {value}")
        return value
    except (TypeError, ValueError) as exc:
        raise ArgumentError(tool_name, param.name, str(exc)) from exc


def _coerce_scalar(kind: str, value: Any) -> Any:
    if kind == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError(f"expected a boolean, got {value!r}")

    if kind == "integer":
        if isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
        raise ValueError(f"expected an integer, got {value!r}")

    if kind == "number":
        if isinstance(value, bool):
            raise ValueError(f"expected a number, got {value!r}")
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
        raise ValueError(f"expected a number, got {value!r}")

    if isinstance(value, (dict, list, tuple)):
        raise ValueError(f"expected a string, got {type(value).__name__}")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
