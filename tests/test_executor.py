"""Tests for tool execution."""

import asyncio
import json
from concurrent.futures import ThreadPoolExecutor

import click
import pytest

from clickmcp.bridge.errors import ArgumentError, ToolNotFoundError
from clickmcp.bridge.executor import ToolExecutor, build_command_args, coerce_value, is_cancelled
from clickmcp.bridge.generator import build_tool_definition
from clickmcp.bridge.registry import ToolRegistry
from clickmcp.bridge.schema import ExecutionRequest, ExecutionState, ToolParam
from clickmcp.bridge.selection import allow_all
from clickmcp.bridge.tree import CallableFactory, ClickNode
from clickmcp.bridge.walker import walk


def _executor(factory, timeout=None):
    registry = ToolRegistry()
    root = ClickNode(factory.registration_command())
    registry.register(build_tool_definition(s) for s in walk(root, [allow_all()]))
    return ToolExecutor(registry, factory, timeout=timeout)


def _run(executor, tool, **arguments):
    return executor.execute(ExecutionRequest(tool_name=tool, arguments=arguments))


class TestBuildCommandArgs:
    """Tests for JSON-to-token translation."""

    @pytest.fixture
    def pods(self, kube_factory):
        return _executor(kube_factory).registry.lookup("kubectl_get_pods")

    def test_options_follow_their_owner(self, pods):
        argv = build_command_args(pods, {
            "namespace": "prod",
            "all-namespaces": True,
            "output": "json",
            "watch": True,
            "label": ["app=web", "tier=front"],
            "verbose": 2,
            "args": ["web-1"],
        })
        assert argv == [
            "--namespace", "prod",
            "get", "--all-namespaces",
            "pods", "--output", "json", "--watch",
            "--label", "app=web", "--label", "tier=front",
            "--verbose", "--verbose",
            "web-1",
        ]

    def test_no_arguments(self, pods):
        assert build_command_args(pods, {}) == ["get", "pods"]
        assert build_command_args(pods, None) == ["get", "pods"]

    def test_false_switch_uses_negative_form(self, pods):
        assert build_command_args(pods, {"watch": False}) == ["get", "pods", "--no-watch"]

    def test_false_flag_without_negative_form_is_omitted(self, pods):
        assert build_command_args(pods, {"all-namespaces": False}) == ["get", "pods"]

    def test_null_values_are_skipped(self, pods):
        assert build_command_args(pods, {"limit": None, "output": None}) == ["get", "pods"]

    def test_dash_prefixed_positionals_get_separator(self, pods):
        assert build_command_args(pods, {"args": ["-weird", "name"]}) == ["get", "pods", "--", "-weird", "name"]

    def test_unknown_parameter(self, pods):
        with pytest.raises(ArgumentError) as exc_info:
            build_command_args(pods, {"colour": "red"})
        assert exc_info.value.param == "colour"

    def test_numbers_and_strings(self, pods):
        argv = build_command_args(pods, {"limit": "5", "ratio": 0.5, "namespace": 7})
        assert argv == ["--namespace", "7", "get", "pods", "--limit", "5", "--ratio", "0.5"]


class TestFlagValues:
    """Tests for flags that store a fixed value and have no negative form."""

    @pytest.fixture
    def show_factory(self):
        def build():
            @click.command(name="show")
            @click.option("--monochrome", "color", is_flag=True, flag_value=False, default=True, help="Disable color")
            @click.option("--compact", is_flag=True, flag_value=True, default=True, help="Compact output")
            def show(color, compact):
                click.echo(json.dumps({"color": color, "compact": compact}))

            return show

        return CallableFactory(build)

    def test_false_emits_flag_storing_false(self, show_factory):
        tool = _executor(show_factory).registry.lookup("show")
        assert build_command_args(tool, {"monochrome": False}) == ["--monochrome"]
        assert build_command_args(tool, {"monochrome": True}) == []

    def test_false_reaches_the_command(self, show_factory):
        result = _run(_executor(show_factory), "show", monochrome=False)
        assert result.success
        assert json.loads(result.output) == {"color": False, "compact": True}

    def test_default_true_flag_cannot_be_cleared(self, show_factory):
        tool = _executor(show_factory).registry.lookup("show")
        assert build_command_args(tool, {"compact": True}) == ["--compact"]
        with pytest.raises(ArgumentError) as exc_info:
            build_command_args(tool, {"compact": False})
        assert exc_info.value.param == "compact"

    def test_unreachable_value_is_rejected_before_running(self, show_factory):
        with pytest.raises(ArgumentError):
            _run(_executor(show_factory), "show", compact=False)


class TestCoerceValue:
    """Tests for argument coercion."""

    @pytest.mark.parametrize(
        "kind, raw, expected",
        [
            ("boolean", True, True),
            ("boolean", "yes", True),
            ("boolean", "off", False),
            ("boolean", 0, False),
            ("integer", 3, 3),
            ("integer", "42", 42),
            ("integer", 2.0, 2),
            ("number", 1, 1),
            ("number", "2.5", 2.5),
            ("string", "x", "x"),
            ("string", 5, "5"),
        ],
    )
    def test_accepted(self, kind, raw, expected):
        assert coerce_value("t", ToolParam(name="p", type=kind), raw) == expected

    @pytest.mark.parametrize(
        "kind, raw",
        [
            ("boolean", "maybe"),
            ("boolean", 2),
            ("integer", "abc"),
            ("integer", True),
            ("integer", 1.5),
            ("number", "fast"),
            ("string", {"a": 1}),
            ("string", [1, 2]),
        ],
    )
    def test_rejected(self, kind, raw):
        with pytest.raises(ArgumentError):
            coerce_value("t", ToolParam(name="p", type=kind), raw)

    def test_array_wraps_scalars(self):
        param = ToolParam(name="p", type="array", item_type="integer")
        assert coerce_value("t", param, 3) == [3]
        assert coerce_value("t", param, ["1", 2]) == [1, 2]

    def test_negative_count_rejected(self):
        param = ToolParam(name="v", type="integer", is_count=True)
        with pytest.raises(ArgumentError):
            coerce_value("t", param, -1)


class TestToolExecutor:
    """Tests for ToolExecutor.execute."""

    def test_hello_default(self, hello_factory):
        result = _run(_executor(hello_factory), "app_hello")
        assert result.success
        assert result.output.strip() == "Hello, World!"
        assert result.state is ExecutionState.COMPLETED
        assert result.exit_code == 0
        assert result.argv == ["hello"]

    def test_hello_with_greeting(self, hello_factory):
        result = _run(_executor(hello_factory), "app_hello", greeting="Hi")
        assert result.output.strip() == "Hi, World!"

    def test_parameters_round_trip(self, kube_factory):
        result = _run(
            _executor(kube_factory),
            "kubectl_get_pods",
            namespace="prod",
            context="staging",
            output="json",
            watch=True,
            label=["app=web"],
            limit=3,
            verbose=2,
            ratio=0.25,
            args=["-x", "web-1"],
        )
        assert result.success, result.output
        assert json.loads(result.output) == {
            "namespace": "prod",
            "context": "staging",
            "all_namespaces": False,
            "output": "json",
            "watch": True,
            "label": ["app=web"],
            "limit": 3,
            "verbose": 2,
            "ratio": 0.25,
            "names": ["-x", "web-1"],
        }

    def test_defaults_apply_when_omitted(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_get_pods")
        report = json.loads(result.output)
        assert report["namespace"] == "default"
        assert report["output"] == "wide"
        assert report["verbose"] == 0

    def test_positional_argument(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_delete", args=["pod-1"], force=True)
        assert result.success
        assert result.output.strip() == "deleted pod-1 (forced)"

    def test_click_exception_is_a_tool_failure(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_delete", args=["protected"])
        assert not result.success
        assert result.state is ExecutionState.FAILED
        assert result.exit_code == 1
        assert result.error == "Error: resource is protected"
        assert "Error: resource is protected" in result.output

    def test_usage_error_is_a_tool_failure(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_get_pods", output="xml")
        assert not result.success
        assert result.exit_code == 2
        assert "Usage:" in result.output
        assert "xml" in result.error

    def test_missing_positional_is_a_tool_failure(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_delete")
        assert not result.success
        assert "Missing argument" in result.error

    def test_exception_is_a_tool_failure(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_crash")
        assert not result.success
        assert "RuntimeError: boom" in result.error

    def test_nonzero_exit(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_exit_code", code=3)
        assert not result.success
        assert result.exit_code == 3
        assert result.output.startswith("exiting\n")

    def test_zero_exit_is_success(self, kube_factory):
        result = _run(_executor(kube_factory), "kubectl_exit_code", code=0)
        assert result.success
        assert result.output == "exiting\n"

    def test_unknown_tool(self, hello_factory):
        with pytest.raises(ToolNotFoundError):
            _run(_executor(hello_factory), "app_missing")

    def test_argument_errors_raise(self, kube_factory):
        with pytest.raises(ArgumentError):
            _run(_executor(kube_factory), "kubectl_get_pods", limit="many")

    def test_prompt_aborts_instead_of_reading_stdin(self, worker_factory):
        result = _run(_executor(worker_factory), "worker_ask")
        assert not result.success
        assert "Aborted!" in result.error

    def test_every_call_gets_a_fresh_tree(self):
        built = []

        def build():
            @click.command(name="count")
            def count():
                click.echo(str(len(built)))

            built.append(count)
            return count

        executor = _executor(CallableFactory(build))
        assert len(built) == 1
        _run(executor, "count")
        _run(executor, "count")
        assert len(built) == 3

    def test_factory_failure_is_a_tool_failure(self):
        calls = []

        def build():
            calls.append(1)
            if len(calls) > 1:
                raise RuntimeError("no tree today")
            return click.Command("solo", callback=lambda: None)

        result = _run(_executor(CallableFactory(build)), "solo")
        assert not result.success
        assert "no tree today" in result.error

    def test_concurrent_calls_keep_output_separate(self, worker_factory):
        executor = _executor(worker_factory)
        names = [f"job{i}" for i in range(8)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda n: _run(executor, "worker_echo", name=n), names))
        for name, result in zip(names, results):
            assert result.success
            assert result.output == f"start {name}\nend {name}\n"


class TestExecuteAsync:
    """Tests for ToolExecutor.execute_async."""

    def test_runs_call(self, hello_factory):
        executor = _executor(hello_factory)
        result = asyncio.run(executor.execute_async(ExecutionRequest(tool_name="app_hello")))
        assert result.output.strip() == "Hello, World!"

    def test_concurrent_async_calls(self, worker_factory):
        executor = _executor(worker_factory)

        async def main():
            return await asyncio.gather(*[
                executor.execute_async(ExecutionRequest(tool_name="worker_echo", arguments={"name": f"n{i}"}))
                for i in range(5)
            ])

        results = asyncio.run(main())
        assert [r.output for r in results] == [f"start n{i}\nend n{i}\n" for i in range(5)]

    def test_timeout_returns_failure_and_signals_command(self, worker_factory, cancel_observed):
        executor = _executor(worker_factory, timeout=0.1)
        result = asyncio.run(executor.execute_async(ExecutionRequest(tool_name="worker_wait")))
        assert not result.success
        assert "timed out" in result.error
        assert cancel_observed.wait(timeout=2)

    def test_cancellation_propagates_and_signals_command(self, worker_factory, cancel_observed):
        executor = _executor(worker_factory)

        async def main():
            task = asyncio.create_task(executor.execute_async(ExecutionRequest(tool_name="worker_wait")))
            await asyncio.sleep(0.1)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(main())
        assert cancel_observed.wait(timeout=2)

    def test_errors_propagate(self, hello_factory):
        executor = _executor(hello_factory)
        with pytest.raises(ToolNotFoundError):
            asyncio.run(executor.execute_async(ExecutionRequest(tool_name="nope")))


def test_is_cancelled_outside_a_call():
    assert is_cancelled() is False
