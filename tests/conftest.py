"""Shared command trees for the test suite."""

import json
import logging
import sys
import threading
import time

import click
import pytest

from clickmcp.bridge.executor import is_cancelled
from clickmcp.bridge.tree import CallableFactory, ClickNode


def build_hello_app() -> click.Group:
    """``app hello [--greeting TEXT]``"""

    @click.group(name="app")
    def app() -> None:
        """Greeting app."""

    @app.command()
    @click.option("--greeting", default="Hello", help="Greeting word")
    def hello(greeting: str) -> None:
        """Say hello."""
        click.echo(f"{greeting}, World!")

    return app


def build_kube_app() -> click.Group:
    """A kubectl-like tree with group options, hidden and deprecated commands."""

    @click.group(name="kubectl")
    @click.option("--namespace", "-n", default="default", help="Namespace to operate in")
    @click.option("--context", "kube_context", default=None, help="Kube context")
    @click.option("--token", hidden=True, default=None)
    @click.pass_context
    def kubectl(ctx, namespace, kube_context, token):
        """Kubernetes control."""
        ctx.obj = {"namespace": namespace, "context": kube_context}

    @kubectl.group()
    @click.option("--all-namespaces", "-A", is_flag=True, help="Across all namespaces")
    @click.pass_obj
    def get(obj, all_namespaces):
        """Display resources."""
        obj["all_namespaces"] = all_namespaces

    @get.command()
    @click.option("--output", "-o", type=click.Choice(["json", "yaml", "wide"]), default="wide", help="Output format")
    @click.option("--watch/--no-watch", default=False, help="Watch for changes")
    @click.option("--label", "-l", multiple=True, help="Label selector")
    @click.option("--limit", type=int, help="Maximum number of pods")
    @click.option("--verbose", "-v", count=True, default=0, help="Verbosity")
    @click.option("--ratio", type=float, help="Sampling ratio")
    @click.option("--size", type=(int, int), default=None, help="Terminal size")
    @click.argument("names", nargs=-1)
    @click.pass_obj
    def pods(obj, output, watch, label, limit, verbose, ratio, size, names):
        """List pods."""
        report = dict(obj)
        report.update(
            output=output,
            watch=watch,
            label=list(label),
            limit=limit,
            verbose=verbose,
            ratio=ratio,
            names=list(names),
        )
        click.echo(json.dumps(report, sort_keys=True))

    @get.command(hidden=True)
    def secrets():
        """List secrets."""

    @kubectl.command(deprecated=True)
    def legacy():
        """Old command."""

    @kubectl.command()
    @click.argument("resource")
    @click.option("--force", is_flag=True, help="Skip graceful deletion")
    def delete(resource, force):
        """Delete a resource.

        Deletes the named resource from the cluster.
        """
        if resource == "protected":
            raise click.ClickException("resource is protected")
        click.echo(f"deleted {resource}" + (" (forced)" if force else ""))

    @kubectl.command()
    def crash():
        """Always fails."""
        raise RuntimeError("boom")

    @kubectl.command(name="exit-code")
    @click.option("--code", type=int, default=0)
    def exit_code(code):
        """Exit with the given status."""
        click.echo("exiting", err=True)
        sys.exit(code)

    @kubectl.group()
    def config():
        """Modify kubeconfig files."""

    @config.command()
    def view():
        """Show merged kubeconfig settings."""
        click.echo("config view")

    @kubectl.group(name="mcp")
    def mcp_group():
        """MCP server."""

    @mcp_group.command()
    def start():
        """Start the server."""

    return kubectl


def build_worker_app(observed: threading.Event) -> click.Group:
    """Commands for concurrency, cancellation and prompting."""

    @click.group(name="worker")
    def worker():
        """Background worker."""

    @worker.command()
    @click.option("--name", required=True)
    @click.option("--delay", type=float, default=0.05)
    def echo(name, delay):
        """Echo a name, slowly."""
        click.echo(f"start {name}")
        time.sleep(delay)
        click.echo(f"end {name}", err=True)

    @worker.command()
    @click.option("--seconds", type=float, default=5.0)
    def wait(seconds):
        """Wait until cancelled or the time is up."""
        deadline = time.monotonic() + seconds
        while time.monotonic() < deadline:
            if is_cancelled():
                observed.set()
                click.echo("cancelled")
                return
            time.sleep(0.01)
        click.echo("finished")

    @worker.command()
    def ask():
        """Prompt for a name."""
        name = click.prompt("Name")
        click.echo(f"got {name}")

    return worker


def build_nested_app() -> click.Group:
    """``root sub-a`` and ``root sub-a sub-b``, both runnable."""

    @click.group(name="root")
    def root():
        """Root."""

    @root.group(name="sub-a", invoke_without_command=True)
    def sub_a():
        """First level."""
        click.echo("sub-a ran")

    @sub_a.command(name="sub-b")
    def sub_b():
        """Second level."""
        click.echo("sub-b ran")

    return root


@pytest.fixture
def hello_app():
    return build_hello_app()


@pytest.fixture
def kube_app():
    return build_kube_app()


@pytest.fixture
def kube_root(kube_app):
    return ClickNode(kube_app)


@pytest.fixture
def kube_factory():
    return CallableFactory(build_kube_app)


@pytest.fixture
def hello_factory():
    return CallableFactory(build_hello_app)


@pytest.fixture
def nested_factory():
    return CallableFactory(build_nested_app)


@pytest.fixture
def cancel_observed():
    return threading.Event()


@pytest.fixture
def worker_factory(cancel_observed):
    return CallableFactory(lambda: build_worker_app(cancel_observed))


def find_node(root, path):
    """Node with the given space-separated path."""
    from clickmcp.bridge.walker import iter_tree

    for node in iter_tree(root):
        if node.path == path:
            return node
    raise KeyError(path)


@pytest.fixture
def node_at(kube_root):
    return lambda path: find_node(kube_root, path)


@pytest.fixture(autouse=True)
def _reset_clickmcp_logger():
    """Undo setup_logging() so caplog keeps seeing records."""
    yield
    logger = logging.getLogger("clickmcp")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
