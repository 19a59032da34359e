"""
Per-call output capture.

Tool calls run commands in-process, and commands write to ``sys.stdout`` /
``sys.stderr`` (directly, through ``print`` or through ``click.echo``). The
process-wide streams are therefore replaced, once, with routers that look
up the current call's buffer in a context variable. Writes from code that
is not inside a call go to the original stream, which is where the MCP
stdio transport writes its messages.

While a call is being captured, ``sys.stdin`` reads return end-of-file so
that a prompting command aborts instead of consuming protocol input.
"""

from __future__ import annotations

import io
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, TextIO

_sink: ContextVar[Optional[io.StringIO]] = ContextVar("clickmcp_capture_sink", default=None)
_install_lock = threading.Lock()


class _BinarySink(io.RawIOBase):
    """Binary view of the active buffer, for code that writes to ``.buffer``."""

    def __init__(self, target: io.StringIO, encoding: str):
        self._target = target
        self._encoding = encoding

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._target.write(bytes(data).decode(self._encoding, errors="replace"))
        return len(data)


class _OutputRouter(io.TextIOBase):
    """Text stream that writes to the active capture buffer, if any."""

    def __init__(self, fallback: TextIO):
        self._fallback = fallback

    @property
    def fallback(self) -> TextIO:
        return self._fallback

    @property
    def encoding(self) -> str:
        return getattr(self._fallback, "encoding", None) or "utf-8"

    @property
    def errors(self) -> str:
        return getattr(self._fallback, "errors", None) or "strict"

    @property
    def buffer(self):
        sink = _sink.get()
        if sink is None:
            return self._fallback.buffer
        return _BinarySink(sink, self.encoding)

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        if not isinstance(text, str):
            raise TypeError(f"write() argument must be str, not {type(text).__name__}")
        sink = _sink.get()
        if sink is None:
            return self._fallback.write(text)
        return sink.write(text)

    def flush(self) -> None:
        if _sink.get() is None:
            self._fallback.flush()

    def isatty(self) -> bool:
        if _sink.get() is not None:
            return False
        return self._fallback.isatty()

    def fileno(self) -> int:
        if _sink.get() is not None:
            raise io.UnsupportedOperation("captured stream has no file descriptor")
        return self._fallback.fileno()


class _InputRouter(io.TextIOBase):
    """Text stream that reads as empty while a call is being captured."""

    def __init__(self, fallback: TextIO):
        self._fallback = fallback

    @property
    def fallback(self) -> TextIO:
        return self._fallback

    @property
    def encoding(self) -> str:
        return getattr(self._fallback, "encoding", None) or "utf-8"

    @property
    def errors(self) -> str:
        return getattr(self._fallback, "errors", None) or "strict"

    @property
    def buffer(self):
        if _sink.get() is None:
            return self._fallback.buffer
        return io.BytesIO(b"")

    def readable(self) -> bool:
        return True

    def read(self, size: Optional[int] = -1) -> str:
        if _sink.get() is not None:
            return ""
        return self._fallback.read(size)

    def readline(self, size: Optional[int] = -1) -> str:
        if _sink.get() is not None:
            return ""
        return self._fallback.readline(size)

    def isatty(self) -> bool:
        if _sink.get() is not None:
            return False
        return self._fallback.isatty()

    def fileno(self) -> int:
        if _sink.get() is not None:
            raise io.UnsupportedOperation("captured stream has no file descriptor")
        return self._fallback.fileno()


def install() -> None:
    """Replace the process streams with routers. Safe to call repeatedly."""
    with _install_lock:
        if not isinstance(sys.stdout, _OutputRouter):
            sys.stdout = _OutputRouter(sys.stdout)
        if not isinstance(sys.stderr, _OutputRouter):
            sys.stderr = _OutputRouter(sys.stderr)
        if sys.stdin is not None and not isinstance(sys.stdin, _InputRouter):
            sys.stdin = _InputRouter(sys.stdin)


def original_stderr() -> TextIO:
    stream = sys.stderr
    return stream.fallback if isinstance(stream, _OutputRouter) else stream


@contextmanager
def capture_output() -> Iterator[io.StringIO]:
    """
    Capture everything written to stdout/stderr in the current context.

    The buffer is bound to the current ``contextvars`` context, so calls
    running concurrently in other threads or tasks never see each other's
    output.
    """
    install()
    buffer = io.StringIO()
    token = _sink.set(buffer)
    try:
        yield buffer
    finally:
        _sink.reset(token)
