"""Scoped redirection of the engine's standard output to the caller's console.

`sys.stdout` is process-wide, so only one redirection may be installed at a time. A module-level lock serialises calls: `ConsoleRedirect.hijack` acquires it and `ConsoleRedirect.restore` releases it, once, on every exit path.
"""

from __future__ import annotations

import contextlib
import io
import sys
import threading
from types import TracebackType
from typing import Self, TextIO, override

_CONSOLE_LOCK = threading.Lock()


class _ConsoleWriter(io.TextIOBase):
    """Text stream forwarding every write to the console as it happens."""

    def __init__(self, console: TextIO):
        super().__init__()
        self.console = console

    @override
    def writable(self) -> bool:
        return True

    @override
    def write(self, s: str) -> int:
        self.console.write(s)
        self.console.flush()
        return len(s)

    @override
    def flush(self) -> None:
        self.console.flush()


class ConsoleRedirect:
    """Handle on the process-wide redirection of `sys.stdout`.

    Usable directly through `hijack`/`restore`, or as a context manager:

        with ConsoleRedirect(console):
            engine(...)

    Without a console, output goes to whatever `sys.stdout` is once the redirection is installed, so a call waiting on another call's redirection never inherits that call's console.
    """

    def __init__(self, console: TextIO | None = None):
        self.console = console
        self._previous: TextIO | None = None
        self._writer: _ConsoleWriter | None = None

    @property
    def installed(self) -> bool:
        return self._writer is not None

    def hijack(self) -> None:
        """Install the redirection, waiting for any other call's redirection to be restored."""
        if self.installed:
            raise RuntimeError("Console redirection is already installed.")
        _CONSOLE_LOCK.acquire()
        self._previous = sys.stdout
        self._writer = _ConsoleWriter(self._previous if self.console is None else self.console)
        sys.stdout = self._writer

    def restore(self) -> None:
        """Reinstate the previous stream; calling it again is a no-op."""
        if self._writer is None:
            return
        try:
            # The engine may have closed the console
            with contextlib.suppress(ValueError, OSError):
                self._writer.flush()
        finally:
            sys.stdout = self._previous
            self._previous = None
            self._writer = None
            _CONSOLE_LOCK.release()

    def __enter__(self) -> Self:
        self.hijack()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.restore()


def is_redirected() -> bool:
    """Whether some call currently holds the redirection."""
    return _CONSOLE_LOCK.locked()
