"""Output channel guard.

Keeps stdout reserved for protocol messages. Everything else a process might
print (``print()``, loguru, stdlib logging, warnings) is redirected to stderr,
one severity-tagged line at a time:

    [LOG] something printed
    [INFO] Chess Trainer MCP bridge started
    [WARN] ...
    [ERROR] ...

The guard captures the original stdout write primitive when it is constructed
and uses only that to emit protocol messages, so redirections installed later
can never loop back into the protocol stream.
"""

from __future__ import annotations

import io
import logging
import sys
import warnings
from typing import Any, TextIO

from loguru import logger

# loguru level name -> stderr tag
LEVEL_TAGS = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "INFO",
    "WARNING": "WARN",
    "ERROR": "ERROR",
    "CRITICAL": "ERROR",
}

PRINT_TAG = "LOG"


class _InterceptHandler(logging.Handler):
    """Forwards stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(exception=record.exc_info).log(level, record.getMessage())


class DiagnosticStream(io.TextIOBase):
    """File-like object that turns writes into tagged stderr lines.

    Installed as ``sys.stdout`` so stray ``print()`` calls end up on stderr.
    Partial writes are buffered until a newline or ``flush()``.
    """

    def __init__(self, guard: OutputChannelGuard, tag: str = PRINT_TAG) -> None:
        super().__init__()
        self._guard = guard
        self._tag = tag
        self._pending = ""

    @property
    def encoding(self) -> str:
        return "utf-8"

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        self._pending += text
        if "\n" in self._pending:
            complete, _, self._pending = self._pending.rpartition("\n")
            self._guard.diagnostic(self._tag, complete)
        return len(text)

    def flush(self) -> None:
        if self._pending:
            pending, self._pending = self._pending, ""
            self._guard.diagnostic(self._tag, pending)


class OutputChannelGuard:
    """Owns the real stdout and the diagnostic side channel.

    Constructed once at startup and passed to every component that logs or
    writes protocol messages.
    """

    def __init__(self, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        """Capture the output primitives.

        Args:
            stdout: Protocol stream (defaults to sys.stdout).
            stderr: Diagnostic stream (defaults to sys.stderr).
        """
        stdout = stdout or sys.stdout
        stderr = stderr or sys.stderr
        self._write = stdout.write
        self._flush = stdout.flush
        self._err_write = stderr.write
        self._err_flush = stderr.flush
        self._installed = False
        self._saved: dict[str, Any] = {}
        self._sink_id: int | None = None

    @property
    def installed(self) -> bool:
        """Whether diagnostic redirection is active."""
        return self._installed

    @property
    def logger(self) -> Any:
        """The diagnostic logger components should use."""
        return logger

    def send(self, message: str) -> None:
        """Write one protocol message to stdout.

        Args:
            message: Encoded JSON-RPC message (single line).

        Raises:
            ValueError: If the message spans more than one line.
        """
        if "\n" in message or "\r" in message:
            raise ValueError("Protocol message must be a single line")
        self._write(message + "\n")
        self._flush()

    def diagnostic(self, tag: str, text: str) -> None:
        """Write text to stderr, tagging every line.

        Args:
            tag: Severity tag without brackets (e.g. "INFO").
            text: Text to write; may span several lines.
        """
        lines = text.splitlines() or [""]
        self._err_write("".join(f"[{tag}] {line}\n" for line in lines))
        self._err_flush()

    def _sink(self, message: Any) -> None:
        record = message.record
        tag = LEVEL_TAGS.get(record["level"].name, record["level"].name)
        self.diagnostic(tag, str(message).rstrip("\n"))

    def _show_warning(
        self,
        message: Warning | str,
        category: type[Warning],
        filename: str,
        lineno: int,
        file: TextIO | None = None,
        line: str | None = None,
    ) -> None:
        text = warnings.formatwarning(message, category, filename, lineno, line)
        logger.warning(text.rstrip("\n"))

    def install(self, level: str = "INFO") -> None:
        """Redirect all diagnostic output to stderr.

        Args:
            level: Minimum loguru level to emit.
        """
        if self._installed:
            return

        self._saved = {
            "stdout": sys.stdout,
            "showwarning": warnings.showwarning,
            "root_handlers": list(logging.root.handlers),
            "root_level": logging.root.level,
        }

        sys.stdout = DiagnosticStream(self)
        warnings.showwarning = self._show_warning
        logging.root.handlers = [_InterceptHandler()]
        logging.root.setLevel(logging.NOTSET)

        logger.remove()
        self._sink_id = logger.add(
            self._sink,
            level=level.upper(),
            format="{message}",
            colorize=False,
            backtrace=False,
            diagnose=False,
        )
        self._installed = True

    def uninstall(self) -> None:
        """Restore everything ``install()`` replaced."""
        if not self._installed:
            return

        if isinstance(sys.stdout, DiagnosticStream):
            sys.stdout.flush()
        sys.stdout = self._saved["stdout"]
        warnings.showwarning = self._saved["showwarning"]
        logging.root.handlers = self._saved["root_handlers"]
        logging.root.setLevel(self._saved["root_level"])

        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None
        logger.add(sys.stderr)
        self._installed = False

    def __enter__(self) -> OutputChannelGuard:
        """Context manager entry."""
        self.install()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.uninstall()
