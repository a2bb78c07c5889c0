"""Tests for the output channel guard."""

import io
import logging
import sys
import warnings

import pytest

from chess_trainer_mcp.protocol.guard import DiagnosticStream, OutputChannelGuard


@pytest.fixture
def installed(guard: OutputChannelGuard):
    """Guard with redirection active for the duration of a test."""
    guard.install("DEBUG")
    try:
        yield guard
    finally:
        guard.uninstall()


class TestProtocolChannel:
    """Tests for writing protocol messages."""

    def test_send_writes_one_line(self, guard, stdout):
        """Each message is terminated by exactly one newline."""
        guard.send('{"jsonrpc":"2.0","id":1,"result":{}}')

        assert stdout.getvalue() == '{"jsonrpc":"2.0","id":1,"result":{}}\n'

    def test_send_rejects_multiline(self, guard, stdout):
        """A message containing a line break is never written."""
        with pytest.raises(ValueError):
            guard.send('{"a":\n1}')

        assert stdout.getvalue() == ""

    def test_send_bypasses_redirected_stdout(self, installed, stdout, stderr):
        """Protocol writes use the captured stream, not sys.stdout."""
        assert isinstance(sys.stdout, DiagnosticStream)

        installed.send("{}")

        assert stdout.getvalue() == "{}\n"
        assert stderr.getvalue() == ""


class TestDiagnostics:
    """Tests for redirecting diagnostic output."""

    def test_print_is_tagged(self, installed, stdout, stderr):
        """print() output goes to stderr with the [LOG] tag."""
        print("hello from a plugin")

        assert stdout.getvalue() == ""
        assert stderr.getvalue() == "[LOG] hello from a plugin\n"

    def test_partial_print_is_buffered(self, installed, stderr):
        """Text without a newline is held until flushed."""
        print("partial", end="")
        assert stderr.getvalue() == ""

        sys.stdout.flush()
        assert stderr.getvalue() == "[LOG] partial\n"

    def test_loguru_levels_are_tagged(self, installed, stdout, stderr):
        """Each severity gets its own tag."""
        log = installed.logger
        log.debug("d")
        log.info("i")
        log.warning("w")
        log.error("e")

        assert stdout.getvalue() == ""
        assert stderr.getvalue().splitlines() == ["[DEBUG] d", "[INFO] i", "[WARN] w", "[ERROR] e"]

    def test_multiline_log_tags_every_line(self, installed, stderr):
        """Multi-line messages stay line-tagged."""
        installed.logger.error("first\nsecond")

        assert stderr.getvalue().splitlines() == ["[ERROR] first", "[ERROR] second"]

    def test_stdlib_logging_is_forwarded(self, installed, stderr):
        """Libraries using logging end up on the diagnostic stream."""
        logging.getLogger("some.library").warning("careful")

        assert "[WARN] careful" in stderr.getvalue().splitlines()

    def test_warnings_are_forwarded(self, installed, stderr):
        """warnings.warn() output is tagged as a warning."""
        with warnings.catch_warnings():
            warnings.simplefilter("always")
            warnings.warn("deprecated thing", DeprecationWarning, stacklevel=1)

        assert "[WARN]" in stderr.getvalue()
        assert "deprecated thing" in stderr.getvalue()

    def test_level_filter(self, guard, stderr):
        """Messages below the configured level are dropped."""
        guard.install("WARNING")
        try:
            guard.logger.info("hidden")
            guard.logger.warning("shown")
        finally:
            guard.uninstall()

        assert stderr.getvalue() == "[WARN] shown\n"


class TestInstallation:
    """Tests for install/uninstall."""

    def test_uninstall_restores_state(self, guard):
        """Everything replaced by install() is put back."""
        original_stdout = sys.stdout
        original_showwarning = warnings.showwarning
        original_handlers = list(logging.root.handlers)

        guard.install()
        assert guard.installed
        guard.uninstall()

        assert not guard.installed
        assert sys.stdout is original_stdout
        assert warnings.showwarning is original_showwarning
        assert logging.root.handlers == original_handlers

    def test_install_is_idempotent(self, guard):
        """A second install() keeps the first saved state."""
        original_stdout = sys.stdout
        guard.install()
        guard.install()
        guard.uninstall()

        assert sys.stdout is original_stdout

    def test_context_manager(self, stdout, stderr):
        """The guard can be used as a context manager."""
        with OutputChannelGuard(stdout=stdout, stderr=stderr) as guard:
            assert guard.installed
            print("inside")

        assert not guard.installed
        assert stderr.getvalue() == "[LOG] inside\n"

    def test_diagnostic_stream_is_text_io(self, guard):
        """The stdout replacement behaves like a text stream."""
        stream = DiagnosticStream(guard)

        assert isinstance(stream, io.TextIOBase)
        assert stream.writable()
        assert stream.encoding == "utf-8"
